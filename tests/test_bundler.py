import os
import random
import threading
import time

import pytest

from fbundle import bundler
from fbundle.bundler import format_entry, read_all, write_atomic, write_bundle
from fbundle.errors import ReadError, WriteError
from fbundle.selector import SelectedFile


def selected_from(root, *rels):
    return [SelectedFile(rel, root / rel) for rel in rels]


def test_format_entry_layout():
    assert format_entry(b"---", "x.md", b"body") == b"---\nx.md\nbody\n"


def test_write_bundle_exact_bytes(make_tree, out):
    root = make_tree({"x.md": "# X\n", "y.md": "why"})
    result = write_bundle(selected_from(root, "x.md", "y.md"), out / "b.txt", "---")

    data = (out / "b.txt").read_bytes()
    assert data == b"---\nx.md\n# X\n\n---\ny.md\nwhy\n"
    assert result.file_count == 2
    assert result.bytes_written == len(data)
    assert result.output_path == out / "b.txt"


def test_raw_bytes_are_copied_unchanged(make_tree, out):
    blob = bytes(range(256)) + b"\r\n\x00tail"
    root = make_tree({"bin.dat": blob})
    write_bundle(selected_from(root, "bin.dat"), out / "b.txt", "==")
    assert (out / "b.txt").read_bytes() == b"==\nbin.dat\n" + blob + b"\n"


def test_multiline_and_unicode_separator(make_tree, out):
    root = make_tree({"a": "1"})
    write_bundle(selected_from(root, "a"), out / "b.txt", "=== § ===\n~~")
    assert (out / "b.txt").read_bytes() == "=== § ===\n~~\na\n1\n".encode("utf-8")


def test_empty_selection_writes_empty_file(out):
    result = write_bundle([], out / "empty.txt", "---")
    assert (out / "empty.txt").read_bytes() == b""
    assert result.file_count == 0
    assert result.bytes_written == 0


def test_output_directory_is_created(make_tree, tmp_path):
    root = make_tree({"a.txt": "a"})
    target = tmp_path / "deep" / "er" / "bundle.txt"
    write_bundle(selected_from(root, "a.txt"), target, "--")
    assert target.is_file()


def test_existing_bundle_is_replaced(make_tree, out):
    out.mkdir()
    (out / "b.txt").write_text("stale content that is longer than the new one")
    root = make_tree({"a": "1"})
    write_bundle(selected_from(root, "a"), out / "b.txt", "-")
    assert (out / "b.txt").read_bytes() == b"-\na\n1\n"


def test_read_order_follows_input_not_completion(make_tree, monkeypatch):
    rels = [f"f{i:02d}.txt" for i in range(20)]
    root = make_tree({rel: rel.upper() for rel in rels})
    real_read = bundler._read_file
    rng = random.Random(7)
    delays = {rel: rng.random() / 100 for rel in rels}

    def slow_read(selected):
        time.sleep(delays[selected.relative_path])
        return real_read(selected)

    monkeypatch.setattr(bundler, "_read_file", slow_read)
    contents = read_all(selected_from(root, *rels), jobs=8)
    assert contents == [rel.upper().encode() for rel in rels]


def test_reads_run_on_worker_threads(make_tree, monkeypatch):
    root = make_tree({"a": "1", "b": "2"})
    seen = set()
    real_read = bundler._read_file

    def tracking_read(selected):
        seen.add(threading.current_thread().name)
        return real_read(selected)

    monkeypatch.setattr(bundler, "_read_file", tracking_read)
    read_all(selected_from(root, "a", "b"), jobs=2)
    assert threading.main_thread().name not in seen


def test_read_failure_is_fatal_and_names_file(make_tree, out):
    root = make_tree({"a.txt": "a"})
    files = selected_from(root, "a.txt", "missing.txt")

    with pytest.raises(ReadError) as exc_info:
        write_bundle(files, out / "b.txt", "---")
    assert exc_info.value.phase == "read"
    assert exc_info.value.path == root / "missing.txt"
    assert "missing.txt" in str(exc_info.value)
    assert not (out / "b.txt").exists()


def test_read_failure_leaves_existing_bundle_untouched(make_tree, out, monkeypatch):
    out.mkdir()
    (out / "b.txt").write_bytes(b"previous")
    root = make_tree({"a.txt": "a", "b.txt": "b"})
    real_read = bundler._read_file

    def flaky(selected):
        if selected.relative_path == "b.txt":
            raise PermissionError(13, "Permission denied", str(selected.absolute_path))
        return real_read(selected)

    monkeypatch.setattr(bundler, "_read_file", flaky)
    with pytest.raises(ReadError):
        write_bundle(selected_from(root, "a.txt", "b.txt"), out / "b.txt", "---")
    assert (out / "b.txt").read_bytes() == b"previous"
    assert os.listdir(out) == ["b.txt"]


def test_out_of_memory_while_reading_is_a_read_error(make_tree, out, monkeypatch):
    root = make_tree({"a.txt": "a", "huge.bin": "h"})
    real_read = bundler._read_file

    def exhausted(selected):
        if selected.relative_path == "huge.bin":
            raise MemoryError()
        return real_read(selected)

    monkeypatch.setattr(bundler, "_read_file", exhausted)
    with pytest.raises(ReadError) as exc_info:
        write_bundle(selected_from(root, "a.txt", "huge.bin"), out / "b.txt", "---")
    assert exc_info.value.path == root / "huge.bin"
    assert not out.exists()


def test_write_failure_cleans_up_temp_file(out, monkeypatch):
    out.mkdir()

    def refuse(src, dst):
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(os, "replace", refuse)
    with pytest.raises(WriteError) as exc_info:
        write_atomic(out / "b.txt", [b"data"])
    assert exc_info.value.phase == "write"
    assert os.listdir(out) == []


def test_unwritable_output_directory(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises(WriteError):
        write_atomic(blocker / "b.txt", [b"data"])


def test_interrupted_write_removes_temp_file(out, monkeypatch):
    out.mkdir()
    (out / "b.txt").write_bytes(b"previous")

    def interrupt(fd):
        raise KeyboardInterrupt

    monkeypatch.setattr(os, "fsync", interrupt)
    with pytest.raises(KeyboardInterrupt):
        write_atomic(out / "b.txt", [b"data"])
    assert os.listdir(out) == ["b.txt"]
    assert (out / "b.txt").read_bytes() == b"previous"


def test_write_atomic_consumes_generators(out):
    chunks = (bytes([65 + i]) * 3 for i in range(3))
    assert write_atomic(out / "b.txt", chunks) == 9
    assert (out / "b.txt").read_bytes() == b"AAABBBCCC"


def test_write_bundle_formats_entries_lazily(make_tree, out, monkeypatch):
    root = make_tree({"a.txt": "A", "b.txt": "B"})
    seen = []

    def record(output_path, chunks):
        assert not isinstance(chunks, (list, tuple))
        for chunk in chunks:
            seen.append(chunk)
        return sum(map(len, seen))

    monkeypatch.setattr(bundler, "write_atomic", record)
    result = write_bundle(selected_from(root, "a.txt", "b.txt"), out / "b.txt", "==")
    assert seen == [b"==\na.txt\nA\n", b"==\nb.txt\nB\n"]
    assert result.file_count == 2
