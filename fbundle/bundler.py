"""Read selected files in parallel and write them out as one bundle."""

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .errors import ReadError, WriteError
from .log import console
from .selector import SelectedFile

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleResult:
    output_path: Path
    file_count: int
    bytes_written: int


def _read_file(selected: SelectedFile) -> bytes:
    log.debug(f"Reading file: {selected.absolute_path}")
    with open(selected.absolute_path, "rb") as in_f:
        return in_f.read()


def format_entry(separator: bytes, relative_path: str, content: bytes) -> bytes:
    """Render one bundle entry: separator, path header, raw content."""
    return b"".join(
        [separator, b"\n", os.fsencode(relative_path), b"\n", content, b"\n"]
    )


def read_all(
    selected_files: Sequence[SelectedFile],
    jobs: Optional[int] = None,
    show_progress: bool = False,
) -> List[bytes]:
    """
    Read every selected file using a thread pool.

    Results are stored by index, so the returned list follows the order of
    ``selected_files`` whatever order the reads finish in. The first failed
    read cancels the reads still queued and raises :class:`ReadError`.
    """
    contents: List[Optional[bytes]] = [None] * len(selected_files)
    if not selected_files:
        return []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        disable=not show_progress,
    ) as progress:
        task = progress.add_task("Reading files", total=len(selected_files))

        with ThreadPoolExecutor(max_workers=jobs or os.cpu_count()) as executor:
            future_to_index = {
                executor.submit(_read_file, selected): index
                for index, selected in enumerate(selected_files)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    contents[index] = future.result()
                except (OSError, MemoryError) as e:
                    for pending in future_to_index:
                        pending.cancel()
                    failed = selected_files[index]
                    log.error(f"Error reading file {failed.relative_path}: {e}")
                    raise ReadError(failed.absolute_path, e) from e
                progress.update(task, advance=1)

    return contents  # type: ignore[return-value]


def _default_mode() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return 0o666 & ~mask


def write_atomic(output_path: Path, chunks: Iterable[bytes]) -> int:
    """Write ``chunks`` to a temp file next to ``output_path``, then rename.

    An existing file at ``output_path`` is only replaced once every byte has
    been written and flushed.
    """
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(output_path.parent, e) from e

    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=output_path.parent, prefix=f".{output_path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise WriteError(output_path, e) from e

    written = 0
    try:
        with os.fdopen(fd, "wb") as out_f:
            for chunk in chunks:
                out_f.write(chunk)
                written += len(chunk)
            out_f.flush()
            os.fsync(out_f.fileno())
        # mkstemp creates the file 0600; give the bundle the usual umask mode
        os.chmod(tmp_name, _default_mode())
        os.replace(tmp_name, output_path)
    except BaseException as e:
        # Interrupts too: the partial temp file is removed before propagating
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        if isinstance(e, OSError):
            raise WriteError(output_path, e) from e
        raise
    return written


def write_bundle(
    selected_files: Sequence[SelectedFile],
    output_path: Path,
    separator: str,
    jobs: Optional[int] = None,
    show_progress: bool = False,
) -> BundleResult:
    """Write ``selected_files`` in the given order into one bundle file."""
    contents = read_all(selected_files, jobs=jobs, show_progress=show_progress)
    sep = separator.encode("utf-8")

    log.info(f"Appending content of {len(contents)} files...")
    written = write_atomic(output_path, _entries(selected_files, contents, sep))
    log.debug(f"Wrote {written} bytes to {output_path}")
    return BundleResult(Path(output_path), len(selected_files), written)


def _entries(
    selected_files: Sequence[SelectedFile], contents: List[Optional[bytes]], sep: bytes
) -> Iterator[bytes]:
    # Each content is released as soon as its entry is formatted
    for index, selected in enumerate(selected_files):
        content = contents[index]
        contents[index] = None
        yield format_entry(sep, selected.relative_path, content)
