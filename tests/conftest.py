from pathlib import Path
from typing import Callable, Dict, Union

import pytest

Files = Dict[str, Union[str, bytes]]


@pytest.fixture
def src(tmp_path: Path) -> Path:
    root = tmp_path / "src"
    root.mkdir()
    return root


@pytest.fixture
def out(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def make_tree(src: Path) -> Callable[[Files], Path]:
    """Write ``{relative path: content}`` below the ``src`` directory."""

    def _write(files: Files) -> Path:
        for rel, content in files.items():
            path = src / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return src

    return _write
