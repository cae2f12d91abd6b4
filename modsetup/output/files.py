"""Atomic file output.

Each write goes to a sibling temporary file that is renamed over the
target, so an interrupted action never leaves a truncated output file.
"""

import os
import tempfile
from pathlib import Path


def create_parent_directory(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` atomically, creating parent directories."""
    path = Path(path)
    create_parent_directory(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` as UTF-8 with ``\\n`` newlines."""
    write_bytes_atomic(path, text.encode("utf-8"))
