"""Filesystem helpers shared by the credential and cache code."""
from __future__ import annotations

import os
from pathlib import Path


def atomic_write_text(path: Path | str, content: str) -> Path:
    """Write *content* to a sibling temp file, then rename it over *path*.

    Parent directories are created first.  Readers never observe a partially
    written file.

    Returns:
        The target path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
    return path
