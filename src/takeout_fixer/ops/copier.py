from __future__ import annotations

from datetime import datetime
from pathlib import Path
import os
import shutil
import uuid

from takeout_fixer.util.paths import ensure_dir

def temp_sibling(path: Path) -> Path:
    """Hidden temporary path next to ``path`` that keeps its extension.

    ExifTool picks the writer from the extension, so the suffix must survive.
    """
    return path.parent / f".{path.stem}.{uuid.uuid4().hex[:8]}.partial{path.suffix}"

def copy_verbatim(src: Path, dst: Path) -> Path:
    """Copy src to dst byte-for-byte.

    The copy goes to a temporary sibling first and is moved into place with
    os.replace, so dst is either the complete copy or untouched.
    """
    ensure_dir(dst.parent)
    tmp = temp_sibling(dst)
    try:
        shutil.copyfile(src, tmp)
        os.replace(tmp, dst)
    finally:
        if tmp.exists():
            tmp.unlink()
    return dst

def set_file_times(path: Path, when: datetime) -> None:
    """Set access and modification time of path to ``when``.

    Creation time is not settable portably; modification time is what file
    managers sort by.
    """
    ts = when.timestamp()
    os.utime(path, (ts, ts))

def remove_quietly(path: Path) -> bool:
    """Best-effort delete of a file or directory tree. Returns True if gone."""
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
    except OSError:
        return False
    return not path.exists()
