"""
WordCard File Helpers

Snapshot files are replaced atomically: data goes to a temp file in the
target's directory and is renamed over the target, so concurrent readers
see either the old or the new document, never a partial one.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from wordcard.core.errors import WriteFailed


def atomic_write(path: Path, data: bytes) -> os.stat_result:
    """
    Write *data* to a temp file beside *path*, then rename it into place.

    Returns the stat of the written file, taken before the rename. The
    rename keeps it, and unlike a stat of *path* afterwards it cannot
    pick up a file another process moved in meanwhile.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise WriteFailed(f"Could not write {path}: {exc}", path=str(path)) from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
            written = os.fstat(handle.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise WriteFailed(f"Could not write {path}: {exc}", path=str(path)) from exc
    return written
