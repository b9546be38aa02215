"""Filesystem and process helpers."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path


def atomic_write(path: Path, content: str, mode: int | None = None) -> None:
    """Replace a file's content atomically.

    Writes to a temp file in the target directory and renames it over the
    target, so readers see either the old or the new content.

    Args:
        path: Target file path. The parent directory must exist.
        content: Text content to write.
        mode: Optional permission bits applied before the rename.

    Raises:
        OSError: On any filesystem failure. The temp file is removed.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def is_root() -> bool:
    """Check whether the process runs with an effective uid of 0."""
    return hasattr(os, "geteuid") and os.geteuid() == 0


def redact_secret(value: str) -> str:
    """Mask a secret for display, keeping a short prefix and suffix."""
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (seconds precision)."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
