"""Owner-only file helpers for the config file and graph database."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600


def secure_mkdir(path: Path) -> None:
    """Create ``path`` and its parents, restricting ``path`` to its owner.

    An existing directory has its mode tightened.
    """
    path.mkdir(parents=True, exist_ok=True)
    path.chmod(PRIVATE_DIR_MODE)


def write_private(path: Path, data: str | bytes) -> None:
    """Atomically replace ``path`` with ``data``, readable by the owner only.

    The content is written to a temporary file in the target directory and
    renamed over ``path``, so readers never see a partial file.

    Raises:
        OSError: If the directory is not writable.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.chmod(tmp_name, PRIVATE_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
