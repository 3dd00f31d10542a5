"""
Locked JSON documents for Layerfill.

Project files (``.lfproj``) and saved settings are plain JSON objects.
Reads take a shared portalocker lock; writes go to a sibling ``.tmp`` file
under an exclusive lock and are renamed over the target, so a crash
mid-save never leaves a truncated project behind.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import portalocker

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 5


def read_json_locked(file_path: str | Path) -> dict[str, Any] | None:
    """
    Read a JSON document under a shared lock.

    Args:
        file_path: Path to the document.

    Returns:
        The top-level object, or None when the file is missing, locked past
        the timeout, not JSON, or not a JSON object.
    """
    path = Path(file_path)
    if not path.exists():
        return None

    try:
        with portalocker.Lock(
            path, mode="r", timeout=LOCK_TIMEOUT, flags=portalocker.LOCK_SH
        ) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"{path} is not valid JSON: {e}")
        return None
    except (portalocker.exceptions.LockException, OSError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"{path} does not hold a JSON object")
        return None
    return data


def write_json_locked(
    file_path: str | Path, data: dict[str, Any], indent: int | None = 2
) -> bool:
    """
    Write a JSON document atomically under an exclusive lock.

    Missing parent directories are created. On failure the temporary file
    is removed and the previous document, if any, is left untouched.

    Args:
        file_path: Destination path.
        data: Object to serialize.
        indent: JSON indentation. None writes compact output, which keeps
            large embedded rasters on one line.

    Returns:
        True if the document was written.
    """
    path = Path(file_path)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with portalocker.Lock(
            temp_path, mode="w", timeout=LOCK_TIMEOUT, flags=portalocker.LOCK_EX
        ) as f:
            json.dump(data, f, indent=indent)
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(path)
        logger.debug(f"Wrote {path}")
        return True
    except (TypeError, ValueError) as e:
        logger.error(f"Cannot serialize document for {path}: {e}")
    except (portalocker.exceptions.LockException, OSError) as e:
        logger.error(f"Failed to write {path}: {e}")

    if temp_path.exists():
        try:
            temp_path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove {temp_path}: {e}")
    return False
