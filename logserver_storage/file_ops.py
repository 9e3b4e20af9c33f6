"""
Local filesystem helpers.

- Namespace directories under ``<db_path>/logserver/<namespace>``
- Directory creation that reports failures as ``StorageIOError``
- JSON documents read tolerantly and replaced atomically
"""

import contextlib
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .exceptions import StorageIOError
from .models import SERVER_NAMESPACE


def namespace_directory(db_path: str | Path, namespace: str) -> Path:
    """Directory holding the on-disk data of one namespace."""
    return Path(db_path) / SERVER_NAMESPACE / namespace


def ensure_directory_sync(path: Path) -> None:
    """Blocking variant of ``ensure_directory`` for synchronous callers."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def ensure_directory(path: Path) -> None:
    """Create ``path`` and its parents if missing.

    Raises:
        StorageIOError: If the directory cannot be created
    """
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path, default: Any = None) -> Any:
    """Load a JSON document.

    A missing or blank file yields ``default``. Unparseable content raises
    ``StorageIOError`` rather than silently discarding data.
    """
    if not await aiofiles.os.path.isfile(path):
        return default
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
    except OSError as e:
        raise StorageIOError("read_json", str(path), e) from e

    if not content.strip():
        return default
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_json", str(path), e) from e


async def write_json_atomic(path: Path, data: Any) -> None:
    """Replace ``path`` with ``data`` serialized as JSON.

    The document is written and fsynced to a sibling temp file first, so
    readers see either the old or the new content, never a partial write.
    """
    await ensure_directory(path.parent)

    temp_path: str | None = None
    try:
        content = json.dumps(data, indent=2, default=_json_default)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        os.close(fd)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(content)
            await f.flush()
            os.fsync(f.fileno())
        await aiofiles.os.replace(temp_path, path)
    except (OSError, TypeError, ValueError) as e:
        if temp_path is not None:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(temp_path)
        raise StorageIOError("write_json", str(path), e) from e


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
