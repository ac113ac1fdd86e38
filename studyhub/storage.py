"""
Blob storage for uploaded files.

Blobs live on local disk under settings.storage_path as
``<workspace_id>/<file_id>_<filename>``. The storage key (that relative
path) is what DBFile.url and DBPastExam.url hold.
"""

import logging
import shutil
from pathlib import Path

from .config import settings
from .exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _root() -> Path:
    return Path(settings.storage_path).resolve()


def _resolve(key: str) -> Path:
    path = (_root() / key).resolve()
    if _root() not in path.parents:
        raise ValidationError("Invalid storage key")
    return path


def build_key(workspace_id: str, file_id: str, filename: str) -> str:
    return f"{workspace_id}/{file_id}_{filename}"


def write_blob(key: str, data: bytes) -> str:
    path = _resolve(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.debug(f"Stored blob {key} ({len(data)} bytes)")
    return key


def read_blob(key: str) -> bytes:
    path = _resolve(key)
    if not path.is_file():
        raise NotFoundError("Stored file", key)
    return path.read_bytes()


def delete_blob(key: str) -> None:
    if not key:
        return
    path = _resolve(key)
    if path.is_file():
        path.unlink()
        logger.debug(f"Deleted blob {key}")


def delete_workspace_blobs(workspace_id: str) -> None:
    """Remove every blob stored for a workspace."""
    path = _resolve(workspace_id)
    if path.is_dir():
        shutil.rmtree(path)
        logger.info(f"Deleted storage for workspace {workspace_id}")
