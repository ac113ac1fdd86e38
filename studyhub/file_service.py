"""
File persistence, upload and embedding dispatch.

Upload flow:
    sanitize filename -> size check (per-type table) -> extract text ->
    write blob -> insert row with detectedLanguage/pageCount metadata
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from . import storage
from .config import settings
from .db_models import DBFile, new_id
from .exceptions import FileTooLargeError, NotFoundError, StudyHubError, ValidationError
from .file_embeddings import FILE_EMBEDDINGS_TASK, get_embedding_status, mark_failed, mark_generating
from .ingest import ExtractedText, extract_text, guess_mime_type
from .sanitization import sanitize_filename, validate_file_size, validate_uuid
from .workspace_service import get_workspace
from . import task_records
from .tasks import generate_file_embeddings

logger = logging.getLogger(__name__)


def check_upload(filename: str, content_bytes: bytes, mime_type: Optional[str] = None):
    """
    Validate an uploaded document before it is stored.

    Returns:
        (safe_filename, mime_type)

    Raises:
        ValidationError: On a bad filename
        FileTooLargeError: If the size exceeds the limit for its type
    """
    name = sanitize_filename(filename)
    mime = mime_type if mime_type and mime_type != "application/octet-stream" else guess_mime_type(name)

    size = len(content_bytes)
    if size > settings.max_upload_size_bytes:
        raise FileTooLargeError(size, settings.max_upload_size_bytes)
    validate_file_size(size, mime)
    return name, mime


def extract_text_only(filename: str, content_bytes: bytes, mime_type: Optional[str] = None) -> ExtractedText:
    """Validate and extract text without storing anything."""
    name, mime = check_upload(filename, content_bytes, mime_type)
    return extract_text(content_bytes, name, mime)


def upload_file(db: Session, user_id: str, workspace_id: str, filename: str, content_bytes: bytes,
                mime_type: Optional[str] = None, file_type: str = "document") -> DBFile:
    """
    Store an uploaded document and its extracted text.

    Raises:
        NotFoundError: If the workspace is not the caller's
        ValidationError / FileTooLargeError / UnsupportedFileTypeError /
        TextExtractionError: On invalid uploads
    """
    get_workspace(db, workspace_id, user_id)
    name, mime = check_upload(filename, content_bytes, mime_type)
    extracted = extract_text(content_bytes, name, mime)

    file_id = new_id()
    key = storage.write_blob(storage.build_key(workspace_id, file_id, name), content_bytes)

    file = DBFile(
        id=file_id,
        workspace_id=workspace_id,
        user_id=user_id,
        name=name,
        file_type=file_type,
        mime_type=mime,
        size_bytes=len(content_bytes),
        url=key,
        content=extracted.text,
        file_metadata={
            "detectedLanguage": extracted.language,
            "pageCount": extracted.page_count,
            "embeddingsGenerated": False,
            "embeddingsGenerating": False,
        },
    )
    db.add(file)
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.delete_blob(key)
        raise
    db.refresh(file)

    logger.info(
        f"Uploaded file {file.id} ({name}, {len(content_bytes)} bytes, {extracted.page_count} pages, "
        f"language={extracted.language})"
    )
    return file


def list_files(db: Session, user_id: str, workspace_id: str) -> List[DBFile]:
    get_workspace(db, workspace_id, user_id)
    return db.query(DBFile).filter(
        DBFile.workspace_id == workspace_id,
        DBFile.user_id == user_id,
    ).order_by(DBFile.created_at.desc()).all()


def get_file(db: Session, file_id: str, user_id: str) -> DBFile:
    """
    Load a file owned by user_id.

    Raises:
        NotFoundError: If missing or owned by another user
    """
    validate_uuid(file_id, "fileId")
    file = db.query(DBFile).filter(DBFile.id == file_id, DBFile.user_id == user_id).first()
    if not file:
        raise NotFoundError("File", file_id)
    return file


PIPELINE_METADATA_KEYS = ("detectedLanguage", "pageCount")


def _is_pipeline_key(key: str) -> bool:
    return key in PIPELINE_METADATA_KEYS or key.startswith("embeddings")


def update_file(db: Session, file_id: str, user_id: str, name: Optional[str] = None,
                metadata: Optional[Dict] = None) -> DBFile:
    file = get_file(db, file_id, user_id)
    reserved = sorted(key for key in metadata or {} if _is_pipeline_key(key))
    if reserved:
        raise ValidationError(f"Metadata keys are managed by the server: {', '.join(reserved)}")
    if name is not None:
        file.name = sanitize_filename(name)
    if metadata:
        file.file_metadata = {**(file.file_metadata or {}), **metadata}
    db.commit()
    db.refresh(file)
    return file


def delete_file(db: Session, file_id: str, user_id: str) -> None:
    """Delete a file, its embeddings and its blob. Quizzes built from it are kept."""
    file = get_file(db, file_id, user_id)
    key = file.url
    db.delete(file)
    db.commit()
    storage.delete_blob(key)
    logger.info(f"Deleted file {file_id}")


def read_blob(file: DBFile) -> bytes:
    if not file.url:
        raise NotFoundError("Stored file", file.id)
    return storage.read_blob(file.url)


def get_file_content(db: Session, file: DBFile) -> str:
    """
    Extracted text of a file.

    Re-extracts from the stored blob (and saves the result) when the row has
    no text yet.
    """
    if file.content:
        return file.content

    logger.info(f"File {file.id} has no stored text, extracting from blob")
    extracted = extract_text(read_blob(file), file.name, file.mime_type)
    file.content = extracted.text
    file.file_metadata = {
        **(file.file_metadata or {}),
        "detectedLanguage": extracted.language,
        "pageCount": extracted.page_count,
    }
    db.commit()
    return file.content


# =============================================================================
# Embedding Dispatch
# =============================================================================

def start_embedding_generation(db: Session, file: DBFile, user_id: str) -> Dict:
    """
    Start background embedding generation for a file.

    Idempotent: while a task for this file is pending or running, the
    existing task is returned and nothing new is dispatched.

    Returns:
        {"status": "started"|"processing", "taskId": ..., "fileId": ...}
    """
    task, created = task_records.start_task(db, FILE_EMBEDDINGS_TASK, file.id, user_id)
    if not created:
        db.commit()
        return {"status": "processing", "taskId": task.id, "fileId": file.id}

    mark_generating(file)
    db.commit()

    try:
        generate_file_embeddings.delay(task.id)
    except Exception as e:
        logger.error(f"Failed to dispatch embedding task {task.id}: {e}", exc_info=True)
        db.refresh(task)
        task_records.mark_failed(db, task, f"Dispatch failed: {e}")
        mark_failed(file, f"Dispatch failed: {e}")
        db.commit()
        raise StudyHubError("Background worker unavailable, please try again later") from e

    logger.info(f"Dispatched embedding task {task.id} for file {file.id}")
    return {"status": "started", "taskId": task.id, "fileId": file.id}


def embedding_status(db: Session, file: DBFile) -> Dict:
    return get_embedding_status(db, file)
