"""
Past exam uploads.

A past exam is stored like a file (same blob layout, same extraction) but
only PDF and DOCX are accepted, and documents that look longer than an
exam (estimated from their size) are rejected.
"""

import logging
import math
from typing import List, Optional

from sqlalchemy.orm import Session

from . import storage
from .constants import (
    DOCX_BYTES_PER_PAGE,
    PAST_EXAM_MAX_ESTIMATED_PAGES,
    PAST_EXAM_MIME_TYPES,
    PDF_BYTES_PER_PAGE,
)
from .db_models import DBPastExam, new_id
from .exceptions import NotFoundError, ValidationError
from .file_service import check_upload
from .ingest import extract_text
from .sanitization import sanitize_text, validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)

SEMESTERS = ("Fall", "Spring", "Summer", "Winter")


def estimate_page_count(mime_type: str, size: int) -> int:
    bytes_per_page = PDF_BYTES_PER_PAGE if "pdf" in mime_type else DOCX_BYTES_PER_PAGE
    return math.ceil(size / bytes_per_page)


def upload_past_exam(db: Session, user_id: str, workspace_id: str, filename: str, content_bytes: bytes,
                     mime_type: Optional[str] = None, name: Optional[str] = None, year: Optional[str] = None,
                     semester: Optional[str] = None, course: Optional[str] = None) -> DBPastExam:
    """
    Store a past exam document and its extracted text.

    Raises:
        ValidationError: On a disallowed type, an oversized document or bad fields
        FileTooLargeError: If the size exceeds the per-type limit
    """
    get_workspace(db, workspace_id, user_id)
    safe_name, mime = check_upload(filename, content_bytes, mime_type)

    if mime not in PAST_EXAM_MIME_TYPES:
        raise ValidationError("Invalid file type. Only PDF and DOCX files are allowed.")

    estimated_pages = estimate_page_count(mime, len(content_bytes))
    if estimated_pages > PAST_EXAM_MAX_ESTIMATED_PAGES:
        raise ValidationError(
            f"File appears to exceed the maximum page limit of approximately "
            f"{PAST_EXAM_MAX_ESTIMATED_PAGES} pages."
        )

    if semester and semester not in SEMESTERS:
        raise ValidationError(f"Invalid semester. Must be one of: {', '.join(SEMESTERS)}")

    extracted = extract_text(content_bytes, safe_name, mime)

    exam_id = new_id()
    key = storage.write_blob(storage.build_key(workspace_id, exam_id, safe_name), content_bytes)

    past_exam = DBPastExam(
        id=exam_id,
        workspace_id=workspace_id,
        user_id=user_id,
        name=sanitize_text(name, "Exam name", max_length=512, required=False) or safe_name,
        year=sanitize_text(year, "Year", max_length=10, required=False),
        semester=semester or None,
        course=sanitize_text(course, "Course", required=False),
        url=key,
        content=extracted.text,
        exam_metadata={
            "detectedLanguage": extracted.language,
            "pageCount": extracted.page_count,
            "estimatedPages": estimated_pages,
            "fileSize": len(content_bytes),
            "mimeType": mime,
        },
    )
    db.add(past_exam)
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.delete_blob(key)
        raise
    db.refresh(past_exam)

    logger.info(f"Uploaded past exam {past_exam.id} ({safe_name}) to workspace {workspace_id}")
    return past_exam


def list_past_exams(db: Session, user_id: str, workspace_id: str) -> List[DBPastExam]:
    get_workspace(db, workspace_id, user_id)
    return db.query(DBPastExam).filter(
        DBPastExam.workspace_id == workspace_id,
        DBPastExam.user_id == user_id,
    ).order_by(DBPastExam.created_at.desc()).all()


def get_past_exam(db: Session, past_exam_id: str, user_id: str) -> DBPastExam:
    validate_uuid(past_exam_id, "pastExamId")
    past_exam = db.query(DBPastExam).filter(
        DBPastExam.id == past_exam_id,
        DBPastExam.user_id == user_id,
    ).first()
    if not past_exam:
        raise NotFoundError("Past exam", past_exam_id)
    return past_exam


def get_past_exam_content(db: Session, past_exam: DBPastExam) -> str:
    """Stored text of a past exam, re-extracted from the blob when missing."""
    if past_exam.content:
        return past_exam.content
    if not past_exam.url:
        raise NotFoundError("Stored file", past_exam.id)

    logger.info(f"Past exam {past_exam.id} has no stored text, extracting from blob")
    mime = (past_exam.exam_metadata or {}).get("mimeType")
    filename = past_exam.url.rsplit("/", 1)[-1]
    past_exam.content = extract_text(storage.read_blob(past_exam.url), filename, mime).text
    db.commit()
    return past_exam.content


def delete_past_exam(db: Session, past_exam_id: str, user_id: str) -> None:
    """Delete a past exam and its blob; patterns derived from it are kept."""
    past_exam = get_past_exam(db, past_exam_id, user_id)
    key = past_exam.url
    db.delete(past_exam)
    db.commit()
    storage.delete_blob(key)
    logger.info(f"Deleted past exam {past_exam_id}")
