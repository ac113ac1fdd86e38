"""
Subject persistence and AI subject extraction.

Subjects are ordered per workspace by their ``order`` column. Names are
unique per workspace, case-insensitively: creating a subject whose name
already exists returns the existing one.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .ai_config import resolve_provider
from .constants import MIN_CONTENT_LENGTH, SUBJECT_MAX_TOKENS
from .db_models import DBSubject
from .exceptions import AIResponseParseError, NotFoundError, ValidationError
from .file_embeddings import drop_subject_embeddings
from .file_service import get_file, get_file_content
from .json_repair import safe_parse_json
from . import llm_providers
from .llm_providers import content_budget_chars, split_content
from .prompts import build_subjects_prompt
from .sanitization import sanitize_description, sanitize_text, validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)


# =============================================================================
# CRUD
# =============================================================================

def list_subjects(db: Session, user_id: str, workspace_id: str) -> List[DBSubject]:
    get_workspace(db, workspace_id, user_id)
    return db.query(DBSubject).filter(
        DBSubject.workspace_id == workspace_id,
        DBSubject.user_id == user_id,
    ).order_by(DBSubject.order.asc(), DBSubject.created_at.asc()).all()


def get_subject(db: Session, subject_id: str, user_id: str) -> DBSubject:
    validate_uuid(subject_id, "subjectId")
    subject = db.query(DBSubject).filter(DBSubject.id == subject_id, DBSubject.user_id == user_id).first()
    if not subject:
        raise NotFoundError("Subject", subject_id)
    return subject


def get_subjects_by_ids(db: Session, user_id: str, subject_ids: List[str]) -> List[DBSubject]:
    if not subject_ids:
        return []
    for subject_id in subject_ids:
        validate_uuid(subject_id, "selectedSubjects")
    return db.query(DBSubject).filter(DBSubject.id.in_(subject_ids), DBSubject.user_id == user_id).all()


def _max_order(db: Session, workspace_id: str) -> int:
    value = db.query(func.max(DBSubject.order)).filter(DBSubject.workspace_id == workspace_id).scalar()
    return value if value is not None else -1


def find_by_name(db: Session, workspace_id: str, name: str) -> Optional[DBSubject]:
    return db.query(DBSubject).filter(
        DBSubject.workspace_id == workspace_id,
        func.lower(DBSubject.name) == name.strip().lower(),
    ).first()


def create_subject(db: Session, user_id: str, workspace_id: str, name: str,
                   description: Optional[str] = None, order: Optional[int] = None,
                   source: str = "manual") -> Tuple[DBSubject, bool]:
    """
    Create a subject unless one with the same name (case-insensitive) exists.

    Returns:
        (subject, created)
    """
    get_workspace(db, workspace_id, user_id)
    clean_name = sanitize_text(name, "Subject name")

    existing = find_by_name(db, workspace_id, clean_name)
    if existing:
        logger.info(f"Subject '{clean_name}' already exists in workspace {workspace_id}")
        return existing, False

    subject = DBSubject(
        workspace_id=workspace_id,
        user_id=user_id,
        name=clean_name,
        description=sanitize_description(description),
        source=source,
        order=order if order is not None else _max_order(db, workspace_id) + 1,
    )
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return subject, True


def update_subject(db: Session, subject_id: str, user_id: str, name: Optional[str] = None,
                   description: Optional[str] = None, order: Optional[int] = None) -> DBSubject:
    subject = get_subject(db, subject_id, user_id)
    if name is not None:
        clean_name = sanitize_text(name, "Subject name")
        duplicate = find_by_name(db, subject.workspace_id, clean_name)
        if duplicate and duplicate.id != subject.id:
            raise ValidationError(f"A subject named '{clean_name}' already exists")
        subject.name = clean_name
    if description is not None:
        subject.description = sanitize_description(description)
    if order is not None:
        subject.order = order
    if name is not None or description is not None:
        # indexed text is stale until the workspace is re-indexed
        drop_subject_embeddings(db, subject.id)
    db.commit()
    db.refresh(subject)
    return subject


def delete_subject(db: Session, subject_id: str, user_id: str) -> None:
    """Delete a subject, its performance rows and its search entry."""
    subject = get_subject(db, subject_id, user_id)
    drop_subject_embeddings(db, subject.id)
    db.delete(subject)
    db.commit()


# =============================================================================
# AI Extraction
# =============================================================================

def are_too_similar(name1: str, name2: str) -> bool:
    """Names match after normalization, or one contains the other."""
    a = name1.lower().strip()
    b = name2.lower().strip()
    if not a or not b:
        return False
    return a == b or a in b or b in a


def _parse_subject_response(content: str) -> Tuple[List[str], Optional[str]]:
    """Returns (names, unrelated_message)."""
    parsed = safe_parse_json(content)
    if not isinstance(parsed, list):
        raise AIResponseParseError("AI response is not a valid array of subjects")

    if len(parsed) == 1 and isinstance(parsed[0], dict) and parsed[0].get("status") == "unrelated_content":
        return [], parsed[0].get("message") or "The content does not appear to be learning material."

    names = [
        item["name"].strip()
        for item in parsed
        if isinstance(item, dict) and isinstance(item.get("name"), str) and item["name"].strip()
    ]
    return names, None


async def generate_subjects_from_file(
    db: Session,
    user_id: str,
    workspace_id: str,
    file_id: str,
    count_range: str = "medium",
    specificity: str = "general",
    locale: Optional[str] = None,
    ai_provider: Optional[str] = None,
) -> Dict:
    """
    Extract new subjects from a file's text with the configured model.

    Content that exceeds the model's context budget is split into chunks;
    each chunk sees the names found so far. Names too similar to an existing
    or already accepted subject are dropped.

    Returns:
        {"existing_subjects", "new_subjects", "unrelated_content", "unrelated_message"}

    Raises:
        ValidationError: If the file has too little text
        AIResponseParseError: If the model response is not a subject list
    """
    get_workspace(db, workspace_id, user_id)
    file = get_file(db, file_id, user_id)
    if file.workspace_id != workspace_id:
        raise NotFoundError("File", file_id)
    content = get_file_content(db, file)
    if len(content.strip()) < MIN_CONTENT_LENGTH:
        raise ValidationError("Not enough text content extracted from the file to generate subjects.")

    existing = list_subjects(db, user_id, workspace_id)
    known_names = [s.name for s in existing]

    resolved = resolve_provider(ai_provider, "subject_extraction")
    provider = llm_providers.get_provider(resolved.name)
    language = locale or (file.file_metadata or {}).get("detectedLanguage") or "en"
    max_tokens = min(resolved.max_tokens, SUBJECT_MAX_TOKENS)

    chunks = split_content(content, content_budget_chars(resolved.name, resolved.model, max_tokens))
    if len(chunks) > 1:
        logger.info(f"Subject extraction for file {file_id} split into {len(chunks)} chunks")

    accepted: List[str] = []
    unrelated_messages = []
    for chunk in chunks:
        prompt = build_subjects_prompt(
            chunk,
            existing_names=known_names + accepted,
            count_range=count_range,
            specificity=specificity,
            language=language if language in ("he", "ar") else "en",
        )
        response = await llm_providers.cached_chat_completion(
            provider,
            messages=[{"role": "user", "content": prompt}],
            model=resolved.model,
            temperature=resolved.temperature,
            max_tokens=max_tokens,
        )

        names, unrelated_message = _parse_subject_response(response.content)
        if unrelated_message:
            unrelated_messages.append(unrelated_message)
            continue

        for name in names:
            similar_to = next((n for n in known_names + accepted if are_too_similar(name, n)), None)
            if similar_to:
                logger.debug(f"Filtered out similar subject: '{name}' (similar to '{similar_to}')")
                continue
            accepted.append(name)

    if unrelated_messages and len(unrelated_messages) == len(chunks):
        logger.info(f"AI reported unrelated content for file {file_id}: {unrelated_messages[0]}")
        return {
            "existing_subjects": existing,
            "new_subjects": [],
            "unrelated_content": True,
            "unrelated_message": unrelated_messages[0],
        }

    base_order = _max_order(db, workspace_id)
    new_subjects = []
    for i, name in enumerate(accepted):
        subject = DBSubject(
            workspace_id=workspace_id,
            user_id=user_id,
            name=sanitize_text(name[:255], "Subject name"),
            source="auto",
            order=base_order + i + 1,
        )
        db.add(subject)
        new_subjects.append(subject)

    db.commit()
    for subject in new_subjects:
        db.refresh(subject)

    logger.info(f"Generated {len(new_subjects)} new subjects for workspace {workspace_id} from file {file_id}")
    return {
        "existing_subjects": existing,
        "new_subjects": new_subjects,
        "unrelated_content": False,
        "unrelated_message": None,
    }
