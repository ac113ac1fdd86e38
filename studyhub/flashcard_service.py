"""Flashcard persistence."""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .db_models import DBFlashcard
from .exceptions import NotFoundError, ValidationError
from .models import FlashcardStatus
from .sanitization import sanitize_text, validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)

MAX_CARD_TEXT_LENGTH = 5000
VALID_STATUSES = tuple(status.value for status in FlashcardStatus)


def _status(value: Optional[str]) -> str:
    if value is None:
        return FlashcardStatus.DONT_KNOW.value
    value = value.value if isinstance(value, FlashcardStatus) else value
    if value not in VALID_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return value


def _pages(value) -> Optional[List[int]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(p, int) and p > 0 for p in value):
        raise ValidationError("Pages must be a list of positive page numbers")
    return value


def list_flashcards(db: Session, user_id: str, workspace_id: str) -> List[DBFlashcard]:
    get_workspace(db, workspace_id, user_id)
    return db.query(DBFlashcard).filter(
        DBFlashcard.workspace_id == workspace_id,
        DBFlashcard.user_id == user_id,
    ).order_by(DBFlashcard.created_at.desc()).all()


def get_flashcard(db: Session, flashcard_id: str, user_id: str) -> DBFlashcard:
    validate_uuid(flashcard_id, "flashcardId")
    card = db.query(DBFlashcard).filter(DBFlashcard.id == flashcard_id, DBFlashcard.user_id == user_id).first()
    if not card:
        raise NotFoundError("Flashcard", flashcard_id)
    return card


def _build_card(user_id: str, workspace_id: str, question: str, answer: str, status=None,
                pages=None, file_name: Optional[str] = None) -> DBFlashcard:
    return DBFlashcard(
        workspace_id=workspace_id,
        user_id=user_id,
        question=sanitize_text(question, "Question", max_length=MAX_CARD_TEXT_LENGTH),
        answer=sanitize_text(answer, "Answer", max_length=MAX_CARD_TEXT_LENGTH),
        status=_status(status),
        pages=_pages(pages),
        file_name=sanitize_text(file_name, "File name", max_length=512, required=False),
    )


def create_flashcard(db: Session, user_id: str, workspace_id: str, question: str, answer: str,
                     status=None, pages=None, file_name: Optional[str] = None) -> DBFlashcard:
    get_workspace(db, workspace_id, user_id)
    card = _build_card(user_id, workspace_id, question, answer, status, pages, file_name)
    db.add(card)
    db.commit()
    db.refresh(card)
    return card


def create_flashcards_batch(db: Session, user_id: str, cards: List[Dict]) -> List[DBFlashcard]:
    """
    Create several flashcards in one transaction.

    Each card is a camelCase dict (workspaceId, question, answer, status?,
    pages?, fileName?). Nothing is stored unless every card is valid.

    Raises:
        ValidationError: Naming the index of the first invalid card
        NotFoundError: If a card targets a workspace the caller does not own
    """
    if not cards:
        raise ValidationError("Flashcards array is empty")

    checked_workspaces = set()
    built = []
    for index, card in enumerate(cards):
        if not isinstance(card, dict):
            raise ValidationError(f"Invalid flashcard at index {index}")

        workspace_id = card.get("workspaceId")
        if not workspace_id:
            raise ValidationError(f"Workspace ID is required for flashcard at index {index}")
        if not card.get("question") or not card.get("answer"):
            raise ValidationError(f"Question and answer are required for flashcard at index {index}")

        if workspace_id not in checked_workspaces:
            get_workspace(db, workspace_id, user_id)
            checked_workspaces.add(workspace_id)

        try:
            built.append(_build_card(
                user_id, workspace_id, card["question"], card["answer"],
                card.get("status"), card.get("pages"), card.get("fileName"),
            ))
        except ValidationError as e:
            raise ValidationError(f"{e.message} (flashcard at index {index})") from e

    db.add_all(built)
    db.commit()
    for card in built:
        db.refresh(card)

    logger.info(f"Created {len(built)} flashcards in batch")
    return built


def update_flashcard(db: Session, flashcard_id: str, user_id: str, question: Optional[str] = None,
                     answer: Optional[str] = None, status=None, pages=None) -> DBFlashcard:
    card = get_flashcard(db, flashcard_id, user_id)
    if question is not None:
        card.question = sanitize_text(question, "Question", max_length=MAX_CARD_TEXT_LENGTH)
    if answer is not None:
        card.answer = sanitize_text(answer, "Answer", max_length=MAX_CARD_TEXT_LENGTH)
    if status is not None:
        card.status = _status(status)
    if pages is not None:
        card.pages = _pages(pages)
    db.commit()
    db.refresh(card)
    return card


def delete_flashcard(db: Session, flashcard_id: str, user_id: str) -> None:
    card = get_flashcard(db, flashcard_id, user_id)
    db.delete(card)
    db.commit()
