"""Quiz persistence and previous-question lookup."""

import logging
import re
from typing import List, Optional

from sqlalchemy.orm import Session

from .constants import PREVIOUS_QUIZ_LOOKBACK
from .db_models import DBQuiz
from .exceptions import NotFoundError, ValidationError
from .file_embeddings import drop_quiz_question_embeddings
from .ingest import is_non_latin
from .sanitization import ensure_safe_instructions, sanitize_text, validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)


def get_quiz(db: Session, quiz_id: str, user_id: str) -> DBQuiz:
    """
    Load a quiz owned by user_id.

    Raises:
        NotFoundError: If missing or owned by another user
    """
    validate_uuid(quiz_id, "quizId")
    quiz = db.query(DBQuiz).filter(DBQuiz.id == quiz_id, DBQuiz.user_id == user_id).first()
    if not quiz:
        raise NotFoundError("Quiz", quiz_id)
    return quiz


def get_quiz_any_owner(db: Session, quiz_id: str) -> DBQuiz:
    """Load a quiz without the ownership filter (callers check ownership themselves)."""
    validate_uuid(quiz_id, "quizId")
    quiz = db.query(DBQuiz).filter(DBQuiz.id == quiz_id).first()
    if not quiz:
        raise NotFoundError("Quiz", quiz_id)
    return quiz


def list_quizzes(db: Session, user_id: str, workspace_id: str, file_id: Optional[str] = None) -> List[DBQuiz]:
    get_workspace(db, workspace_id, user_id)
    query = db.query(DBQuiz).filter(DBQuiz.workspace_id == workspace_id, DBQuiz.user_id == user_id)
    if file_id:
        validate_uuid(file_id, "fileId")
        query = query.filter(DBQuiz.file_id == file_id)
    return query.order_by(DBQuiz.created_at.desc()).all()


def update_quiz(db: Session, quiz_id: str, user_id: str, title: Optional[str] = None,
                user_comments: Optional[str] = None, selected_subjects: Optional[List[str]] = None) -> DBQuiz:
    quiz = get_quiz(db, quiz_id, user_id)
    if title is not None:
        quiz.title = sanitize_text(title, "Quiz title", max_length=512)
    if user_comments is not None:
        quiz.user_comments = ensure_safe_instructions(user_comments)
    if selected_subjects is not None:
        for subject_id in selected_subjects:
            validate_uuid(subject_id, "selectedSubjects")
        quiz.selected_subjects = list(selected_subjects)
    db.commit()
    db.refresh(quiz)
    return quiz


def delete_quiz(db: Session, quiz_id: str, user_id: str) -> None:
    """Delete a quiz, its submissions and its indexed questions."""
    quiz = get_quiz(db, quiz_id, user_id)
    drop_quiz_question_embeddings(db, quiz.id)
    db.delete(quiz)
    db.commit()
    logger.info(f"Deleted quiz {quiz_id}")


def _key_concepts(text: str) -> Optional[str]:
    words = [w for w in re.findall(r"\w+", text) if len(w) > 3]
    if len(words) < 5:
        return None
    return "Key concepts: " + " ".join(words[:5])


def previous_question_texts(db: Session, workspace_id: str, file_id: Optional[str],
                            last: int = PREVIOUS_QUIZ_LOOKBACK) -> List[str]:
    """
    Question texts from the most recent quizzes for a file.

    Besides the questions themselves, Latin-script questions contribute a
    "Key concepts" line (first five longer words) and right-to-left questions
    contribute a variant without question marks, so the model can avoid
    rephrasings as well as exact repeats.
    """
    if not workspace_id:
        raise ValidationError("Missing required field: workspaceId")

    query = db.query(DBQuiz).filter(DBQuiz.workspace_id == workspace_id)
    if file_id:
        query = query.filter(DBQuiz.file_id == file_id)
    quizzes = query.order_by(DBQuiz.created_at.desc()).limit(last).all()

    texts: List[str] = []
    for quiz in quizzes:
        for question in quiz.questions or []:
            text = (question.get("question") or "").strip()
            if not text:
                continue
            texts.append(text)
            if is_non_latin(text):
                stripped = text.replace("?", "").replace("؟", "").strip()
                if stripped and stripped != text:
                    texts.append(stripped)
            else:
                concepts = _key_concepts(text)
                if concepts:
                    texts.append(concepts)

    logger.debug(f"Found {len(texts)} previous question texts for workspace {workspace_id}")
    return texts
