"""
Workspace persistence.

Every workspace lookup goes through get_workspace, which validates the id
and enforces ownership (another user's workspace is reported as not found).
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from . import storage
from .db_models import DBWorkspace
from .exceptions import NotFoundError
from .sanitization import sanitize_description, sanitize_text, validate_uuid

logger = logging.getLogger(__name__)


def create_workspace(db: Session, user_id: str, name: str, description: Optional[str] = None) -> DBWorkspace:
    workspace = DBWorkspace(
        user_id=user_id,
        name=sanitize_text(name, "Workspace name"),
        description=sanitize_description(description),
    )
    db.add(workspace)
    db.commit()
    db.refresh(workspace)
    logger.info(f"Created workspace {workspace.id} for user {user_id}")
    return workspace


def list_workspaces(db: Session, user_id: str) -> List[DBWorkspace]:
    return db.query(DBWorkspace).filter(
        DBWorkspace.user_id == user_id
    ).order_by(DBWorkspace.created_at.desc()).all()


def get_workspace(db: Session, workspace_id: str, user_id: str) -> DBWorkspace:
    """
    Load a workspace owned by user_id.

    Raises:
        ValidationError: If workspace_id is missing or not a UUID
        NotFoundError: If it does not exist or belongs to another user
    """
    validate_uuid(workspace_id, "workspaceId")
    workspace = db.query(DBWorkspace).filter(
        DBWorkspace.id == workspace_id,
        DBWorkspace.user_id == user_id,
    ).first()
    if not workspace:
        raise NotFoundError("Workspace", workspace_id)
    return workspace


def update_workspace(db: Session, workspace_id: str, user_id: str,
                     name: Optional[str] = None, description: Optional[str] = None) -> DBWorkspace:
    workspace = get_workspace(db, workspace_id, user_id)
    if name is not None:
        workspace.name = sanitize_text(name, "Workspace name")
    if description is not None:
        workspace.description = sanitize_description(description)
    db.commit()
    db.refresh(workspace)
    return workspace


def delete_workspace(db: Session, workspace_id: str, user_id: str) -> None:
    """
    Delete a workspace and everything it owns.

    Rows go through the ORM cascade (files, embeddings, subjects,
    performance, quizzes, submissions, flashcards, past exams, patterns);
    stored blobs are removed once the transaction commits.
    """
    workspace = get_workspace(db, workspace_id, user_id)
    counts = {
        "files": len(workspace.files),
        "subjects": len(workspace.subjects),
        "quizzes": len(workspace.quizzes),
        "flashcards": len(workspace.flashcards),
    }
    db.delete(workspace)
    db.commit()

    storage.delete_workspace_blobs(workspace_id)
    logger.info(f"Deleted workspace {workspace_id} with {counts}")
