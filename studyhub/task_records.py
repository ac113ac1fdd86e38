"""
Persisted background task records.

A task record is the source of truth for the status of a background job,
independent of the Celery result backend:

    pending -> running -> (succeeded | failed)
    pending -> failed        (dispatch failed)

start_task coalesces: while a pending or running task exists for the same
(kind, key), starting again returns that task instead of creating a new one.
An active task older than the worker time limit is stale: it is marked
failed and no longer blocks a new one.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from .constants import TASK_TIME_LIMIT_SECONDS
from .db_models import DBBackgroundTask
from .exceptions import NotFoundError, TaskStateError

logger = logging.getLogger(__name__)

PENDING = "pending"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"

ACTIVE_STATUSES = (PENDING, RUNNING)
FINISHED_STATUSES = (SUCCEEDED, FAILED)

STALE_AFTER = timedelta(seconds=TASK_TIME_LIMIT_SECONDS)

ALLOWED_TRANSITIONS = {
    PENDING: {RUNNING, FAILED},
    RUNNING: {SUCCEEDED, FAILED},
    SUCCEEDED: set(),
    FAILED: set(),
}


def _transition(task: DBBackgroundTask, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(task.status, set()):
        raise TaskStateError(task.id, task.status, target)
    logger.debug(f"Task {task.id} ({task.kind}): {task.status} -> {target}")
    task.status = target


def find_active_task(db: Session, kind: str, key: str) -> Optional[DBBackgroundTask]:
    return db.query(DBBackgroundTask).filter(
        DBBackgroundTask.kind == kind,
        DBBackgroundTask.key == key,
        DBBackgroundTask.status.in_(ACTIVE_STATUSES),
    ).order_by(DBBackgroundTask.created_at.desc()).first()


def is_stale(task: DBBackgroundTask, now: Optional[datetime] = None) -> bool:
    """An active task whose last activity is older than the worker time limit."""
    if task.status not in ACTIVE_STATUSES:
        return False
    last_activity = task.started_at or task.created_at
    return last_activity is not None and (now or datetime.utcnow()) - last_activity > STALE_AFTER


def latest_task(db: Session, kind: str, key: str) -> Optional[DBBackgroundTask]:
    return db.query(DBBackgroundTask).filter(
        DBBackgroundTask.kind == kind,
        DBBackgroundTask.key == key,
    ).order_by(DBBackgroundTask.created_at.desc()).first()


def start_task(db: Session, kind: str, key: str, user_id: str) -> Tuple[DBBackgroundTask, bool]:
    """
    Create a pending task unless one is already active for (kind, key).

    Returns:
        (task, created) - created is False when an active task was reused
    """
    existing = find_active_task(db, kind, key)
    if existing and is_stale(existing):
        logger.warning(f"Task {existing.id} for {kind}:{key} stuck in {existing.status}, marking failed")
        mark_failed(db, existing, "Task timed out without finishing")
        existing = None
    if existing:
        logger.info(f"Task {kind}:{key} already {existing.status} ({existing.id}), not starting another")
        return existing, False

    task = DBBackgroundTask(kind=kind, key=key, user_id=user_id, status=PENDING)
    db.add(task)
    db.flush()
    logger.info(f"Created task {task.id} for {kind}:{key}")
    return task, True


def get_task(db: Session, task_id: str, user_id: Optional[str] = None) -> DBBackgroundTask:
    """
    Load a task record, optionally scoped to its owner.

    Raises:
        NotFoundError: If missing or owned by another user
    """
    query = db.query(DBBackgroundTask).filter(DBBackgroundTask.id == task_id)
    if user_id is not None:
        query = query.filter(DBBackgroundTask.user_id == user_id)
    task = query.first()
    if not task:
        raise NotFoundError("Task", task_id)
    return task


def mark_running(db: Session, task: DBBackgroundTask) -> DBBackgroundTask:
    _transition(task, RUNNING)
    task.started_at = datetime.utcnow()
    db.flush()
    return task


def resume_running(db: Session, task: DBBackgroundTask) -> DBBackgroundTask:
    """Restart the clock on a running task redelivered after its worker was lost."""
    if task.status != RUNNING:
        raise TaskStateError(task.id, task.status, RUNNING)
    logger.warning(f"Task {task.id} ({task.kind}) redelivered while running, resuming")
    task.started_at = datetime.utcnow()
    db.flush()
    return task


def mark_succeeded(db: Session, task: DBBackgroundTask, result: Any = None) -> DBBackgroundTask:
    _transition(task, SUCCEEDED)
    task.result = result
    task.finished_at = datetime.utcnow()
    db.flush()
    return task


def mark_failed(db: Session, task: DBBackgroundTask, error: str) -> DBBackgroundTask:
    _transition(task, FAILED)
    task.error = error
    task.finished_at = datetime.utcnow()
    db.flush()
    return task


def task_to_dict(task: DBBackgroundTask) -> dict:
    return {
        "id": task.id,
        "kind": task.kind,
        "key": task.key,
        "status": task.status,
        "error": task.error,
        "result": task.result,
        "createdAt": task.created_at.isoformat() if task.created_at else None,
        "startedAt": task.started_at.isoformat() if task.started_at else None,
        "finishedAt": task.finished_at.isoformat() if task.finished_at else None,
    }
