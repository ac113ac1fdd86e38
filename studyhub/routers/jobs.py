"""
Jobs Router for StudyHub - Background Task Status.

Endpoints:
- GET /tasks/{task_id} - Status of a background task record

Allows the frontend to poll embedding generation started via
POST /files/{file_id}/embeddings.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import task_records
from ..database import get_db
from ..dependencies import AuthContext, authenticate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("/{task_id}")
async def get_task_status(
    task_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Get a background task record.

    States:
    - pending: Recorded, waiting for a worker
    - running: A worker picked it up
    - succeeded: Finished; result holds the outcome
    - failed: Finished with error

    Raises:
        404: Unknown task or owned by another user
    """
    task = task_records.get_task(db, task_id, auth.user_id)
    return task_records.task_to_dict(task)
