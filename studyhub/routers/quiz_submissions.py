"""
Quiz Submissions Router for StudyHub.

Endpoints:
- POST /quiz-submissions - Submit answers (graded server-side)
- GET /quiz-submissions?quizId=&workspaceId= - Latest submission for a quiz
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import submission_service
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import QuizSubmission, QuizSubmissionCreate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/quiz-submissions",
    tags=["quiz-submissions"],
    responses={401: {"description": "Unauthorized"}},
)


@router.post("", response_model=QuizSubmission, status_code=status.HTTP_201_CREATED)
async def submit_answers(
    body: QuizSubmissionCreate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Grade and store a quiz attempt; updates per-subject performance."""
    submission = submission_service.submit_quiz_answers(
        db, auth.user_id, body.quiz_id, body.workspace_id, body.answers
    )
    return QuizSubmission.model_validate(submission)


@router.get("", response_model=Optional[QuizSubmission])
async def get_latest_submission(
    quiz_id: str = Query(..., alias="quizId"),
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Most recent submission of the caller for a quiz, or null."""
    submission = submission_service.latest_submission(db, auth.user_id, quiz_id, workspace_id)
    return QuizSubmission.model_validate(submission) if submission else None
