"""
Quizzes Router for StudyHub.

Endpoints:
- GET /quizzes?workspaceId=&fileId= - List quizzes
- POST /quizzes/generate - Generate a quiz from a file with AI
- GET /quizzes/{quiz_id} - Get a quiz
- PATCH /quizzes/{quiz_id} - Update title, comments or selected subjects
- DELETE /quizzes/{quiz_id} - Delete a quiz and its submissions
- POST /quizzes/{quiz_id}/embeddings - Index the quiz's questions for search
- GET /quizzes/{quiz_id}/export - Download the quiz as .docx
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import quiz_service
from ..config import settings
from ..constants import DOCX_MIME_TYPE
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..exceptions import AuthorizationError
from ..export_service import export_filename, quiz_to_docx
from ..file_embeddings import index_quiz_questions
from ..models import Quiz, QuizGenerateRequest, QuizUpdate
from ..quiz_generation import generate_quiz

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
GENERATION_RATE_LIMIT = "1000/minute" if settings.testing else settings.generation_rate_limit

router = APIRouter(
    prefix="/quizzes",
    tags=["quizzes"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[Quiz])
async def list_quizzes(
    workspace_id: str = Query(..., alias="workspaceId"),
    file_id: Optional[str] = Query(None, alias="fileId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    quizzes = quiz_service.list_quizzes(db, auth.user_id, workspace_id, file_id)
    return [Quiz.model_validate(q) for q in quizzes]


@router.post("/generate", response_model=Quiz, status_code=status.HTTP_201_CREATED)
@limiter.limit(GENERATION_RATE_LIMIT)
async def generate(
    request: Request,
    body: QuizGenerateRequest,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Generate a quiz from a file.

    Rate limited. Errors map by type: 400 invalid input or unsafe
    instructions, 404 unknown workspace/file, 413 file or context too large,
    429 provider rate limit (with Retry-After), 500 provider or parse failure.
    """
    quiz = await generate_quiz(db, auth.user_id, body)
    return Quiz.model_validate(quiz)


@router.get("/{quiz_id}", response_model=Quiz)
async def get_quiz(
    quiz_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return Quiz.model_validate(quiz_service.get_quiz(db, quiz_id, auth.user_id))


@router.patch("/{quiz_id}", response_model=Quiz)
async def update_quiz(
    quiz_id: str,
    body: QuizUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    quiz = quiz_service.update_quiz(
        db,
        quiz_id,
        auth.user_id,
        title=body.title,
        user_comments=body.user_comments,
        selected_subjects=body.selected_subjects,
    )
    return Quiz.model_validate(quiz)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(
    quiz_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    quiz_service.delete_quiz(db, quiz_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{quiz_id}/embeddings")
async def index_quiz_embeddings(
    quiz_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Embed each question of a quiz for vector search."""
    quiz = quiz_service.get_quiz(db, quiz_id, auth.user_id)
    count = await index_quiz_questions(db, quiz)
    db.commit()
    return {"quizId": quiz.id, "count": count}


@router.get("/{quiz_id}/export")
async def export_quiz(
    quiz_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Download a quiz as a Word document.

    Raises:
        404: Unknown quiz
        403: Quiz owned by another user
    """
    quiz = quiz_service.get_quiz_any_owner(db, quiz_id)
    if quiz.user_id != auth.user_id:
        raise AuthorizationError("You do not have access to this quiz")

    return Response(
        content=quiz_to_docx(quiz),
        media_type=DOCX_MIME_TYPE,
        headers={"Content-Disposition": f"attachment; filename=\"{export_filename(quiz.title)}\""},
    )
