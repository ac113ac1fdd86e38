"""
Subjects Router for StudyHub.

Endpoints:
- GET /subjects?workspaceId= - List subjects in display order
- POST /subjects - Create a subject (returns the existing one on a name clash)
- PATCH /subjects/{subject_id} - Update a subject
- DELETE /subjects/{subject_id} - Delete a subject and its performance rows
- POST /subjects/generate - Extract subjects from a file with AI
- POST /subjects/embeddings - Index subjects for vector search
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import subject_service
from ..config import settings
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..file_embeddings import index_subjects
from ..models import (
    Subject,
    SubjectCreate,
    SubjectGenerateRequest,
    SubjectGenerateResponse,
    SubjectIndexRequest,
    SubjectUpdate,
)
from ..workspace_service import get_workspace

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
GENERATION_RATE_LIMIT = "1000/minute" if settings.testing else settings.generation_rate_limit

router = APIRouter(
    prefix="/subjects",
    tags=["subjects"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[Subject])
async def list_subjects(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return [Subject.model_validate(s) for s in subject_service.list_subjects(db, auth.user_id, workspace_id)]


@router.post("", response_model=Subject, status_code=status.HTTP_201_CREATED)
async def create_subject(
    body: SubjectCreate,
    response: Response,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Create a subject; 200 with the existing subject if the name is taken."""
    subject, created = subject_service.create_subject(
        db, auth.user_id, body.workspace_id, body.name, body.description, body.order
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return Subject.model_validate(subject)


@router.patch("/{subject_id}", response_model=Subject)
async def update_subject(
    subject_id: str,
    body: SubjectUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    subject = subject_service.update_subject(
        db, subject_id, auth.user_id, name=body.name, description=body.description, order=body.order
    )
    return Subject.model_validate(subject)


@router.delete("/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subject(
    subject_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    subject_service.delete_subject(db, subject_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# AI Generation
# =============================================================================

@router.post("/generate", response_model=SubjectGenerateResponse)
@limiter.limit(GENERATION_RATE_LIMIT)
async def generate_subjects(
    request: Request,
    body: SubjectGenerateRequest,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Extract subjects from a file's text.

    Rate limited. Returns the workspace's existing subjects plus the newly
    created ones; when the model judges the file unrelated to learning,
    unrelatedContent is true and nothing is created.
    """
    result = await subject_service.generate_subjects_from_file(
        db,
        auth.user_id,
        body.workspace_id,
        body.file_id,
        count_range=body.count_range,
        specificity=body.specificity,
        locale=body.locale,
        ai_provider=body.ai_provider,
    )
    return SubjectGenerateResponse(
        existing_subjects=[Subject.model_validate(s) for s in result["existing_subjects"]],
        new_subjects=[Subject.model_validate(s) for s in result["new_subjects"]],
        unrelated_content=result["unrelated_content"],
        unrelated_message=result["unrelated_message"],
    )


@router.post("/embeddings")
async def index_subject_embeddings(
    body: SubjectIndexRequest,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Embed a workspace's subjects (or the given subset) for vector search."""
    get_workspace(db, body.workspace_id, auth.user_id)
    count = await index_subjects(db, body.workspace_id, body.subject_ids)
    db.commit()
    return {"workspaceId": body.workspace_id, "count": count}
