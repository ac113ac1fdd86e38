"""
Search Router for StudyHub.

Endpoints:
- POST /search/vector - Semantic search over subjects, file chunks or quiz questions
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import vector_search
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import VectorSearchRequest
from ..sanitization import validate_uuid

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/search",
    tags=["search"],
    responses={401: {"description": "Unauthorized"}},
)


@router.post("/vector")
async def search_vector(
    body: VectorSearchRequest,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Vector search.

    Body: {query, contentType (subjects|files|quiz_questions), workspaceId?,
    options: {limit?, threshold?}}. Only the caller's workspaces are searched.
    """
    if body.workspace_id:
        validate_uuid(body.workspace_id, "workspaceId")
    return await vector_search.search(
        db,
        body.query,
        body.content_type,
        auth.user_id,
        workspace_id=body.workspace_id,
        limit=body.options.limit,
        threshold=body.options.threshold,
    )
