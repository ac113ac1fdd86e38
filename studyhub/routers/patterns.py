"""
Patterns Router for StudyHub.

Endpoints:
- GET /patterns?workspaceId= - List active patterns
- POST /patterns/generate - Extract a pattern from a past exam with AI
- GET /patterns/{pattern_id} - Get a pattern
- PATCH /patterns/{pattern_id} - Rename or (de)activate a pattern
- DELETE /patterns/{pattern_id} - Delete a pattern
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .. import pattern_service
from ..config import settings
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import Pattern, PatternGenerateRequest, PatternUpdate

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
GENERATION_RATE_LIMIT = "1000/minute" if settings.testing else settings.generation_rate_limit

router = APIRouter(
    prefix="/patterns",
    tags=["patterns"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[Pattern])
async def list_patterns(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return [Pattern.model_validate(p) for p in pattern_service.list_patterns(db, auth.user_id, workspace_id)]


@router.post("/generate", response_model=Pattern, status_code=status.HTTP_201_CREATED)
@limiter.limit(GENERATION_RATE_LIMIT)
async def generate_pattern(
    request: Request,
    body: PatternGenerateRequest,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Analyze a past exam and store the resulting pattern. Rate limited."""
    pattern = await pattern_service.generate_pattern_for_past_exam(
        db, auth.user_id, body.past_exam_id, ai_provider=body.ai_provider
    )
    return Pattern.model_validate(pattern)


@router.get("/{pattern_id}", response_model=Pattern)
async def get_pattern(
    pattern_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return Pattern.model_validate(pattern_service.get_pattern(db, pattern_id, auth.user_id))


@router.patch("/{pattern_id}", response_model=Pattern)
async def update_pattern(
    pattern_id: str,
    body: PatternUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    pattern = pattern_service.update_pattern(db, pattern_id, auth.user_id, name=body.name, active=body.active)
    return Pattern.model_validate(pattern)


@router.delete("/{pattern_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pattern(
    pattern_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    pattern_service.delete_pattern(db, pattern_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
