"""
Flashcards Router for StudyHub.

Endpoints:
- GET /flashcards?workspaceId= - List flashcards
- POST /flashcards - Create a flashcard
- POST /flashcards/batch - Create several flashcards at once
- PATCH /flashcards/{flashcard_id} - Update question, answer, status or pages
- DELETE /flashcards/{flashcard_id} - Delete a flashcard
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import flashcard_service
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import Flashcard, FlashcardBatchCreate, FlashcardCreate, FlashcardUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/flashcards",
    tags=["flashcards"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[Flashcard])
async def list_flashcards(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    cards = flashcard_service.list_flashcards(db, auth.user_id, workspace_id)
    return [Flashcard.model_validate(c) for c in cards]


@router.post("", response_model=Flashcard, status_code=status.HTTP_201_CREATED)
async def create_flashcard(
    body: FlashcardCreate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    card = flashcard_service.create_flashcard(
        db,
        auth.user_id,
        body.workspace_id,
        body.question,
        body.answer,
        status=body.status,
        pages=body.pages,
        file_name=body.file_name,
    )
    return Flashcard.model_validate(card)


@router.post("/batch", status_code=status.HTTP_201_CREATED)
async def create_flashcards_batch(
    body: FlashcardBatchCreate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Create many flashcards; a 400 names the index of the first invalid card."""
    cards = flashcard_service.create_flashcards_batch(db, auth.user_id, body.flashcards)
    return {"count": len(cards)}


@router.patch("/{flashcard_id}", response_model=Flashcard)
async def update_flashcard(
    flashcard_id: str,
    body: FlashcardUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    card = flashcard_service.update_flashcard(
        db,
        flashcard_id,
        auth.user_id,
        question=body.question,
        answer=body.answer,
        status=body.status,
        pages=body.pages,
    )
    return Flashcard.model_validate(card)


@router.delete("/{flashcard_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flashcard(
    flashcard_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    flashcard_service.delete_flashcard(db, flashcard_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
