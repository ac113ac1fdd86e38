"""
Workspaces Router for StudyHub.

Endpoints:
- GET /workspaces - List the caller's workspaces
- POST /workspaces - Create a workspace
- GET /workspaces/{workspace_id} - Get a workspace
- PATCH /workspaces/{workspace_id} - Rename / re-describe a workspace
- DELETE /workspaces/{workspace_id} - Delete a workspace and everything in it
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import workspace_service
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import Workspace, WorkspaceCreate, WorkspaceUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/workspaces",
    tags=["workspaces"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[Workspace])
async def list_workspaces(
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """List the caller's workspaces, newest first."""
    return [Workspace.model_validate(w) for w in workspace_service.list_workspaces(db, auth.user_id)]


@router.post("", response_model=Workspace, status_code=status.HTTP_201_CREATED)
async def create_workspace(
    body: WorkspaceCreate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    workspace = workspace_service.create_workspace(db, auth.user_id, body.name, body.description)
    return Workspace.model_validate(workspace)


@router.get("/{workspace_id}", response_model=Workspace)
async def get_workspace(
    workspace_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return Workspace.model_validate(workspace_service.get_workspace(db, workspace_id, auth.user_id))


@router.patch("/{workspace_id}", response_model=Workspace)
async def update_workspace(
    workspace_id: str,
    body: WorkspaceUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    workspace = workspace_service.update_workspace(
        db, workspace_id, auth.user_id, name=body.name, description=body.description
    )
    return Workspace.model_validate(workspace)


@router.delete("/{workspace_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(
    workspace_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Delete a workspace.

    Files, embeddings, subjects, performance, quizzes, submissions,
    flashcards, past exams, patterns and stored blobs go with it.
    """
    workspace_service.delete_workspace(db, workspace_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
