"""
Past Exams Router for StudyHub.

Endpoints:
- GET /past-exams?workspaceId= - List past exams
- POST /past-exams - Upload a past exam (multipart: workspaceId, file, name?, year?, semester?, course?)
- GET /past-exams/{past_exam_id} - Get a past exam
- DELETE /past-exams/{past_exam_id} - Delete a past exam and its blob
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from .. import past_exam_service
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import PastExam

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/past-exams",
    tags=["past-exams"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[PastExam])
async def list_past_exams(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    exams = past_exam_service.list_past_exams(db, auth.user_id, workspace_id)
    return [PastExam.model_validate(e) for e in exams]


@router.post("", response_model=PastExam, status_code=status.HTTP_201_CREATED)
async def upload_past_exam(
    workspace_id: str = Form(..., alias="workspaceId"),
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    year: Optional[str] = Form(None),
    semester: Optional[str] = Form(None),
    course: Optional[str] = Form(None),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """Upload a past exam (PDF or DOCX, up to roughly 15 pages)."""
    content = await file.read()
    exam = past_exam_service.upload_past_exam(
        db,
        auth.user_id,
        workspace_id,
        file.filename,
        content,
        mime_type=file.content_type,
        name=name,
        year=year,
        semester=semester,
        course=course,
    )
    return PastExam.model_validate(exam)


@router.get("/{past_exam_id}", response_model=PastExam)
async def get_past_exam(
    past_exam_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return PastExam.model_validate(past_exam_service.get_past_exam(db, past_exam_id, auth.user_id))


@router.delete("/{past_exam_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_past_exam(
    past_exam_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    past_exam_service.delete_past_exam(db, past_exam_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
