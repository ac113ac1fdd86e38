"""
Files Router for StudyHub.

Endpoints:
- GET /files?workspaceId= - List files of a workspace
- POST /files - Upload a file (multipart: workspaceId, file)
- POST /files/extract-text - Extract text from an upload without storing it
- GET /files/{file_id} - Get file metadata
- PATCH /files/{file_id} - Rename / update metadata
- DELETE /files/{file_id} - Delete a file, its embeddings and its blob
- GET /files/{file_id}/download - Download the stored blob
- GET /files/{file_id}/embeddings - Embedding generation status
- POST /files/{file_id}/embeddings - Start embedding generation (background)
"""

import logging
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import file_service
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import ExtractedTextResponse, FileRecord, FileUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/files",
    tags=["files"],
    responses={401: {"description": "Unauthorized"}},
)


def attachment_header(filename: str) -> str:
    """Content-Disposition value that survives non-ASCII filenames."""
    ascii_name = filename.encode("ascii", "ignore").decode() or "download"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


# =============================================================================
# Collection Endpoints
# =============================================================================

@router.get("", response_model=List[FileRecord])
async def list_files(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return [FileRecord.model_validate(f) for f in file_service.list_files(db, auth.user_id, workspace_id)]


@router.post("", response_model=FileRecord, status_code=status.HTTP_201_CREATED)
async def upload_file(
    workspace_id: str = Form(..., alias="workspaceId"),
    file: UploadFile = File(...),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Upload a document (PDF, DOCX, PPTX, TXT, MD).

    The text is extracted on upload; embeddings are generated separately
    via POST /files/{file_id}/embeddings.
    """
    content = await file.read()
    record = file_service.upload_file(
        db, auth.user_id, workspace_id, file.filename, content, mime_type=file.content_type
    )
    return FileRecord.model_validate(record)


@router.post("/extract-text", response_model=ExtractedTextResponse)
async def extract_text(
    file: UploadFile = File(...),
    auth: AuthContext = Depends(authenticate),
):
    """Extract text from a document without storing anything."""
    content = await file.read()
    extracted = file_service.extract_text_only(file.filename, content, mime_type=file.content_type)
    return ExtractedTextResponse(
        text=extracted.text,
        page_count=extracted.page_count,
        language=extracted.language,
        file_name=file.filename,
    )


# =============================================================================
# Item Endpoints
# =============================================================================

@router.get("/{file_id}", response_model=FileRecord)
async def get_file(
    file_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    return FileRecord.model_validate(file_service.get_file(db, file_id, auth.user_id))


@router.patch("/{file_id}", response_model=FileRecord)
async def update_file(
    file_id: str,
    body: FileUpdate,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    record = file_service.update_file(db, file_id, auth.user_id, name=body.name, metadata=body.metadata)
    return FileRecord.model_validate(record)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    file_service.delete_file(db, file_id, auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    record = file_service.get_file(db, file_id, auth.user_id)
    return Response(
        content=file_service.read_blob(record),
        media_type=record.mime_type,
        headers={"Content-Disposition": attachment_header(record.name)},
    )


# =============================================================================
# Embeddings
# =============================================================================

@router.get("/{file_id}/embeddings")
async def get_embedding_status(
    file_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    record = file_service.get_file(db, file_id, auth.user_id)
    return file_service.embedding_status(db, record)


@router.post("/{file_id}/embeddings")
async def generate_embeddings(
    file_id: str,
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Start background embedding generation.

    Returns 202 with the task id, or 200 with status "processing" when a
    generation for this file is already pending or running. Poll
    GET /tasks/{task_id} or GET /files/{file_id}/embeddings for progress.
    """
    record = file_service.get_file(db, file_id, auth.user_id)
    result = file_service.start_embedding_generation(db, record, auth.user_id)
    code = status.HTTP_202_ACCEPTED if result["status"] == "started" else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=result)
