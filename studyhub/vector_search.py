"""
Vector search over subjects, file chunks and quiz questions.

Candidates are loaded from the database (scoped to the caller's
workspaces), scored against the query embedding by cosine similarity,
filtered by threshold and capped at the limit.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .config import settings
from .db_models import DBContentEmbedding, DBFile, DBFileEmbedding, DBWorkspace
from .embedding_service import find_similar, get_embedding_service
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

VALID_CONTENT_TYPES = ("subjects", "files", "quiz_questions")


def _file_candidates(db: Session, user_id: str, workspace_id: Optional[str]):
    query = db.query(DBFileEmbedding, DBFile).join(DBFile, DBFileEmbedding.file_id == DBFile.id).filter(
        DBFile.user_id == user_id
    )
    if workspace_id:
        query = query.filter(DBFile.workspace_id == workspace_id)

    for row, file in query.all():
        item = {
            "id": row.id,
            "fileId": file.id,
            "fileName": file.name,
            "workspaceId": file.workspace_id,
            "content": row.content,
            "pageNumber": (row.chunk_metadata or {}).get("pageNumber"),
            "chunkIndex": row.chunk_index,
        }
        yield item, row.embedding


def _content_candidates(db: Session, content_type: str, user_id: str, workspace_id: Optional[str]):
    query = db.query(DBContentEmbedding).join(
        DBWorkspace, DBContentEmbedding.workspace_id == DBWorkspace.id
    ).filter(
        DBContentEmbedding.content_type == content_type,
        DBWorkspace.user_id == user_id,
    )
    if workspace_id:
        query = query.filter(DBContentEmbedding.workspace_id == workspace_id)

    for row in query.all():
        item = {
            "id": row.item_id,
            "workspaceId": row.workspace_id,
            "content": row.content,
            **(row.item_metadata or {}),
        }
        yield item, row.embedding


async def search(
    db: Session,
    query: str,
    content_type: str,
    user_id: str,
    workspace_id: Optional[str] = None,
    limit: Optional[int] = None,
    threshold: Optional[float] = None,
) -> Dict:
    """
    Semantic search across one content type.

    Args:
        query: Free-text search query
        content_type: subjects, files or quiz_questions
        user_id: Caller; only their workspaces are searched
        workspace_id: Optional workspace filter
        limit: Max results (default from settings)
        threshold: Min similarity (default from settings)

    Returns:
        {"results": [{item, similarity}], "metadata": {query, contentType, workspaceId, count}}

    Raises:
        ValidationError: On empty query or unknown content type
    """
    if not query or not query.strip():
        raise ValidationError("Search query is required")
    if not content_type:
        raise ValidationError("Content type is required")
    if content_type not in VALID_CONTENT_TYPES:
        raise ValidationError(
            f"Invalid content type. Valid options are: {', '.join(VALID_CONTENT_TYPES)}"
        )

    limit = limit or settings.search_default_limit
    threshold = settings.search_default_threshold if threshold is None else threshold

    if content_type == "files":
        candidates: List = list(_file_candidates(db, user_id, workspace_id))
    else:
        candidates = list(_content_candidates(db, content_type, user_id, workspace_id))

    results = []
    if candidates:
        query_vector = await get_embedding_service().embed_text(query)
        matches = find_similar(query_vector, candidates, threshold=threshold, top_k=limit)
        results = [{"item": item, "similarity": similarity} for item, similarity in matches]

    logger.info(f"Vector search '{query[:50]}' over {content_type}: {len(results)}/{len(candidates)} matches")
    return {
        "results": results,
        "metadata": {
            "query": query,
            "contentType": content_type,
            "workspaceId": workspace_id,
            "count": len(results),
        },
    }
