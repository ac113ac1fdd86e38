"""
File embedding pipeline.

Splits a file's page-delimited text into overlapping chunks, embeds the
chunks and stores them as FileEmbedding rows. Also indexes subjects and quiz
questions into ContentEmbedding rows for vector search.

File metadata tracks the pipeline state:
    not-started -> generating -> (generated | error)
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .config import settings
from .constants import (
    EMBEDDING_BATCH_SIZE,
    MIN_CONTENT_LENGTH,
    RELEVANT_SECTION_LIMIT,
    RELEVANT_SECTION_THRESHOLD,
)
from .db_models import DBContentEmbedding, DBFile, DBFileEmbedding, DBQuiz, DBSubject
from .embedding_service import find_similar, get_embedding_service
from .exceptions import NotFoundError, ValidationError
from .ingest import is_non_latin
from .task_records import latest_task

logger = logging.getLogger(__name__)

PAGE_MARKER_PATTERN = re.compile(r"==== Page (\d+) ====")
SENTENCE_END_PATTERN = re.compile(r"[.!?](?:\s+|$)")

FILE_EMBEDDINGS_TASK = "file_embeddings"


# =============================================================================
# Chunking
# =============================================================================

def _split_section(text: str, base: int, page: int, chunk_size: int, overlap: int,
                   max_chunks: int, sentence_aware: bool) -> List[Dict]:
    chunks = []
    boundaries = [m.end() for m in SENTENCE_END_PATTERN.finditer(text)] if sentence_aware else []
    start = 0

    while start < len(text) and len(chunks) < max_chunks:
        end = min(start + chunk_size, len(text))
        if end < len(text) and boundaries:
            # prefer to cut at a sentence end in the second half of the window
            candidates = [b for b in boundaries if start + chunk_size // 2 < b <= end]
            if candidates:
                end = candidates[-1]

        content = text[start:end].strip()
        if content:
            chunks.append({
                "content": content,
                "startChar": base + start,
                "endChar": base + end,
                "pageNumber": page,
            })

        if end >= len(text):
            break
        start = max(end - overlap, start + 1)

    return chunks


def chunk_text(
    text: str,
    chunk_size: int = None,
    overlap: int = None,
    max_chunks: int = None,
) -> List[Dict]:
    """
    Split page-delimited text into overlapping chunks.

    Text is first split on ``==== Page N ====`` markers. Latin-script pages
    are cut at sentence ends where possible; Hebrew/Arabic pages use fixed
    windows.

    Returns:
        List of {content, startChar, endChar, pageNumber, chunkIndex, totalChunks}
    """
    chunk_size = chunk_size or settings.embedding_chunk_size
    overlap = settings.embedding_chunk_overlap if overlap is None else overlap
    max_chunks = max_chunks or settings.embedding_max_chunks

    if overlap >= chunk_size:
        raise ValueError("Chunk overlap must be smaller than chunk size")
    if not text or not text.strip():
        return []

    sentence_aware = not is_non_latin(text[:1000])

    markers = list(PAGE_MARKER_PATTERN.finditer(text))
    sections = []
    if not markers:
        sections.append((0, text, 1))
    else:
        if text[:markers[0].start()].strip():
            sections.append((0, text[:markers[0].start()], 1))
        for i, marker in enumerate(markers):
            section_end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
            sections.append((marker.end(), text[marker.end():section_end], int(marker.group(1))))

    chunks: List[Dict] = []
    for base, section, page in sections:
        if not section.strip():
            continue
        remaining = max_chunks - len(chunks)
        if remaining <= 0:
            logger.warning(f"Reached max chunks ({max_chunks}); remaining pages are not embedded")
            break
        chunks.extend(_split_section(section, base, page, chunk_size, overlap, remaining, sentence_aware))

    for i, chunk in enumerate(chunks):
        chunk["chunkIndex"] = i
        chunk["totalChunks"] = len(chunks)
    return chunks


# =============================================================================
# File Metadata State
# =============================================================================

def _update_metadata(file: DBFile, **changes) -> None:
    # reassign so SQLAlchemy sees the JSON change
    file.file_metadata = {**(file.file_metadata or {}), **changes}


def mark_generating(file: DBFile) -> None:
    _update_metadata(file, embeddingsGenerating=True, embeddingsGenerated=False, embeddingsError=None)


def mark_failed(file: DBFile, error: str) -> None:
    _update_metadata(
        file,
        embeddingsGenerating=False,
        embeddingsGenerated=False,
        embeddingsError=error,
        embeddingsErrorTime=datetime.utcnow().isoformat(),
    )


# =============================================================================
# Generation
# =============================================================================

async def generate_file_embeddings(db: Session, file_id: str) -> Dict:
    """
    Regenerate all embeddings for a file.

    Existing rows are deleted first, then the text is chunked and embedded
    in batches of 10. The caller owns the transaction.

    Returns:
        {"fileId": ..., "count": ...}

    Raises:
        NotFoundError: If the file does not exist
        ValidationError: If the file has too little text
        ProviderError: If embedding fails
    """
    file = db.query(DBFile).filter(DBFile.id == file_id).first()
    if not file:
        raise NotFoundError("File", file_id)

    content = file.content or ""
    if len(content.strip()) < MIN_CONTENT_LENGTH:
        raise ValidationError("Not enough text content in file to generate embeddings")

    deleted = db.query(DBFileEmbedding).filter(DBFileEmbedding.file_id == file_id).delete()
    if deleted:
        logger.info(f"Deleted {deleted} existing embeddings for file {file_id}")

    chunks = chunk_text(content)
    service = get_embedding_service()

    count = 0
    for batch_start in range(0, len(chunks), EMBEDDING_BATCH_SIZE):
        batch = chunks[batch_start:batch_start + EMBEDDING_BATCH_SIZE]
        vectors = await service.embed_batch([c["content"] for c in batch], batch_size=EMBEDDING_BATCH_SIZE)

        for chunk, vector in zip(batch, vectors):
            db.add(DBFileEmbedding(
                file_id=file_id,
                chunk_index=chunk["chunkIndex"],
                content=chunk["content"],
                embedding=vector,
                chunk_metadata={k: v for k, v in chunk.items() if k != "content"},
            ))
            count += 1

    _update_metadata(
        file,
        embeddingsGenerating=False,
        embeddingsGenerated=True,
        embeddingsCount=count,
        embeddingsGeneratedAt=datetime.utcnow().isoformat(),
        embeddingsError=None,
        hasNonLatinScripts=is_non_latin(content[:1000]),
    )
    db.flush()

    logger.info(f"Generated {count} embeddings for file {file_id}")
    return {"fileId": file_id, "count": count}


def get_embedding_status(db: Session, file: DBFile) -> Dict:
    """Embedding status of a file, including its latest background task."""
    metadata = file.file_metadata or {}
    task = latest_task(db, FILE_EMBEDDINGS_TASK, file.id)
    count = metadata.get("embeddingsCount")
    if count is None:
        count = db.query(DBFileEmbedding).filter(DBFileEmbedding.file_id == file.id).count()

    return {
        "fileId": file.id,
        "fileName": file.name,
        "hasEmbeddings": bool(metadata.get("embeddingsGenerated")),
        "isGenerating": bool(metadata.get("embeddingsGenerating")),
        "error": metadata.get("embeddingsError"),
        "count": count,
        "generatedAt": metadata.get("embeddingsGeneratedAt"),
        "taskId": task.id if task else None,
        "taskStatus": task.status if task else None,
    }


async def find_relevant_sections(
    db: Session,
    query: str,
    file_id: str,
    threshold: float = RELEVANT_SECTION_THRESHOLD,
    limit: int = RELEVANT_SECTION_LIMIT,
) -> List[Dict]:
    """
    Find the chunks of a file most similar to a query.

    Returns:
        List of {content, similarity, pageNumber, chunkIndex}, best first
    """
    rows = db.query(DBFileEmbedding).filter(DBFileEmbedding.file_id == file_id).all()
    if not rows:
        return []

    query_vector = await get_embedding_service().embed_text(query)
    matches = find_similar(query_vector, [(row, row.embedding) for row in rows], threshold, limit)

    return [
        {
            "content": row.content,
            "similarity": similarity,
            "pageNumber": (row.chunk_metadata or {}).get("pageNumber"),
            "chunkIndex": row.chunk_index,
        }
        for row, similarity in matches
    ]


# =============================================================================
# Subject & Question Indexing
# =============================================================================

async def _upsert_content_embeddings(db: Session, content_type: str, workspace_id: str,
                                     items: List[Dict]) -> int:
    if not items:
        return 0

    vectors = await get_embedding_service().embed_batch(
        [item["content"] for item in items], batch_size=EMBEDDING_BATCH_SIZE
    )
    existing = {
        row.item_id: row
        for row in db.query(DBContentEmbedding).filter(
            DBContentEmbedding.content_type == content_type,
            DBContentEmbedding.item_id.in_([item["item_id"] for item in items]),
        )
    }

    for item, vector in zip(items, vectors):
        row = existing.get(item["item_id"])
        if row is None:
            row = DBContentEmbedding(content_type=content_type, item_id=item["item_id"])
            db.add(row)
        row.workspace_id = workspace_id
        row.content = item["content"]
        row.embedding = vector
        row.item_metadata = item["metadata"]

    db.flush()
    logger.info(f"Indexed {len(items)} {content_type} for workspace {workspace_id}")
    return len(items)


async def index_subjects(db: Session, workspace_id: str, subject_ids: Optional[List[str]] = None) -> int:
    """Embed a workspace's subjects (or the given subset) for search."""
    query = db.query(DBSubject).filter(DBSubject.workspace_id == workspace_id)
    if subject_ids:
        query = query.filter(DBSubject.id.in_(subject_ids))

    items = [
        {
            "item_id": subject.id,
            "content": f"{subject.name}: {subject.description}" if subject.description else subject.name,
            "metadata": {"name": subject.name, "subjectId": subject.id},
        }
        for subject in query.all()
    ]
    return await _upsert_content_embeddings(db, "subjects", workspace_id, items)


async def index_quiz_questions(db: Session, quiz: DBQuiz) -> int:
    """Embed every question of a quiz for search."""
    items = []
    for question in quiz.questions or []:
        options = " ".join(f"{o.get('id')}. {o.get('text')}" for o in question.get("options", []))
        items.append({
            "item_id": f"{quiz.id}:{question.get('id')}",
            "content": f"{question.get('question', '')} {options}".strip(),
            "metadata": {
                "quizId": quiz.id,
                "quizTitle": quiz.title,
                "questionId": question.get("id"),
                "question": question.get("question"),
            },
        })
    return await _upsert_content_embeddings(db, "quiz_questions", quiz.workspace_id, items)


def drop_subject_embeddings(db: Session, subject_id: str) -> int:
    """Remove a subject from the search index. Caller commits."""
    return db.query(DBContentEmbedding).filter(
        DBContentEmbedding.content_type == "subjects",
        DBContentEmbedding.item_id == subject_id,
    ).delete(synchronize_session=False)


def drop_quiz_question_embeddings(db: Session, quiz_id: str) -> int:
    """Remove every indexed question of a quiz. Caller commits."""
    return db.query(DBContentEmbedding).filter(
        DBContentEmbedding.content_type == "quiz_questions",
        DBContentEmbedding.item_id.like(f"{quiz_id}:%"),
    ).delete(synchronize_session=False)
