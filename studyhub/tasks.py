"""
Celery Background Tasks for StudyHub.

Each task receives the id of a task record created by the API, moves it to
running, does the work, and records success or failure on the record (and,
for embeddings, on the file metadata) so clients can poll /tasks/{id}.
"""

import asyncio
import concurrent.futures
import logging
from typing import Dict

from celery import Task

from .celery_app import celery_app
from .database import get_db_context
from .db_models import DBFile
from . import file_embeddings
from . import task_records

logger = logging.getLogger(__name__)


def run_async(coro):
    """
    Run an async coroutine from sync Celery context.

    Uses asyncio.run when no loop is running (worker process); otherwise runs
    the coroutine on a fresh loop in a helper thread (eager mode inside the
    API's event loop).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result(timeout=1700)


# =============================================================================
# File Embedding Task
# =============================================================================

@celery_app.task(bind=True, name="studyhub.tasks.generate_file_embeddings")
def generate_file_embeddings(self: Task, task_id: str) -> Dict:
    """
    Generate embeddings for the file named by a task record.

    Progress stages:
    1. Loading file
    2. Embedding chunks
    3. Saving

    Args:
        self: Celery task instance (for progress updates)
        task_id: Id of a pending task record whose key is the file id

    Returns:
        dict: {fileId, count}
    """
    with get_db_context() as db:
        task = task_records.get_task(db, task_id)
        file_id = task.key
        if task.status in task_records.FINISHED_STATUSES:
            logger.info(f"Task {task_id} already {task.status}, skipping redelivered message")
            return task.result or {"fileId": file_id, "status": task.status}
        if task.status == task_records.RUNNING:
            # redelivered after the previous worker was lost; the work is idempotent
            task_records.resume_running(db, task)
        else:
            task_records.mark_running(db, task)
        db.commit()

        logger.info(f"Starting embedding generation for file {file_id} (task {task_id})")
        self.update_state(
            state="PROCESSING",
            meta={"stage": "embedding", "message": f"Generating embeddings for file {file_id}", "percent": 10}
        )

        try:
            result = run_async(file_embeddings.generate_file_embeddings(db, file_id))
        except Exception as e:
            logger.error(f"Embedding generation failed for file {file_id}: {e}", exc_info=True)
            db.rollback()

            task = task_records.get_task(db, task_id)
            task_records.mark_failed(db, task, str(e))
            file = db.query(DBFile).filter(DBFile.id == file_id).first()
            if file:
                file_embeddings.mark_failed(file, str(e))
            db.commit()

            self.update_state(
                state="FAILURE",
                meta={"error": str(e), "message": f"Failed to generate embeddings for file {file_id}"}
            )
            raise

        task_records.mark_succeeded(db, task, result)
        db.commit()

        self.update_state(
            state="PROCESSING",
            meta={"stage": "completed", "message": f"Stored {result['count']} embeddings", "percent": 100}
        )
        logger.info(f"Embedding task {task_id} completed: {result['count']} chunks")
        return result
