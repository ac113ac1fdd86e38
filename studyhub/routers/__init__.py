"""
API Routers for StudyHub.

Each router handles a specific domain:
- workspaces: Workspace CRUD
- files: Upload, download, text extraction and embedding generation
- subjects: Subject CRUD, AI extraction and search indexing
- quizzes: Quiz CRUD, generation, indexing and .docx export
- quiz_submissions: Submitting answers and fetching the latest attempt
- analytics: Per-workspace performance analytics
- flashcards: Flashcard CRUD and batch creation
- past_exams: Past exam uploads
- patterns: Exam pattern extraction and management
- search: Vector search
- jobs: Background task status
- admin: AI provider configuration
"""

from . import (
    workspaces,
    files,
    subjects,
    quizzes,
    quiz_submissions,
    analytics,
    flashcards,
    past_exams,
    patterns,
    search,
    jobs,
    admin,
)

__all__ = [
    "workspaces",
    "files",
    "subjects",
    "quizzes",
    "quiz_submissions",
    "analytics",
    "flashcards",
    "past_exams",
    "patterns",
    "search",
    "jobs",
    "admin",
]
