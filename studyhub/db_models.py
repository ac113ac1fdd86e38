"""
SQLAlchemy database models.

Maps application domain records to relational tables.
Separate from Pydantic models (models.py) which handle API validation.

Cascade policy:
    Deleting a workspace removes everything it owns (files and their
    embeddings, subjects and their performance rows, quizzes and their
    submissions, flashcards, past exams, patterns, content embeddings).
    Deleting a file removes its embeddings but keeps quizzes built from it
    (their file_id becomes NULL). Deleting a past exam keeps its patterns.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Text, DateTime, JSON, ForeignKey, Boolean, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class DBProfile(Base):
    """User profile row holding the role used for capability checks."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # identity provider user id
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DBProfile(id='{self.id}', role='{self.role}')>"


class DBWorkspace(Base):
    """User-scoped container for files, subjects, quizzes and flashcards."""
    __tablename__ = "workspaces"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships (all owned content is deleted with the workspace)
    files = relationship("DBFile", back_populates="workspace", cascade="all, delete-orphan")
    subjects = relationship("DBSubject", back_populates="workspace", cascade="all, delete-orphan")
    quizzes = relationship("DBQuiz", back_populates="workspace", cascade="all, delete-orphan")
    flashcards = relationship("DBFlashcard", back_populates="workspace", cascade="all, delete-orphan")
    past_exams = relationship("DBPastExam", back_populates="workspace", cascade="all, delete-orphan")
    patterns = relationship("DBPattern", back_populates="workspace", cascade="all, delete-orphan")
    content_embeddings = relationship(
        "DBContentEmbedding", back_populates="workspace", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<DBWorkspace(id='{self.id}', name='{self.name}')>"


class DBFile(Base):
    """Uploaded document plus its extracted text."""
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=new_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(512), nullable=False)
    file_type = Column(String(50), nullable=False, default="document")  # document, summary, quiz
    mime_type = Column(String(255), nullable=False)
    size_bytes = Column(Integer, nullable=False, default=0)
    url = Column(String(1024), nullable=True)  # storage key of the blob
    content = Column(Text, nullable=True)  # extracted, page-delimited text
    # embeddingsGenerating/embeddingsGenerated/embeddingsCount/embeddingsError..., detectedLanguage, pageCount
    file_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="files")
    embeddings = relationship("DBFileEmbedding", back_populates="file", cascade="all, delete-orphan")
    quizzes = relationship("DBQuiz", back_populates="file")

    def __repr__(self):
        return f"<DBFile(id='{self.id}', name='{self.name}')>"


class DBFileEmbedding(Base):
    """One embedded chunk of a file's text."""
    __tablename__ = "file_embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)  # list of floats
    chunk_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    file = relationship("DBFile", back_populates="embeddings")

    __table_args__ = (
        Index('idx_file_embedding_chunk', 'file_id', 'chunk_index'),
    )


class DBContentEmbedding(Base):
    """Embedding for a searchable subject or quiz question."""
    __tablename__ = "content_embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_type = Column(String(32), nullable=False, index=True)  # subjects, quiz_questions
    item_id = Column(String(80), nullable=False)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)
    item_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="content_embeddings")

    __table_args__ = (
        UniqueConstraint('content_type', 'item_id', name='uq_content_embedding_item'),
    )


class DBSubject(Base):
    """Topic label extracted from or assigned to a workspace's material."""
    __tablename__ = "subjects"

    id = Column(String(36), primary_key=True, default=new_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    source = Column(String(20), nullable=False, default="manual")  # auto, manual
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="subjects")
    performance = relationship("DBSubjectPerformance", back_populates="subject", cascade="all, delete-orphan")


class DBQuiz(Base):
    """Generated multiple-choice quiz."""
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(512), nullable=False)
    questions = Column(JSON, nullable=False, default=list)
    file_id = Column(String(36), ForeignKey("files.id", ondelete="SET NULL"), nullable=True, index=True)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    user_comments = Column(Text, nullable=True)
    selected_subjects = Column(JSON, nullable=False, default=list)  # subject ids
    quiz_metadata = Column("metadata", JSON, nullable=False, default=dict)  # provider, model, language
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="quizzes")
    file = relationship("DBFile", back_populates="quizzes")
    submissions = relationship("DBQuizSubmission", back_populates="quiz", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_quiz_file_workspace', 'file_id', 'workspace_id'),
    )


class DBQuizSubmission(Base):
    """A user's answers to one quiz attempt."""
    __tablename__ = "quiz_submissions"

    id = Column(String(36), primary_key=True, default=new_id)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    answers = Column(JSON, nullable=False, default=list)
    score = Column(Float, nullable=False, default=0.0)
    completed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    quiz = relationship("DBQuiz", back_populates="submissions")


class DBSubjectPerformance(Base):
    """Rolling per-subject aggregate of a user's answers."""
    __tablename__ = "subject_performance"

    id = Column(String(36), primary_key=True, default=new_id)
    subject_id = Column(String(36), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    correct_answers = Column(Integer, nullable=False, default=0)
    total_questions = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    subject = relationship("DBSubject", back_populates="performance")

    __table_args__ = (
        UniqueConstraint('subject_id', 'user_id', 'workspace_id', name='uq_subject_performance'),
    )


class DBFlashcard(Base):
    """Question/answer study card."""
    __tablename__ = "flashcards"

    id = Column(String(36), primary_key=True, default=new_id)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="dont_know")  # dont_know, partially_know, know_for_sure
    pages = Column(JSON, nullable=True)
    file_name = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="flashcards")


class DBPastExam(Base):
    """Uploaded past exam used to derive exam patterns."""
    __tablename__ = "past_exams"

    id = Column(String(36), primary_key=True, default=new_id)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(512), nullable=False)
    year = Column(String(10), nullable=True)
    semester = Column(String(20), nullable=True)  # Fall, Spring, Summer, Winter
    course = Column(String(255), nullable=True)
    url = Column(String(1024), nullable=True)
    content = Column(Text, nullable=True)
    exam_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="past_exams")
    patterns = relationship("DBPattern", back_populates="past_exam")


class DBPattern(Base):
    """Structural exam template derived from a past exam."""
    __tablename__ = "patterns"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(512), nullable=False)
    past_exam_id = Column(String(36), ForeignKey("past_exams.id", ondelete="SET NULL"), nullable=True, index=True)
    workspace_id = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    pattern_data = Column(JSON, nullable=False, default=dict)
    confidence_score = Column(Float, nullable=False, default=0.5)
    usage_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    workspace = relationship("DBWorkspace", back_populates="patterns")
    past_exam = relationship("DBPastExam", back_populates="patterns")


class DBBackgroundTask(Base):
    """
    Persisted status of a background job.

    Status flow: pending -> running -> (succeeded | failed); pending -> failed
    when dispatch itself fails.
    """
    __tablename__ = "background_tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    kind = Column(String(50), nullable=False)
    key = Column(String(255), nullable=False)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    error = Column(Text, nullable=True)
    result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_task_kind_key_status', 'kind', 'key', 'status'),
    )

    def __repr__(self):
        return f"<DBBackgroundTask(id='{self.id}', kind='{self.kind}', status='{self.status}')>"
