"""Request and response schemas for the StudyHub API (camelCase on the wire)."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import MAX_QUESTIONS_PER_QUIZ


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase in JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# =============================================================================
# Enums for validated parameters
# =============================================================================

class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"


class FlashcardStatus(str, Enum):
    DONT_KNOW = "dont_know"
    PARTIALLY_KNOW = "partially_know"
    KNOW_FOR_SURE = "know_for_sure"


# =============================================================================
# Workspaces
# =============================================================================

class WorkspaceCreate(CamelModel):
    name: str
    description: Optional[str] = None


class WorkspaceUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


class Workspace(CamelModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Files
# =============================================================================

class FileUpdate(CamelModel):
    name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class FileRecord(CamelModel):
    id: str
    workspace_id: str
    user_id: str
    name: str
    file_type: str
    mime_type: str
    size_bytes: int
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias="file_metadata", serialization_alias="metadata"
    )
    created_at: datetime


class ExtractedTextResponse(CamelModel):
    text: str
    page_count: int
    language: str
    file_name: str


# =============================================================================
# Subjects
# =============================================================================

class SubjectCreate(CamelModel):
    workspace_id: str
    name: str
    description: Optional[str] = None
    order: Optional[int] = None


class SubjectUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None


class Subject(CamelModel):
    id: str
    workspace_id: str
    user_id: str
    name: str
    description: Optional[str] = None
    source: str
    order: int
    created_at: datetime
    updated_at: datetime


class SubjectGenerateRequest(CamelModel):
    workspace_id: str
    file_id: str
    ai_provider: Optional[str] = None
    locale: Optional[str] = None
    count_range: Literal["small", "medium", "large"] = "medium"
    specificity: Literal["general", "specific"] = "general"


class SubjectGenerateResponse(CamelModel):
    existing_subjects: List[Subject]
    new_subjects: List[Subject]
    unrelated_content: bool = False
    unrelated_message: Optional[str] = None


class SubjectIndexRequest(CamelModel):
    workspace_id: str
    subject_ids: Optional[List[str]] = None


# =============================================================================
# Quizzes
# =============================================================================

class QuizOption(CamelModel):
    id: str
    text: str


class QuizQuestion(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    question: str
    options: List[QuizOption]
    correct_answer: str
    explanation: Optional[str] = None
    related_subject: Optional[str] = None
    pages: Optional[List[int]] = None


class Quiz(CamelModel):
    id: str
    title: str
    questions: List[QuizQuestion]
    file_id: Optional[str] = None
    workspace_id: str
    user_id: str
    user_comments: Optional[str] = None
    selected_subjects: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias="quiz_metadata", serialization_alias="metadata"
    )
    created_at: datetime
    updated_at: datetime


class QuizGenerateRequest(CamelModel):
    workspace_id: str
    file_id: str
    topic: str
    number_of_questions: int = 10
    difficulty_level: str = "medium"
    ai_provider: Optional[str] = None
    locale: Optional[str] = None
    user_comments: Optional[str] = None
    selected_subjects: List[str] = Field(default_factory=list)
    include_file_references: bool = True
    use_exam_patterns: bool = False
    selected_pattern_ids: List[str] = Field(default_factory=list)
    include_past_exam: bool = False
    past_exam_id: Optional[str] = None


class QuizUpdate(CamelModel):
    title: Optional[str] = None
    user_comments: Optional[str] = None
    selected_subjects: Optional[List[str]] = None


# =============================================================================
# Submissions & Analytics
# =============================================================================

class AnswerIn(CamelModel):
    question_id: str
    selected_option_id: str
    subject_ids: List[str] = Field(default_factory=list)


class QuizSubmissionCreate(CamelModel):
    quiz_id: str
    workspace_id: str
    answers: List[AnswerIn] = Field(..., max_length=MAX_QUESTIONS_PER_QUIZ * 4)


class QuizSubmission(CamelModel):
    id: str
    quiz_id: str
    user_id: str
    workspace_id: str
    answers: List[Dict[str, Any]]
    score: float
    completed_at: datetime


class SubjectPerformance(CamelModel):
    id: str
    subject_id: str
    user_id: str
    workspace_id: str
    correct_answers: int
    total_questions: int
    score: float
    last_updated: datetime


class PerformanceAnalytics(CamelModel):
    overall_score: float
    total_quizzes: int
    subject_performance: List[SubjectPerformance]
    recent_submissions: List[QuizSubmission]
    weak_subjects: List[SubjectPerformance]
    strong_subjects: List[SubjectPerformance]


# =============================================================================
# Flashcards
# =============================================================================

class FlashcardCreate(CamelModel):
    workspace_id: str
    question: str
    answer: str
    status: FlashcardStatus = FlashcardStatus.DONT_KNOW
    pages: Optional[List[int]] = None
    file_name: Optional[str] = None


class FlashcardUpdate(CamelModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    status: Optional[FlashcardStatus] = None
    pages: Optional[List[int]] = None


class FlashcardBatchCreate(CamelModel):
    flashcards: List[Dict[str, Any]]


class Flashcard(CamelModel):
    id: str
    question: str
    answer: str
    workspace_id: str
    user_id: str
    status: str
    pages: Optional[List[int]] = None
    file_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Past Exams & Patterns
# =============================================================================

class PastExam(CamelModel):
    id: str
    workspace_id: str
    user_id: str
    name: str
    year: Optional[str] = None
    semester: Optional[str] = None
    course: Optional[str] = None
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias="exam_metadata", serialization_alias="metadata"
    )
    created_at: datetime


class PatternGenerateRequest(CamelModel):
    past_exam_id: str
    ai_provider: Optional[str] = None


class PatternUpdate(CamelModel):
    name: Optional[str] = None
    active: Optional[bool] = None


class Pattern(CamelModel):
    id: str
    name: str
    past_exam_id: Optional[str] = None
    workspace_id: str
    user_id: str
    pattern_data: Dict[str, Any]
    confidence_score: float
    usage_count: int
    active: bool
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Search, Tasks & Admin
# =============================================================================

class VectorSearchOptions(CamelModel):
    limit: Optional[int] = Field(None, ge=1, le=100)
    threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class VectorSearchRequest(CamelModel):
    query: Optional[str] = None
    content_type: Optional[str] = None
    workspace_id: Optional[str] = None
    options: VectorSearchOptions = Field(default_factory=VectorSearchOptions)


class AIConfigUpdate(CamelModel):
    feature: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
