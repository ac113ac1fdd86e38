"""
Application Constants for the StudyHub backend.

Centralizes limits, defaults and magic numbers that do not change between
environments. Environment-driven values live in config.py.
"""

# =============================================================================
# File Size Limits (per MIME type)
# =============================================================================

MIB = 1024 * 1024

FILE_SIZE_LIMITS = {
    # Word documents (approximately 150 pages max)
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": 50 * MIB,
    "application/msword": 50 * MIB,
    # PowerPoint presentations
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": 50 * MIB,
    "application/vnd.ms-powerpoint": 50 * MIB,
    "application/pdf": 50 * MIB,
    "default": 50 * MIB,
}

MIME_TYPES_BY_EXTENSION = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "doc": "application/msword",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "ppt": "application/vnd.ms-powerpoint",
    "txt": "text/plain",
    "md": "text/markdown",
    "json": "application/json",
}

DOCX_MIME_TYPE = MIME_TYPES_BY_EXTENSION["docx"]

# =============================================================================
# Text & Instruction Limits
# =============================================================================

MAX_FILENAME_LENGTH = 255
MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 5000
MAX_INSTRUCTIONS_LENGTH = 1000
MIN_CONTENT_LENGTH = 50  # chars of extracted text needed for generation

# =============================================================================
# Embedding Pipeline Defaults
# =============================================================================

DEFAULT_CHUNK_SIZE = 1800
DEFAULT_CHUNK_OVERLAP = 300
DEFAULT_MAX_CHUNKS = 200
EMBEDDING_BATCH_SIZE = 10

RELEVANT_SECTION_THRESHOLD = 0.65
RELEVANT_SECTION_LIMIT = 10

PAGE_MARKER_TEMPLATE = "==== Page {page} ===="

# =============================================================================
# Quiz Generation
# =============================================================================

DIFFICULTY_LEVELS = ("easy", "medium", "hard", "expert")
MAX_QUESTIONS_PER_QUIZ = 50
PREVIOUS_QUIZ_LOOKBACK = 5
DUPLICATE_MIN_MATCH_LENGTH = 5
DUPLICATE_SIMILARITY_THRESHOLD = 30.0  # percent

QUIZ_BASE_MAX_TOKENS = 1000
QUIZ_TOKENS_PER_QUESTION = 500
SUBJECT_MAX_TOKENS = 2000
PATTERN_MAX_TOKENS = 3000

SUBJECT_COUNT_RANGES = {
    "small": "5-10",
    "medium": "10-15",
    "large": "15-20",
}

# =============================================================================
# Past Exams
# =============================================================================

PAST_EXAM_MIME_TYPES = ("application/pdf", DOCX_MIME_TYPE)
PAST_EXAM_MAX_ESTIMATED_PAGES = 15
PDF_BYTES_PER_PAGE = 100 * 1024
DOCX_BYTES_PER_PAGE = 150 * 1024

# =============================================================================
# Context Budgets
# =============================================================================

CHARS_PER_TOKEN = 4
CLAUDE_3_CONTEXT_LIMIT = 200_000
DEFAULT_CONTEXT_LIMIT = 100_000
OPENAI_CONTEXT_LIMITS = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-3.5-turbo": 16_385,
}
CONTEXT_SAFETY_RATIO = 0.9

# =============================================================================
# Analytics
# =============================================================================

RECENT_SUBMISSIONS_LIMIT = 5
WEAK_STRONG_SUBJECT_COUNT = 3

# =============================================================================
# Authentication
# =============================================================================

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"
DEFAULT_TOKEN_EXPIRE_MINUTES = 60

# =============================================================================
# Background Tasks
# =============================================================================

TASK_TIME_LIMIT_SECONDS = 1800
TASK_SOFT_TIME_LIMIT_SECONDS = 1680
