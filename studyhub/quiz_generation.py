"""
Quiz generation orchestration.

Flow:
    validate request -> load file text -> gather context (previous
    questions, subjects, exam patterns, past exam, relevant sections) ->
    resolve provider -> prompt (chunked when the text exceeds the context
    budget) -> parse + repair -> normalize -> de-duplicate -> persist
"""

import logging
import string
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from .ai_config import resolve_provider
from .constants import (
    CHARS_PER_TOKEN,
    DIFFICULTY_LEVELS,
    DUPLICATE_MIN_MATCH_LENGTH,
    DUPLICATE_SIMILARITY_THRESHOLD,
    MAX_QUESTIONS_PER_QUIZ,
    QUIZ_BASE_MAX_TOKENS,
    QUIZ_TOKENS_PER_QUESTION,
)
from .config import settings
from .db_models import DBFile, DBQuiz
from .exceptions import AIResponseParseError, ContextTooLargeError, NotFoundError, ProviderError, ValidationError
from .file_embeddings import find_relevant_sections
from .file_service import get_file, get_file_content
from .ingest import detect_language
from .json_repair import safe_parse_json
from . import llm_providers
from .llm_providers import content_budget_chars, estimate_tokens, split_content
from .models import QuizGenerateRequest
from .past_exam_service import get_past_exam, get_past_exam_content
from .pattern_service import format_patterns_for_prompt, get_patterns_by_ids, increment_usage, list_patterns
from .prompts import build_quiz_prompt
from .quiz_service import previous_question_texts
from .sanitization import ensure_safe_instructions, sanitize_text, validate_file_size, validate_uuid
from .subject_service import get_subjects_by_ids
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)


# =============================================================================
# Question Normalization
# =============================================================================

def _normalize_options(raw_options) -> List[Dict]:
    if not isinstance(raw_options, list):
        return []

    options = []
    for index, option in enumerate(raw_options):
        if isinstance(option, dict):
            option_id = str(option.get("id") or "").strip()
            text = str(option.get("text") or "").strip()
        elif isinstance(option, str):
            option_id = string.ascii_lowercase[index] if index < 26 else str(index)
            text = option.strip()
        else:
            continue
        if option_id and text:
            options.append({"id": option_id, "text": text})
    return options


def normalize_questions(parsed) -> Tuple[List[Dict], Optional[str]]:
    """
    Validate and clean questions from a parsed model response.

    Accepts either {"title", "questions": [...]} or a bare list. Questions
    without text, with fewer than two options or whose correctAnswer is not
    one of the option ids are dropped.

    Returns:
        (questions, title)

    Raises:
        AIResponseParseError: If no valid question remains
    """
    title = None
    if isinstance(parsed, dict):
        title = parsed.get("title") if isinstance(parsed.get("title"), str) else None
        raw_questions = parsed.get("questions")
    else:
        raw_questions = parsed

    if not isinstance(raw_questions, list):
        raise AIResponseParseError("AI response does not contain a questions array")

    questions = []
    for raw in raw_questions:
        if not isinstance(raw, dict):
            continue
        text = str(raw.get("question") or "").strip()
        options = _normalize_options(raw.get("options"))
        correct = str(raw.get("correctAnswer") or raw.get("correct_answer") or "").strip()

        if not text or len(options) < 2:
            logger.debug(f"Dropping malformed question: {text[:80]!r}")
            continue
        if correct not in {o["id"] for o in options}:
            logger.debug(f"Dropping question with invalid correctAnswer {correct!r}: {text[:80]!r}")
            continue

        question = {
            key: value for key, value in raw.items()
            if key not in ("id", "question", "options", "correctAnswer", "correct_answer")
        }
        question.update({"question": text, "options": options, "correctAnswer": correct})
        questions.append(question)

    if not questions:
        raise AIResponseParseError("AI response contained no valid questions")

    dropped = len(raw_questions) - len(questions)
    if dropped:
        logger.warning(f"Dropped {dropped} invalid questions from AI response")
    return questions, title


# =============================================================================
# Duplicate Detection
# =============================================================================

def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest common substring of a and b."""
    if not a or not b:
        return 0
    best = 0
    previous = [0] * (len(b) + 1)
    for char_a in a:
        current = [0] * (len(b) + 1)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1] + 1
                if current[j] > best:
                    best = current[j]
        previous = current
    return best


def question_similarity(a: str, b: str) -> float:
    """
    Percentage similarity of two question texts.

    The longest common substring (case-insensitive) relative to the shorter
    text; matches shorter than five characters count as zero.
    """
    a, b = a.lower().strip(), b.lower().strip()
    if not a or not b:
        return 0.0
    match = longest_common_substring(a, b)
    if match < DUPLICATE_MIN_MATCH_LENGTH:
        return 0.0
    return match / min(len(a), len(b)) * 100


def remove_duplicates(questions: List[Dict], previous: List[str]) -> List[Dict]:
    """
    Drop questions too similar to a previous or already accepted question.

    If every question would be dropped the originals are returned unchanged.
    """
    accepted: List[Dict] = []
    seen = list(previous)
    for question in questions:
        text = question["question"]
        duplicate_of = next(
            (other for other in seen if question_similarity(text, other) > DUPLICATE_SIMILARITY_THRESHOLD),
            None,
        )
        if duplicate_of is not None:
            logger.info(f"Potential duplicate question removed: {text[:80]!r} ~ {duplicate_of[:80]!r}")
            continue
        accepted.append(question)
        seen.append(text)

    if not accepted:
        logger.warning("Every generated question resembles a previous one, keeping them all")
        return questions
    return accepted


# =============================================================================
# Context Gathering
# =============================================================================

def _validate_request(params: QuizGenerateRequest) -> Tuple[str, int, str, Optional[str]]:
    validate_uuid(params.workspace_id, "workspaceId")
    validate_uuid(params.file_id, "fileId")
    topic = sanitize_text(params.topic, "Topic")

    count = params.number_of_questions
    if not isinstance(count, int) or count < 1 or count > MAX_QUESTIONS_PER_QUIZ:
        raise ValidationError(f"Number of questions must be between 1 and {MAX_QUESTIONS_PER_QUIZ}")

    difficulty = (params.difficulty_level or "").lower()
    if difficulty not in DIFFICULTY_LEVELS:
        raise ValidationError(f"Invalid difficulty level. Must be one of: {', '.join(DIFFICULTY_LEVELS)}")

    comments = ensure_safe_instructions(params.user_comments)
    return topic, count, difficulty, comments


def _resolve_language(db: Session, file: DBFile, content: str, locale: Optional[str]) -> str:
    if locale:
        return locale

    metadata = file.file_metadata or {}
    detected = metadata.get("detectedLanguage")
    if detected and detected != "unknown":
        return detected

    detected = detect_language(content)
    file.file_metadata = {**metadata, "detectedLanguage": detected}
    db.flush()
    return detected if detected != "unknown" else "en"


async def _relevant_sections(db: Session, file: DBFile, topic: str, subject_names: List[str]) -> List[Dict]:
    if not (file.file_metadata or {}).get("embeddingsGenerated"):
        return []

    query = " ".join([topic] + subject_names)
    try:
        sections = await find_relevant_sections(db, query, file.id)
    except ProviderError as e:
        logger.warning(f"Relevant section lookup failed for file {file.id}, continuing without it: {e}")
        return []

    logger.info(f"Found {len(sections)} relevant sections for quiz on '{topic}'")
    return sections


def _spread(count: int, parts: int) -> List[int]:
    base, extra = divmod(count, parts)
    return [base + (1 if i < extra else 0) for i in range(parts)]


# =============================================================================
# Generation
# =============================================================================

async def generate_quiz(db: Session, user_id: str, params: QuizGenerateRequest) -> DBQuiz:
    """
    Generate and store a quiz from a file.

    Args:
        db: Database session
        user_id: Caller (owner of the workspace and file)
        params: Generation request

    Returns:
        The persisted quiz

    Raises:
        ValidationError: On invalid parameters or unsafe instructions
        NotFoundError: If the workspace, file, past exam or patterns are not the caller's
        FileTooLargeError / ContextTooLargeError: If the input is too large (413)
        ProviderRateLimitError: When the provider throttles (429)
        ProviderError / AIResponseParseError: On provider or parse failures (500)
    """
    topic, count, difficulty, comments = _validate_request(params)

    get_workspace(db, params.workspace_id, user_id)
    file = get_file(db, params.file_id, user_id)
    if file.workspace_id != params.workspace_id:
        raise NotFoundError("File", params.file_id)

    validate_file_size(file.size_bytes or 0, file.mime_type)
    content = get_file_content(db, file)

    past_exam_content = None
    if params.include_past_exam and params.past_exam_id:
        past_exam_content = get_past_exam_content(db, get_past_exam(db, params.past_exam_id, user_id))

    previous = previous_question_texts(db, params.workspace_id, file.id)
    subjects = get_subjects_by_ids(db, user_id, params.selected_subjects)
    subject_names = [s.name for s in subjects]

    patterns = []
    if params.use_exam_patterns:
        if params.selected_pattern_ids:
            patterns = get_patterns_by_ids(db, user_id, params.selected_pattern_ids)
        else:
            patterns = list_patterns(db, user_id, params.workspace_id)
    pattern_text = format_patterns_for_prompt(patterns)

    relevant = await _relevant_sections(db, file, topic, subject_names)
    language = _resolve_language(db, file, content, params.locale)

    resolved = resolve_provider(params.ai_provider, "quiz_generation")
    provider = llm_providers.get_provider(resolved.name)
    max_tokens = QUIZ_BASE_MAX_TOKENS + QUIZ_TOKENS_PER_QUESTION * count

    budget = content_budget_chars(resolved.name, resolved.model, max_tokens)
    chunks = split_content(content, budget)
    if len(chunks) > settings.max_generation_chunks:
        raise ContextTooLargeError(estimate_tokens(content), budget * settings.max_generation_chunks // CHARS_PER_TOKEN)
    if len(chunks) > 1:
        logger.info(f"Quiz content for file {file.id} split into {len(chunks)} chunks")

    questions: List[Dict] = []
    title = None
    for chunk, chunk_count in zip(chunks, _spread(count, len(chunks))):
        if chunk_count == 0:
            continue

        prompt = build_quiz_prompt(
            chunk,
            topic=topic,
            count=chunk_count,
            difficulty=difficulty,
            language=language,
            previous_questions=previous,
            user_comments=comments,
            subject_names=subject_names,
            pattern_text=pattern_text,
            relevant_sections=relevant,
            past_exam_content=past_exam_content,
            include_file_references=params.include_file_references,
        )
        response = await llm_providers.cached_chat_completion(
            provider,
            messages=[{"role": "user", "content": prompt}],
            model=resolved.model,
            temperature=resolved.temperature,
            max_tokens=QUIZ_BASE_MAX_TOKENS + QUIZ_TOKENS_PER_QUESTION * chunk_count,
        )

        chunk_questions, chunk_title = normalize_questions(safe_parse_json(response.content))
        questions.extend(chunk_questions)
        title = title or chunk_title

    questions = remove_duplicates(questions, previous)[:count]
    for index, question in enumerate(questions, start=1):
        question["id"] = f"q{index}"

    increment_usage(db, patterns)

    quiz = DBQuiz(
        title=(title or f"{topic} Quiz")[:512],
        questions=questions,
        file_id=file.id,
        workspace_id=params.workspace_id,
        user_id=user_id,
        user_comments=comments,
        selected_subjects=[s.id for s in subjects],
        quiz_metadata={
            "provider": resolved.name,
            "model": resolved.model,
            "language": language,
            "difficulty": difficulty,
            "topic": topic,
            "numberOfQuestions": len(questions),
            "requestedQuestions": count,
            "patternIds": [p.id for p in patterns],
            "pastExamId": params.past_exam_id if past_exam_content else None,
            "chunks": len(chunks),
        },
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)

    logger.info(
        f"Generated quiz {quiz.id} with {len(questions)}/{count} questions "
        f"({resolved.name}/{resolved.model}, language={language})"
    )
    return quiz
