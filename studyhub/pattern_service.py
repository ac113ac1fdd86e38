"""
Exam patterns: extraction from past exams and prompt formatting.

A pattern is the model's structured reading of a past exam (question
formats, topic weights, difficulty curve, recurring concepts). Active
patterns can be folded into quiz prompts so generated quizzes resemble
the real exam.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .ai_config import resolve_provider
from .constants import MIN_CONTENT_LENGTH, PATTERN_MAX_TOKENS
from .db_models import DBPastExam, DBPattern
from .exceptions import AIResponseParseError, NotFoundError, ValidationError
from .json_repair import safe_parse_json
from . import llm_providers
from .past_exam_service import get_past_exam, get_past_exam_content
from .prompts import build_pattern_prompt
from .sanitization import sanitize_text, validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
TOP_TOPICS = 5
TOP_CONCEPTS = 7


# =============================================================================
# CRUD
# =============================================================================

def list_patterns(db: Session, user_id: str, workspace_id: str) -> List[DBPattern]:
    """Active patterns of a workspace, newest first."""
    get_workspace(db, workspace_id, user_id)
    return db.query(DBPattern).filter(
        DBPattern.workspace_id == workspace_id,
        DBPattern.user_id == user_id,
        DBPattern.active.is_(True),
    ).order_by(DBPattern.created_at.desc()).all()


def get_pattern(db: Session, pattern_id: str, user_id: str) -> DBPattern:
    validate_uuid(pattern_id, "patternId")
    pattern = db.query(DBPattern).filter(DBPattern.id == pattern_id, DBPattern.user_id == user_id).first()
    if not pattern:
        raise NotFoundError("Pattern", pattern_id)
    return pattern


def get_patterns_by_ids(db: Session, user_id: str, pattern_ids: List[str]) -> List[DBPattern]:
    if not pattern_ids:
        return []
    for pattern_id in pattern_ids:
        validate_uuid(pattern_id, "selectedPatternIds")
    return db.query(DBPattern).filter(DBPattern.id.in_(pattern_ids), DBPattern.user_id == user_id).all()


def update_pattern(db: Session, pattern_id: str, user_id: str, name: Optional[str] = None,
                   active: Optional[bool] = None) -> DBPattern:
    pattern = get_pattern(db, pattern_id, user_id)
    if name is not None:
        pattern.name = sanitize_text(name, "Pattern name", max_length=512)
    if active is not None:
        pattern.active = active
    db.commit()
    db.refresh(pattern)
    return pattern


def delete_pattern(db: Session, pattern_id: str, user_id: str) -> None:
    pattern = get_pattern(db, pattern_id, user_id)
    db.delete(pattern)
    db.commit()
    logger.info(f"Deleted pattern {pattern_id}")


def increment_usage(db: Session, patterns: List[DBPattern]) -> None:
    """Count one use of each pattern. Flushes; the caller commits."""
    for pattern in patterns:
        pattern.usage_count = (pattern.usage_count or 0) + 1
    db.flush()


# =============================================================================
# Extraction
# =============================================================================

def _confidence_from(pattern_data: Dict) -> float:
    metrics = pattern_data.get("confidence_metrics") or {}
    value = metrics.get("overall_exam_predictability") if isinstance(metrics, dict) else None
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE


async def generate_pattern_for_past_exam(db: Session, user_id: str, past_exam_id: str,
                                         ai_provider: Optional[str] = None) -> DBPattern:
    """
    Analyze a past exam with the pattern-extraction model and store the result.

    Raises:
        NotFoundError: If the past exam is not the caller's
        ValidationError: If the exam has too little text
        AIResponseParseError: If the model does not return a JSON object
    """
    past_exam: DBPastExam = get_past_exam(db, past_exam_id, user_id)
    content = get_past_exam_content(db, past_exam)
    if len(content.strip()) < MIN_CONTENT_LENGTH:
        raise ValidationError("Not enough text content extracted from the past exam to analyze.")

    resolved = resolve_provider(ai_provider, "pattern_extraction")
    provider = llm_providers.get_provider(resolved.name)

    prompt = build_pattern_prompt(
        content,
        exam_name=past_exam.name,
        year=past_exam.year,
        semester=past_exam.semester,
        course=past_exam.course,
    )
    response = await llm_providers.cached_chat_completion(
        provider,
        messages=[{"role": "user", "content": prompt}],
        model=resolved.model,
        temperature=resolved.temperature,
        max_tokens=max(resolved.max_tokens, PATTERN_MAX_TOKENS),
    )

    pattern_data = safe_parse_json(response.content)
    if not isinstance(pattern_data, dict):
        raise AIResponseParseError("AI response is not a valid pattern object")

    pattern = DBPattern(
        name=f"{past_exam.name} Pattern",
        past_exam_id=past_exam.id,
        workspace_id=past_exam.workspace_id,
        user_id=user_id,
        pattern_data=pattern_data,
        confidence_score=_confidence_from(pattern_data),
        usage_count=0,
        active=True,
    )
    db.add(pattern)
    db.commit()
    db.refresh(pattern)

    logger.info(
        f"Generated pattern {pattern.id} for past exam {past_exam.id} "
        f"(confidence {pattern.confidence_score:.2f}, provider {resolved.name})"
    )
    return pattern


# =============================================================================
# Prompt Formatting
# =============================================================================

def _as_dict(value) -> Dict:
    return value if isinstance(value, dict) else {}


def _format_distribution(distribution: Dict) -> str:
    parts = []
    for key, value in _as_dict(distribution).items():
        try:
            share = float(value)
        except (TypeError, ValueError):
            continue
        if share > 0:
            parts.append(f"{key.replace('_', ' ')} ({round(share)}%)")
    return ", ".join(parts)


def _importance(entry) -> float:
    try:
        return float((entry or {}).get("importance_score", 0))
    except (TypeError, ValueError, AttributeError):
        return 0.0


def _format_high_value_topics(topic_distribution: Dict) -> str:
    ranked = sorted(_as_dict(topic_distribution).items(), key=lambda item: _importance(item[1]), reverse=True)
    return ", ".join(
        f"{topic} (importance: {_importance(data):.2f})" for topic, data in ranked[:TOP_TOPICS]
    )


def _format_difficulty_curve(progression: Dict) -> str:
    progression = _as_dict(progression)
    return (
        f"starting with {progression.get('beginning', 'medium')} questions, "
        f"then {progression.get('middle', 'medium')} in the middle, "
        f"and {progression.get('end', 'medium')} towards the end"
    )


def _format_recurring_concepts(concepts: List[Dict]) -> str:
    def frequency(item):
        try:
            return float(item.get("frequency", 0))
        except (TypeError, ValueError):
            return 0.0

    if not isinstance(concepts, list):
        return ""
    valid = [c for c in concepts if isinstance(c, dict) and c.get("concept")]
    ranked = sorted(valid, key=frequency, reverse=True)
    return ", ".join(c["concept"] for c in ranked[:TOP_CONCEPTS])


def format_patterns_for_prompt(patterns: List[DBPattern]) -> str:
    """Render patterns as quiz-prompt guidance. Empty string for no patterns."""
    if not patterns:
        return ""

    text = (
        "\n\nEXAM PATTERNS TO FOLLOW:\n"
        "Based on analysis of past exams, incorporate these patterns into the generated quiz "
        "to create an authentic exam experience:\n"
    )
    for pattern in patterns:
        data = _as_dict(pattern.pattern_data)
        structure = _as_dict(data.get("exam_structure"))
        insights = _as_dict(data.get("key_insights"))
        text += f"\n- Question types distribution: {_format_distribution(data.get('question_formats'))}"
        text += f"\n- Prioritize these high-value topics: {_format_high_value_topics(data.get('topic_distribution'))}"
        text += f"\n- Follow this difficulty progression: {_format_difficulty_curve(structure.get('difficulty_progression'))}"
        text += f"\n- Include these key concepts and terminology: {_format_recurring_concepts(insights.get('recurring_concepts'))}"
    return text
