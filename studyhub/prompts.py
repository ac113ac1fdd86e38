"""
Prompt builders for quiz, subject and exam-pattern generation.

Each builder returns a single user-message string. Sections are appended
in a fixed order so the model always sees content first and the response
format last.
"""

import json
from typing import Dict, List, Optional

from .constants import SUBJECT_COUNT_RANGES

LANGUAGE_NAMES = {"he": "HEBREW", "ar": "ARABIC"}


# =============================================================================
# Quiz Prompt
# =============================================================================

def number_lines(content: str) -> str:
    """Prefix every line with a 1-based ``[LINE:n]`` marker."""
    return "\n".join(f"[LINE:{i}] {line}" for i, line in enumerate(content.split("\n"), 1))


def _quiz_base(difficulty: str, count: int, topic: str, content: str) -> str:
    return f"""
Generate a {difficulty} level quiz with {count} questions about {topic} based on the following content:

{content}

QUESTION DIVERSITY:
- Every question must test a different concept or aspect of the content
- Cover material from throughout the content, not just the beginning
- Questions must be clearly distinct in both concept and wording

COGNITIVE LEVELS:
- 25% recall and understanding (facts, definitions, simple concepts)
- 50% application and analysis (applying, comparing, analyzing relationships)
- 25% evaluation and synthesis (evaluating arguments, integrating concepts)

OPTIONS:
- The correct answer must be unambiguous given only the provided content
- Each incorrect option must be plausible and target a specific misconception
- Options should have similar length and grammatical structure
"""


def _previous_questions_section(previous_questions: List[str]) -> str:
    joined = "\n".join(previous_questions)
    return f"""
DO NOT REPEAT PREVIOUS QUESTIONS:
Do not repeat, rephrase or create variants of any of these questions, in any language.
Each new question must differ in both content and concept:
----------------------------------------------------
{joined}
----------------------------------------------------
Questions that duplicate the list above are rejected automatically.
"""


def _difficulty_section(difficulty: str) -> str:
    if difficulty in ("hard", "expert"):
        return f"""
For {difficulty} level questions:
- Use subtle wording that exposes common mistakes
- Make incorrect options closely related to the correct answer
- Keep exactly ONE correct answer; the others must be definitively wrong
- Include at least one question that requires combining several concepts
- Test edge cases and exceptions to rules
"""
    if difficulty == "medium":
        return """
For medium difficulty questions:
- Require understanding beyond memorization
- Incorrect options should be plausible but clearly wrong on analysis
- Focus on applying concepts and comparing related ideas
"""
    if difficulty == "easy":
        return """
For easy difficulty questions:
- Test basic understanding and recall
- Keep options distinct from each other but related to the topic
- Keep questions clear and straightforward
"""
    return ""


def _user_comments_section(user_comments: str) -> str:
    return f"""
HIGH PRIORITY INSTRUCTIONS FROM USER:
{user_comments}
"""


def _subjects_section(subject_names: List[str]) -> str:
    return f"""
FOCUS ON THESE SUBJECTS:
{', '.join(subject_names)}

- Each question must relate to ONE subject from the list above
- Distribute questions evenly across the subjects when possible
- If a question spans several subjects, assign the most relevant one
"""


def _past_exam_section(past_exam_content: str) -> str:
    return f"""
PAST EXAM FOR REFERENCE:
Match the style, depth and format of the questions in this past exam, without copying them:
{past_exam_content}
"""


def _relevant_sections_section(sections: List[Dict]) -> str:
    lines = ["", "SECTIONS MOST RELEVANT TO THE TOPIC:"]
    for i, section in enumerate(sections, 1):
        similarity = round(section.get("similarity", 0) * 100)
        lines.append(f"=== SECTION {i} (Relevance: {similarity}%) ===")
        lines.append(section.get("content", ""))
    return "\n".join(lines) + "\n"


def _file_references_section() -> str:
    return """
For every explanation, point to where the answer can be found. Use the [LINE:X]
markers in the content and end each explanation with "Reference: Line X"
(or "References: Lines X-Y").
"""


def _quiz_response_format(include_file_references: bool) -> str:
    reference = ". Reference: Line X" if include_file_references else ""
    return f"""
Format the quiz as a JSON object with this structure:
{{
  "title": "Quiz title related to the topic",
  "questions": [
    {{
      "id": "1",
      "question": "Question text",
      "options": [
        {{"id": "a", "text": "First option"}},
        {{"id": "b", "text": "Second option"}},
        {{"id": "c", "text": "Third option"}},
        {{"id": "d", "text": "Fourth option"}}
      ],
      "correctAnswer": "a",
      "explanation": "Why this answer is correct and the others are not{reference}",
      "relatedSubject": "Name of the subject this question tests"
    }}
  ]
}}

Return ONLY the raw JSON object, without markdown code fences or any other text.
"""


def _language_section(language: str) -> str:
    name = LANGUAGE_NAMES.get(language)
    if not name:
        return "\n"
    return f"""
Write the ENTIRE quiz in {name} ONLY: title, questions, options and explanations.
Generate native {name.capitalize()} content directly; do not translate from English.
"""


def build_quiz_prompt(
    content: str,
    topic: str,
    count: int,
    difficulty: str,
    language: str = "en",
    previous_questions: Optional[List[str]] = None,
    user_comments: Optional[str] = None,
    subject_names: Optional[List[str]] = None,
    pattern_text: str = "",
    relevant_sections: Optional[List[Dict]] = None,
    past_exam_content: Optional[str] = None,
    include_file_references: bool = True,
) -> str:
    """
    Build the quiz generation prompt.

    Args:
        content: Extracted file text (or one chunk of it)
        topic: Quiz topic
        count: Number of questions to request
        difficulty: easy, medium, hard or expert
        language: Output language code
        previous_questions: Question texts the model must not repeat
        user_comments: Screened free-text instructions
        subject_names: Subjects to focus on
        pattern_text: Formatted exam pattern guidance
        relevant_sections: Embedding matches ({content, similarity})
        past_exam_content: Text of a past exam to mirror
        include_file_references: Number lines and ask for line references

    Returns:
        Prompt text
    """
    body = number_lines(content) if include_file_references else content
    prompt = _quiz_base(difficulty, count, topic, body)

    if relevant_sections:
        prompt += _relevant_sections_section(relevant_sections)
    if past_exam_content:
        prompt += _past_exam_section(past_exam_content)
    if previous_questions:
        prompt += _previous_questions_section(previous_questions)
    prompt += _difficulty_section(difficulty)
    if user_comments and user_comments.strip():
        prompt += _user_comments_section(user_comments)
    if subject_names:
        prompt += _subjects_section(subject_names)
    if pattern_text:
        prompt += pattern_text + "\n"
    if include_file_references:
        prompt += _file_references_section()
    prompt += _quiz_response_format(include_file_references)
    prompt += _language_section(language)
    return prompt


# =============================================================================
# Subject Prompt
# =============================================================================

SPECIFICITY_GUIDANCE = {
    "general": "Prefer broad subjects that group related material (chapter-level).",
    "specific": "Prefer narrow, specific subjects (section- or concept-level).",
}


def build_subjects_prompt(
    content: str,
    existing_names: Optional[List[str]] = None,
    count_range: str = "medium",
    specificity: str = "general",
    language: str = "en",
) -> str:
    """Build the subject extraction prompt."""
    count = SUBJECT_COUNT_RANGES.get(count_range, SUBJECT_COUNT_RANGES["medium"])
    guidance = SPECIFICITY_GUIDANCE.get(specificity, SPECIFICITY_GUIDANCE["general"])

    prompt = f"""
SUBJECT EXTRACTION

You are an educational assistant organizing learning material into subjects.
Analyze the following content and identify the main subjects it covers:

{content}

Use explicit headings, chapter titles or section markers when they exist.
Otherwise identify {count} distinct subjects that:
1. Differ significantly from each other
2. Have enough content to stand on their own
3. Follow the logical progression of the material

{guidance}
"""

    if existing_names:
        listed = "\n".join(f"- {name}" for name in existing_names)
        prompt += f"""
These subjects ALREADY EXIST. Do not include them; return only NEW subjects:
{listed}
"""

    prompt += """
Return a JSON array of subjects:
[
  {"name": "Subject Title"},
  {"name": "Another Subject Title"}
]

If the content is not educational material (for example a receipt, a form or
random text), return exactly:
[{"status": "unrelated_content", "message": "Short explanation of why"}]

Return ONLY the raw JSON array, without markdown code fences or any other text.
"""

    name = LANGUAGE_NAMES.get(language)
    if name:
        prompt += f"\nWrite ALL subject names in {name} ONLY. Do not translate to English.\n"
    else:
        prompt += "\nWrite the subject names in English.\n"
    return prompt


# =============================================================================
# Pattern Prompt
# =============================================================================

PATTERN_SCHEMA = {
    "question_formats": {
        "multiple_choice": "percentage 0-100",
        "short_answer": "percentage 0-100",
        "essay": "percentage 0-100",
        "calculation": "percentage 0-100",
        "other": "percentage 0-100",
    },
    "topic_distribution": {
        "<topic name>": {"frequency": "percentage 0-100", "average_points": "number", "importance_score": "0-1"}
    },
    "exam_structure": {
        "section_breakdown": {"<section name>": "percentage 0-100"},
        "difficulty_progression": {"beginning": "easy|medium|hard", "middle": "easy|medium|hard", "end": "easy|medium|hard"},
    },
    "key_insights": {
        "high_value_topics": ["topic"],
        "common_keywords": [{"word": "keyword", "importance": "0-1"}],
        "recurring_concepts": [{"concept": "concept", "frequency": "count"}],
    },
    "confusion_points": {
        "misleading_questions": ["description"],
        "watch_out_for": ["description"],
        "common_mistakes": ["description"],
    },
    "confidence_metrics": {
        "overall_exam_predictability": "0-1",
        "format_prediction_confidence": "0-1",
    },
}


def build_pattern_prompt(content: str, exam_name: str, year: str = None,
                         semester: str = None, course: str = None) -> str:
    """Build the exam pattern extraction prompt."""
    details = [f"Exam: {exam_name}"]
    if course:
        details.append(f"Course: {course}")
    if year:
        details.append(f"Year: {year}")
    if semester:
        details.append(f"Semester: {semester}")

    return f"""
EXAM PATTERN ANALYSIS

{chr(10).join(details)}

Analyze the following past exam and describe its structure so future practice
quizzes can mirror it:

{content}

Return a JSON object with exactly this shape (values describe the expected type):
{json.dumps(PATTERN_SCHEMA, indent=2)}

Percentages within question_formats should sum to 100.
Return ONLY the raw JSON object, without markdown code fences or any other text.
"""
