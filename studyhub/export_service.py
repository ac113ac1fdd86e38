"""Quiz export to Word (.docx) with python-docx."""

import io
import logging
import re

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

from .db_models import DBQuiz

logger = logging.getLogger(__name__)

INSTRUCTIONS = "Instructions: Select the best answer for each question."


def export_filename(title: str) -> str:
    """Quiz-<title>.docx with every non-alphanumeric character replaced by '-'."""
    return f"Quiz-{re.sub(r'[^a-zA-Z0-9]', '-', title or '')}.docx"


def quiz_to_docx(quiz: DBQuiz) -> bytes:
    """
    Render a quiz as a Word document.

    Layout: centered title, an instructions heading, then for each question
    a "Question i: ..." heading, one paragraph per option and a blank line.
    """
    document = Document()

    title = document.add_heading(quiz.title, level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    document.add_heading(INSTRUCTIONS, level=1)

    for index, question in enumerate(quiz.questions or [], start=1):
        document.add_heading(f"Question {index}: {question.get('question', '')}", level=2)
        for option in question.get("options", []):
            document.add_paragraph(f"{option.get('id')}. {option.get('text')}")
        document.add_paragraph("")

    buffer = io.BytesIO()
    document.save(buffer)
    logger.info(f"Exported quiz {quiz.id} to docx ({len(quiz.questions or [])} questions)")
    return buffer.getvalue()
