"""
Quiz submissions and per-subject performance aggregates.

Correctness is always computed here from the stored quiz; any isCorrect
sent by the client is ignored. The submission row and the performance
updates are committed in one transaction.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .db_models import DBQuiz, DBQuizSubmission, DBSubject, DBSubjectPerformance
from .exceptions import ValidationError
from .models import AnswerIn
from .quiz_service import get_quiz
from .sanitization import validate_uuid
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)


def grade_answers(quiz: DBQuiz, answers: List[AnswerIn]) -> List[Dict]:
    """Attach a server-side isCorrect to each answer."""
    correct_by_question = {q.get("id"): q.get("correctAnswer") for q in quiz.questions or []}
    graded = []
    for answer in answers:
        graded.append({
            "questionId": answer.question_id,
            "selectedOptionId": answer.selected_option_id,
            "subjectIds": list(answer.subject_ids),
            "isCorrect": correct_by_question.get(answer.question_id) == answer.selected_option_id,
        })
    return graded


def compute_score(graded: List[Dict]) -> float:
    """Fraction of answers that are correct; 0.0 for no answers."""
    if not graded:
        return 0.0
    return sum(1 for a in graded if a["isCorrect"]) / len(graded)


def _subject_tallies(db: Session, quiz: DBQuiz, graded: List[Dict]) -> Dict[str, Dict[str, int]]:
    """
    Correct/total counts per subject for one submission.

    A question counts towards its relatedSubject (a name or id among the
    quiz's selected subjects), else towards the first subject id sent with
    the answer, else towards every selected subject.
    """
    selected = list(quiz.selected_subjects or [])
    if not selected:
        return {}

    subjects = db.query(DBSubject).filter(
        DBSubject.id.in_(selected),
        DBSubject.workspace_id == quiz.workspace_id,
    ).all()
    known_ids = {s.id for s in subjects}
    id_by_name = {s.name: s.id for s in subjects}
    questions = {q.get("id"): q for q in quiz.questions or []}

    tallies: Dict[str, Dict[str, int]] = defaultdict(lambda: {"correct": 0, "total": 0})
    for answer in graded:
        question = questions.get(answer["questionId"])
        if question is None:
            continue

        subject_id = None
        related = question.get("relatedSubject")
        if related:
            subject_id = id_by_name.get(related) or (related if related in selected else None)
        if not subject_id and answer["subjectIds"]:
            subject_id = answer["subjectIds"][0]

        targets = [subject_id] if subject_id else selected
        for target in targets:
            if target not in known_ids:
                continue
            tallies[target]["total"] += 1
            if answer["isCorrect"]:
                tallies[target]["correct"] += 1

    return dict(tallies)


def _apply_performance(db: Session, user_id: str, workspace_id: str,
                       tallies: Dict[str, Dict[str, int]]) -> None:
    for subject_id, counts in tallies.items():
        if counts["total"] == 0:
            continue

        performance = db.query(DBSubjectPerformance).filter(
            DBSubjectPerformance.subject_id == subject_id,
            DBSubjectPerformance.user_id == user_id,
            DBSubjectPerformance.workspace_id == workspace_id,
        ).first()
        if performance is None:
            performance = DBSubjectPerformance(
                subject_id=subject_id,
                user_id=user_id,
                workspace_id=workspace_id,
                correct_answers=0,
                total_questions=0,
            )
            db.add(performance)

        performance.correct_answers = (performance.correct_answers or 0) + counts["correct"]
        performance.total_questions = (performance.total_questions or 0) + counts["total"]
        performance.score = performance.correct_answers / performance.total_questions
        performance.last_updated = datetime.utcnow()


def submit_quiz_answers(db: Session, user_id: str, quiz_id: str, workspace_id: str,
                        answers: List[AnswerIn]) -> DBQuizSubmission:
    """
    Grade and store a quiz attempt, updating subject performance.

    Raises:
        NotFoundError: If the quiz or workspace is not the caller's
        ValidationError: If the quiz belongs to a different workspace
    """
    get_workspace(db, workspace_id, user_id)
    quiz = get_quiz(db, quiz_id, user_id)
    if quiz.workspace_id != workspace_id:
        raise ValidationError("Quiz does not belong to this workspace")

    graded = grade_answers(quiz, answers)
    score = compute_score(graded)

    submission = DBQuizSubmission(
        quiz_id=quiz.id,
        user_id=user_id,
        workspace_id=workspace_id,
        answers=graded,
        score=score,
        completed_at=datetime.utcnow(),
    )
    db.add(submission)

    try:
        _apply_performance(db, user_id, workspace_id, _subject_tallies(db, quiz, graded))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(submission)

    logger.info(f"Recorded submission {submission.id} for quiz {quiz.id}: score {score:.2f}")
    return submission


def latest_submission(db: Session, user_id: str, quiz_id: str, workspace_id: str) -> Optional[DBQuizSubmission]:
    validate_uuid(quiz_id, "quizId")
    validate_uuid(workspace_id, "workspaceId")
    return db.query(DBQuizSubmission).filter(
        DBQuizSubmission.quiz_id == quiz_id,
        DBQuizSubmission.user_id == user_id,
        DBQuizSubmission.workspace_id == workspace_id,
    ).order_by(DBQuizSubmission.completed_at.desc()).first()
