"""Performance analytics for a user within a workspace."""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from .constants import RECENT_SUBMISSIONS_LIMIT, WEAK_STRONG_SUBJECT_COUNT
from .db_models import DBQuizSubmission, DBSubjectPerformance
from .workspace_service import get_workspace

logger = logging.getLogger(__name__)


def get_user_performance_analytics(db: Session, user_id: str, workspace_id: str) -> Dict:
    """
    Summarize quiz results for a workspace.

    Returns:
        Dict with overall_score (mean submission score, 0 without
        submissions), total_quizzes, subject_performance (best first),
        recent_submissions, weak_subjects and strong_subjects
    """
    get_workspace(db, workspace_id, user_id)

    submissions = db.query(DBQuizSubmission).filter(
        DBQuizSubmission.user_id == user_id,
        DBQuizSubmission.workspace_id == workspace_id,
    ).order_by(DBQuizSubmission.completed_at.desc()).all()

    total = len(submissions)
    overall = sum(s.score for s in submissions) / total if total else 0.0

    performance = db.query(DBSubjectPerformance).filter(
        DBSubjectPerformance.user_id == user_id,
        DBSubjectPerformance.workspace_id == workspace_id,
    ).order_by(DBSubjectPerformance.score.desc()).all()

    ascending = sorted(performance, key=lambda p: p.score)

    logger.debug(f"Analytics for workspace {workspace_id}: {total} submissions, {len(performance)} subjects")
    return {
        "overall_score": overall,
        "total_quizzes": total,
        "subject_performance": performance,
        "recent_submissions": submissions[:RECENT_SUBMISSIONS_LIMIT],
        "weak_subjects": ascending[:WEAK_STRONG_SUBJECT_COUNT],
        "strong_subjects": list(reversed(ascending))[:WEAK_STRONG_SUBJECT_COUNT],
    }
