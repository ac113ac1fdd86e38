"""
Analytics Router for StudyHub.

Endpoints:
- GET /analytics?workspaceId= - Performance analytics for a workspace
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..analytics_service import get_user_performance_analytics
from ..database import get_db
from ..dependencies import AuthContext, authenticate
from ..models import PerformanceAnalytics, QuizSubmission, SubjectPerformance

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=PerformanceAnalytics)
async def get_analytics(
    workspace_id: str = Query(..., alias="workspaceId"),
    auth: AuthContext = Depends(authenticate),
    db: Session = Depends(get_db),
):
    """
    Performance analytics for the caller in one workspace.

    Returns:
        overallScore, totalQuizzes, subjectPerformance (best first),
        recentSubmissions (last 5), weakSubjects and strongSubjects (3 each)
    """
    data = get_user_performance_analytics(db, auth.user_id, workspace_id)

    def performance(rows):
        return [SubjectPerformance.model_validate(r) for r in rows]

    return PerformanceAnalytics(
        overall_score=data["overall_score"],
        total_quizzes=data["total_quizzes"],
        subject_performance=performance(data["subject_performance"]),
        recent_submissions=[QuizSubmission.model_validate(s) for s in data["recent_submissions"]],
        weak_subjects=performance(data["weak_subjects"]),
        strong_subjects=performance(data["strong_subjects"]),
    )
