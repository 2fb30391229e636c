import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import require_admin
from maturity_api.core.errors import database_errors
from maturity_api.database import get_db
from maturity_api.models.assessment import SESSION_COMPLETED, AssessmentResponse, AssessmentSession, Participant
from maturity_api.models.audit_log import AuditLog
from maturity_api.models.user import User

router = APIRouter(tags=['analytics'])

logger = logging.getLogger(__name__)

VISIT_ACTIONS = ('session_created', 'page_view')
TOP_PAGES_LIMIT = 10


def session_window(query, start: date | None, end: date | None):
    if start is not None:
        query = query.filter(AssessmentSession.session_start >= datetime.combine(start, time.min))
    if end is not None:
        query = query.filter(AssessmentSession.session_start <= datetime.combine(end, time.max))
    return query


@router.get('/overview')
def get_overview(
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Start date must be before end date')

    with database_errors(db, 'Failed to fetch analytics'):
        completed_query = session_window(
            db.query(AssessmentSession).filter(AssessmentSession.status == SESSION_COMPLETED),
            start,
            end,
        )
        total_assessments = completed_query.count()

        total_organizations = session_window(
            db.query(func.count(func.distinct(Participant.organization)))
            .select_from(AssessmentSession)
            .join(Participant, Participant.id == AssessmentSession.participant_id)
            .filter(AssessmentSession.status == SESSION_COMPLETED),
            start,
            end,
        ).scalar()

        average_score = session_window(
            db.query(func.avg(AssessmentResponse.score_value))
            .select_from(AssessmentResponse)
            .join(AssessmentSession, AssessmentSession.id == AssessmentResponse.session_id),
            start,
            end,
        ).scalar()

        total_sessions, completed_sessions = session_window(
            db.query(
                func.count(AssessmentSession.id),
                func.sum(case((AssessmentSession.status == SESSION_COMPLETED, 1), else_=0)),
            ),
            start,
            end,
        ).one()

    completion_rate = (completed_sessions or 0) * 100 / total_sessions if total_sessions else 0

    return {
        'success': True,
        'data': {
            'total_assessments': total_assessments,
            'total_organizations': total_organizations or 0,
            'avg_maturity_score': round(float(average_score or 0), 1),
            'completion_rate': round(completion_rate, 1),
        },
    }


@router.get('/page-visits')
def get_page_visits(
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    since = datetime.now() - timedelta(days=days)
    visit_date = func.date(AuditLog.timestamp)

    with database_errors(db, 'Failed to fetch analytics'):
        daily_rows = (
            db.query(
                visit_date,
                func.count(AuditLog.id),
                func.count(func.distinct(AuditLog.ip_address)),
                func.count(func.distinct(AuditLog.user_id)),
            )
            .filter(AuditLog.action.in_(VISIT_ACTIONS), AuditLog.timestamp >= since)
            .group_by(visit_date)
            .order_by(visit_date.desc())
            .all()
        )

        visits = func.count(AuditLog.id)
        page_rows = (
            db.query(AuditLog.details, visits)
            .filter(AuditLog.action == 'page_view', AuditLog.timestamp >= since)
            .group_by(AuditLog.details)
            .order_by(visits.desc())
            .limit(TOP_PAGES_LIMIT)
            .all()
        )

        total_visits, unique_visitors, total_sessions, completed = (
            db.query(
                func.count(AuditLog.id),
                func.count(func.distinct(AuditLog.ip_address)),
                func.count(func.distinct(case((AuditLog.action == 'session_created', AuditLog.user_id)))),
                func.count(func.distinct(case((AuditLog.action == 'assessment_completed', AuditLog.user_id)))),
            )
            .filter(AuditLog.timestamp >= since)
            .one()
        )

    return {
        'success': True,
        'data': {
            'visit_stats': [
                {
                    'visit_date': str(day),
                    'visits': count,
                    'unique_visitors': unique_ips,
                    'unique_users': unique_users,
                }
                for day, count, unique_ips, unique_users in daily_rows
            ],
            'popular_pages': [{'page': page, 'visits': count} for page, count in page_rows],
            'summary': {
                'total_visits': total_visits,
                'total_unique_visitors': unique_visitors,
                'total_sessions': total_sessions,
                'completed_assessments': completed,
            },
            'period': f'Last {days} days',
        },
    }
