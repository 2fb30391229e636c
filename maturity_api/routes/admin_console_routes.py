import json
import logging
import math
import secrets
import string
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import require_admin
from maturity_api.core import config
from maturity_api.core.errors import database_errors
from maturity_api.core.helpers import clean_optional
from maturity_api.core.schemas import RequestModel
from maturity_api.database import get_db
from maturity_api.models.assessment import (
    SESSION_ABANDONED,
    SESSION_COMPLETED,
    SESSION_IN_PROGRESS,
    AssessmentCode,
    AssessmentSession,
    Participant,
    default_question_ids,
)
from maturity_api.models.audit_log import AuditLog
from maturity_api.models.domain import Domain, Question, Subdomain
from maturity_api.models.hist_data import HistData
from maturity_api.models.organization_request import REQUEST_STATUSES, OrganizationRequest
from maturity_api.models.user import User
from maturity_api.routes.tracking_routes import OrganizationRequestResponse

router = APIRouter(tags=['admin-console'])

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10
MAX_BULK_CODES = 100
RECENT_EVENTS_LIMIT = 10

CODE_ACTIVE = 'active'
CODE_EXPIRED = 'expired'
CODE_USED_UP = 'used_up'


class CreateCodesRequest(RequestModel):
    organization_name: str | None = None
    description: str | None = None
    expires_in: int | None = Field(default=None, ge=0)
    assessment_type: str = 'full'
    generate_bulk: bool = False
    bulk_count: int = Field(default=1, ge=1, le=MAX_BULK_CODES)


class UpdateOrganizationRequest(RequestModel):
    status: str | None = None


def code_status(code: AssessmentCode, now: datetime) -> str:
    if code.is_expired(now):
        return CODE_EXPIRED
    if code.is_used:
        return CODE_USED_UP
    return CODE_ACTIVE


def code_payload(code: AssessmentCode, now: datetime) -> dict:
    current_status = code_status(code, now)
    return {
        'code': code.code,
        'organization_name': code.organization_name,
        'intended_recipient': code.intended_recipient,
        'expires_at': code.expires_at,
        'is_used': bool(code.is_used),
        'usage_count': code.usage_count or 0,
        'assessment_type': code.assessment_type,
        'question_count': len(code.questions()),
        'created_by': code.created_by,
        'created_at': code.created_at,
        'status': current_status,
        'active': current_status == CODE_ACTIVE,
    }


def pagination(page: int, limit: int, total: int) -> dict:
    return {'page': page, 'limit': limit, 'total': total, 'pages': math.ceil(total / limit) if limit else 0}


def generate_code(db: Session, taken: set[str]) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        candidate = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(config.ASSESSMENT_CODE_LENGTH))
        if candidate in taken:
            continue
        if db.query(AssessmentCode.code).filter(AssessmentCode.code == candidate).first() is None:
            return candidate
    raise RuntimeError('Unable to generate unique code after multiple attempts')


def active_question_ids(db: Session) -> list[str]:
    rows = db.query(Question.id).filter(
        Question.is_active.is_(True),
    ).order_by(Question.display_order.asc(), Question.id.asc()).all()
    return [question_id for (question_id,) in rows] or default_question_ids(config.DEFAULT_TOTAL_QUESTIONS)


def time_ago(timestamp: datetime | None, now: datetime) -> str:
    if timestamp is None:
        return 'unknown'
    elapsed = now - timestamp
    minutes = int(elapsed.total_seconds() // 60)
    if minutes < 60:
        return f'{minutes} minutes ago'
    if minutes < 60 * 24:
        return f'{minutes // 60} hours ago'
    return f'{elapsed.days} days ago'


@router.get('/assessment-codes')
def list_assessment_codes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    organization: str = Query(default=''),
    assessment_type: str = Query(default='', alias='type'),
    status_filter: str = Query(default='', alias='status'),
    search: str = Query(default=''),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    now = datetime.now()

    with database_errors(db, 'Failed to fetch assessment codes'):
        query = db.query(AssessmentCode)
        if organization and organization != 'all':
            query = query.filter(AssessmentCode.organization_name == organization)
        if assessment_type and assessment_type != 'all':
            query = query.filter(AssessmentCode.assessment_type == assessment_type)
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(
                AssessmentCode.code.ilike(pattern),
                AssessmentCode.organization_name.ilike(pattern),
                AssessmentCode.intended_recipient.ilike(pattern),
            ))
        codes = [code_payload(code, now) for code in query.order_by(AssessmentCode.created_at.desc()).all()]

    # Status is derived, so it is filtered after loading.
    if status_filter and status_filter != 'all':
        codes = [code for code in codes if code['status'] == status_filter]

    offset = (page - 1) * limit
    return {
        'success': True,
        'codes': codes[offset:offset + limit],
        'pagination': pagination(page, limit, len(codes)),
    }


@router.post('/assessment-codes', status_code=status.HTTP_201_CREATED)
def create_assessment_codes(
    data: CreateCodesRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    organization_name = clean_optional(data.organization_name)
    if not organization_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Organization name is required')

    now = datetime.now()
    expires_at = now + timedelta(days=data.expires_in) if data.expires_in else None
    count = data.bulk_count if data.generate_bulk else 1

    with database_errors(db, 'Failed to create assessment code'):
        question_list = json.dumps(active_question_ids(db))
        created = []
        taken: set[str] = set()
        for _ in range(count):
            code = AssessmentCode(
                code=generate_code(db, taken),
                organization_name=organization_name,
                intended_recipient=clean_optional(data.description) or '',
                assessment_type=data.assessment_type,
                expires_at=expires_at,
                is_used=False,
                usage_count=0,
                question_list=question_list,
                created_by=current_user.username,
                created_at=now,
            )
            taken.add(code.code)
            db.add(code)
            created.append(code)
        db.commit()

    logger.info('%s created %d codes for %s', current_user.username, count, organization_name)
    return {
        'success': True,
        'message': f'{count} assessment code(s) created successfully',
        'codes': [code_payload(code, now) for code in created],
    }


@router.delete('/assessment-codes/{code}')
def delete_assessment_code(code: str, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    normalized_code = code.strip().upper()

    with database_errors(db, 'Failed to delete assessment code'):
        record = db.query(AssessmentCode).filter(AssessmentCode.code == normalized_code).first()
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Assessment code not found')
        if record.is_used:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot delete a used assessment code')
        db.delete(record)
        db.commit()

    logger.info('%s deleted code %s', current_user.username, normalized_code)
    return {'success': True, 'message': 'Assessment code deleted successfully'}


@router.get('/sessions')
def list_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status_filter: str = Query(default='all', alias='status'),
    organization: str = Query(default='all'),
    search: str = Query(default=''),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    now = datetime.now()

    with database_errors(db, 'Failed to fetch sessions'):
        query = (
            db.query(AssessmentSession, Participant, AssessmentCode)
            .outerjoin(Participant, Participant.id == AssessmentSession.participant_id)
            .outerjoin(AssessmentCode, AssessmentCode.code == AssessmentSession.code)
        )
        if status_filter != 'all':
            query = query.filter(AssessmentSession.status == status_filter)
        if organization != 'all':
            query = query.filter(Participant.organization == organization)
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(
                Participant.name.ilike(pattern),
                Participant.email.ilike(pattern),
                AssessmentSession.code.ilike(pattern),
            ))

        total = query.count()
        rows = query.order_by(AssessmentSession.session_start.desc()).offset((page - 1) * limit).limit(limit).all()

        counts = {
            session_status: db.query(AssessmentSession).filter(AssessmentSession.status == session_status).count()
            for session_status in (SESSION_IN_PROGRESS, SESSION_COMPLETED, SESSION_ABANDONED)
        }
        organizations = [
            name for (name,) in db.query(Participant.organization).filter(
                Participant.organization.isnot(None),
            ).distinct().order_by(Participant.organization.asc()).all()
        ]

    sessions = []
    for session, participant, code in rows:
        started = session.session_start or now
        duration = (session.session_end or now) - started
        sessions.append({
            'id': session.id,
            'code': session.code,
            'status': session.status,
            'session_start': session.session_start,
            'session_end': session.session_end,
            'total_questions': session.total_questions,
            'questions_answered': session.questions_answered,
            'completion_percentage': session.completion_percentage,
            'language_preference': session.language_preference,
            'duration_minutes': round(duration.total_seconds() / 60),
            'user_name': participant.name if participant else None,
            'user_email': participant.email if participant else None,
            'organization': participant.organization if participant else None,
            'role_title': participant.role_title if participant else None,
            'assessment_type': code.assessment_type if code else None,
            'code_organization': code.organization_name if code else None,
        })

    return {
        'success': True,
        'sessions': sessions,
        'stats': {
            'active_sessions': counts[SESSION_IN_PROGRESS],
            'completed_sessions': counts[SESSION_COMPLETED],
            'abandoned_sessions': counts[SESSION_ABANDONED],
            'total_sessions': total,
        },
        'organizations': organizations,
        'pagination': pagination(page, limit, total),
    }


@router.get('/dashboard-stats')
def get_console_dashboard_stats(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    now = datetime.now()

    with database_errors(db, 'Failed to fetch dashboard statistics'):
        active_codes = db.query(AssessmentCode).filter(
            or_(AssessmentCode.expires_at.is_(None), AssessmentCode.expires_at > now),
            or_(AssessmentCode.is_used.is_(False), AssessmentCode.is_used.is_(None)),
        ).count()
        completed = db.query(AssessmentSession).filter(AssessmentSession.status == SESSION_COMPLETED).count()
        in_progress = db.query(AssessmentSession).filter(AssessmentSession.status == SESSION_IN_PROGRESS).count()
        events = db.query(AuditLog).order_by(AuditLog.timestamp.desc()).limit(RECENT_EVENTS_LIMIT).all()

    return {
        'success': True,
        'stats': {
            'active_codes': active_codes,
            'completed_assessments': completed,
            'active_sessions': in_progress,
            'recent_activity': [
                {
                    'action': event.action,
                    'description': f"{event.action}: {event.details or ''}",
                    'time_ago': time_ago(event.timestamp, now),
                }
                for event in events
            ],
        },
    }


@router.get('/stats')
def get_hours_stats(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch statistics'):
        stats = {
            'total_users': db.query(User).count(),
            'active_users': db.query(User).filter(User.is_active.is_(True)).count(),
            'total_domains': db.query(Domain).count(),
            'total_subdomains': db.query(Subdomain).count(),
            'total_entries': db.query(HistData).count(),
        }

    return {'success': True, 'stats': stats}


@router.get('/org-requests')
def list_organization_requests(
    status_filter: str | None = Query(default=None, alias='status'),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to fetch requests'):
        query = db.query(OrganizationRequest)
        if status_filter and status_filter != 'all':
            query = query.filter(OrganizationRequest.status == status_filter)
        requests = query.order_by(OrganizationRequest.created_at.desc(), OrganizationRequest.id.desc()).all()

    return {
        'success': True,
        'requests': [OrganizationRequestResponse.model_validate(item) for item in requests],
    }


@router.patch('/org-requests/{request_id}')
def update_organization_request(
    request_id: int,
    data: UpdateOrganizationRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.status not in REQUEST_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Status must be one of: {', '.join(REQUEST_STATUSES)}",
        )

    with database_errors(db, 'Failed to update request'):
        record = db.query(OrganizationRequest).filter(OrganizationRequest.id == request_id).first()
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Request not found')
        record.status = data.status
        db.commit()
        db.refresh(record)

    logger.info('%s set request %s to %s', current_user.username, request_id, data.status)
    return {'success': True, 'request': OrganizationRequestResponse.model_validate(record)}
