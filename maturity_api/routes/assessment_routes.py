import json
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maturity_api.core import config
from maturity_api.core.audit import client_ip, record_action
from maturity_api.core.errors import ApiError, database_errors, error_body
from maturity_api.core.helpers import clean_optional, generate_id, percentage
from maturity_api.core.schemas import RequestModel, ResponseModel
from maturity_api.core.scoring import calculate_session_scores
from maturity_api.database import get_db
from maturity_api.models.assessment import (
    SCORE_OVERALL,
    SCORE_SUBDOMAIN,
    SESSION_COMPLETED,
    SESSION_IN_PROGRESS,
    AssessmentCode,
    AssessmentResponse,
    AssessmentSession,
    MaturityLevel,
    Participant,
    SessionScore,
    default_question_ids,
)
from maturity_api.models.domain import Domain, Subdomain

router = APIRouter(tags=['assessment'])

logger = logging.getLogger(__name__)

UNSCORED_OPTIONS = {'na', 'ns'}
SUPPORTED_LANGUAGES = {'en', 'ar'}


def normalize_code(value: str | None) -> str:
    return (value or '').strip().upper()


class ParticipantData(RequestModel):
    name: str
    email: str
    organization: str
    organization_size: str | None = None
    industry: str | None = None
    country: str | None = None
    role_title: str | None = None
    selected_role: str | None = None

    @field_validator('name', 'email', 'organization')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Value is required.')
        return normalized


class SessionRequest(RequestModel):
    code: str | None = None
    user_data: ParticipantData | None = None
    language: str = 'en'

    @field_validator('language')
    @classmethod
    def validate_language(cls, value: str) -> str:
        normalized = value.strip().lower()
        return normalized if normalized in SUPPORTED_LANGUAGES else 'en'


class SaveResponsesRequest(RequestModel):
    session_id: str | None = None
    responses: dict[str, str | int] | None = None


class CompleteAssessmentRequest(SaveResponsesRequest):
    code: str | None = None


class QuestionsByCodeRequest(RequestModel):
    code: str | None = None


class MaturityLevelResponse(ResponseModel):
    level_number: int
    level_name: str
    description_en: str | None = None
    description_ar: str | None = None
    score_range_min: float | None = None
    score_range_max: float | None = None
    color_code: str | None = None


def participant_summary(participant: Participant | None) -> dict | None:
    if participant is None:
        return None
    return {
        'name': participant.name,
        'email': participant.email,
        'organization': participant.organization,
        'role_title': participant.role_title,
        'selected_role': participant.selected_role_id,
    }


def latest_session(db: Session, code: str) -> AssessmentSession | None:
    return db.query(AssessmentSession).filter(
        AssessmentSession.code == code,
    ).order_by(AssessmentSession.session_start.desc()).first()


def saved_responses(db: Session, session_id: str) -> dict[str, str]:
    rows = db.query(AssessmentResponse).filter(
        AssessmentResponse.session_id == session_id,
    ).order_by(AssessmentResponse.answered_at.asc()).all()
    return {row.question_id: row.selected_option for row in rows}


def first_unanswered_index(question_ids: list[str], answered: set[str] | dict) -> int:
    for index, question_id in enumerate(question_ids):
        if question_id not in answered:
            return index
    return max(len(question_ids) - 1, 0)


def score_for(question_id: str, value: str | int) -> int:
    option = str(value).strip().lower()
    if option in UNSCORED_OPTIONS:
        return 0
    try:
        return int(option)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Invalid response for question {question_id}',
        ) from exc


def store_responses(db: Session, session: AssessmentSession, responses: dict[str, str | int]) -> int:
    """Upsert answers and refresh the session progress. Does not commit."""
    scored = {question_id: score_for(question_id, value) for question_id, value in responses.items()}
    now = datetime.now()

    for question_id, value in responses.items():
        existing = db.query(AssessmentResponse).filter(
            AssessmentResponse.session_id == session.id,
            AssessmentResponse.question_id == question_id,
        ).first()
        if existing is None:
            db.add(AssessmentResponse(
                session_id=session.id,
                question_id=question_id,
                selected_option=str(value),
                score_value=scored[question_id],
                assessment_code=session.code,
                answered_at=now,
            ))
        else:
            existing.selected_option = str(value)
            existing.score_value = scored[question_id]
            existing.answered_at = now

    db.flush()
    answered = db.query(AssessmentResponse).filter(AssessmentResponse.session_id == session.id).count()
    session.questions_answered = answered
    session.completion_percentage = percentage(answered, session.total_questions or config.DEFAULT_TOTAL_QUESTIONS)
    return len(responses)


def get_session_or_404(db: Session, session_id: str) -> AssessmentSession:
    session = db.query(AssessmentSession).filter(AssessmentSession.id == session_id).first()
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Session not found')
    return session


def ensure_open_session(session: AssessmentSession) -> None:
    if session.status == SESSION_COMPLETED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Assessment already completed')


def get_open_code(db: Session, code: str) -> AssessmentCode:
    """Return a code that exists and has not expired."""
    code_record = db.query(AssessmentCode).filter(AssessmentCode.code == code).first()
    if code_record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Invalid assessment code')
    if code_record.is_expired():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Assessment code has expired')
    return code_record


def evaluate_code(code: str, db: Session) -> tuple[int, dict, str]:
    if not code:
        return status.HTTP_400_BAD_REQUEST, error_body('Assessment code is required', valid=False), 'missing'

    code_record = db.query(AssessmentCode).filter(AssessmentCode.code == code).first()
    if code_record is None:
        return status.HTTP_404_NOT_FOUND, error_body('Invalid assessment code', valid=False), 'invalid'

    if code_record.is_expired():
        return status.HTTP_400_BAD_REQUEST, error_body('Assessment code has expired', valid=False), 'expired'

    body = {
        'success': True,
        'valid': True,
        'is_completed': False,
        'has_user_data': False,
        'organization_name': code_record.organization_name,
        'assessment_type': code_record.assessment_type or 'full',
    }

    existing = latest_session(db, code)
    if existing is None:
        return status.HTTP_200_OK, body, 'valid'

    participant = db.query(Participant).filter(Participant.id == existing.participant_id).first()
    body['has_user_data'] = True
    if existing.status == SESSION_COMPLETED:
        body.update(is_completed=True, session_id=existing.id, user_data=participant_summary(participant))
        return status.HTTP_200_OK, body, 'completed'

    body['existing_user'] = participant_summary(participant)
    return status.HTTP_200_OK, body, 'in_progress'


async def read_code(request: Request) -> str:
    """Pull the code out of a JSON body, tolerating missing or malformed bodies."""
    try:
        payload = json.loads(await request.body() or b'null')
    except ValueError:
        return ''
    if isinstance(payload, dict) and payload.get('code') is not None:
        return normalize_code(str(payload['code']))
    return ''


def check_and_record_code(code: str, ip_address: str, db: Session) -> JSONResponse:
    try:
        status_code, body, outcome = evaluate_code(code, db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Code validation failed for %s', code)
        status_code, body, outcome = (
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_body('Database error occurred', valid=False),
            'error',
        )

    record_action(
        db,
        'visitor',
        None,
        'code_validation',
        f'Code: {code or "<empty>"}, Result: {outcome}',
        ip_address,
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@router.post('/validate-code')
async def validate_code(request: Request, db: Session = Depends(get_db)):
    code = await read_code(request)
    return await run_in_threadpool(check_and_record_code, code, client_ip(request), db)


@router.post('/session')
def create_or_resume_session(data: SessionRequest, request: Request, db: Session = Depends(get_db)):
    code = normalize_code(data.code)
    if not code or data.user_data is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Assessment code and user data are required',
        )

    user_data = data.user_data

    with database_errors(db, 'Failed to create or resume session'):
        code_record = get_open_code(db, code)
        question_ids = code_record.questions() or default_question_ids(config.DEFAULT_TOTAL_QUESTIONS)

        session = latest_session(db, code)
        is_resume = session is not None

        if is_resume:
            participant = db.query(Participant).filter(Participant.id == session.participant_id).first()
            same_person = participant is not None and (
                participant.name == user_data.name
                and participant.email == user_data.email
                and participant.organization == user_data.organization
            )
            if not same_person:
                raise ApiError(
                    status.HTTP_409_CONFLICT,
                    'This assessment code has already been used by another user. Each code can only be used once.',
                    code_already_used=True,
                )

            if user_data.role_title and user_data.role_title != participant.role_title:
                participant.role_title = user_data.role_title
            if user_data.selected_role and user_data.selected_role != participant.selected_role_id:
                participant.selected_role_id = user_data.selected_role
        else:
            participant = Participant(
                id=generate_id('user'),
                name=user_data.name,
                email=user_data.email,
                organization=user_data.organization,
                organization_size=clean_optional(user_data.organization_size),
                industry=clean_optional(user_data.industry),
                country=clean_optional(user_data.country),
                role_title=clean_optional(user_data.role_title),
                selected_role_id=clean_optional(user_data.selected_role),
            )
            session = AssessmentSession(
                id=generate_id('session'),
                participant_id=participant.id,
                code=code,
                status=SESSION_IN_PROGRESS,
                language_preference=data.language,
                total_questions=len(question_ids),
                questions_answered=0,
                completion_percentage=0,
            )
            db.add(participant)
            db.add(session)

        db.commit()
        responses = saved_responses(db, session.id)

    record_action(
        db,
        'user',
        participant.id,
        'session_resumed' if is_resume else 'session_created',
        f'Code: {code}, Session: {session.id}',
        client_ip(request),
    )
    logger.info('%s session %s for code %s', 'Resumed' if is_resume else 'Created', session.id, code)

    return {
        'success': True,
        'session_id': session.id,
        'user_id': participant.id,
        'is_resume': is_resume,
        'saved_responses': responses,
        'start_question': first_unanswered_index(question_ids, responses),
        'completion_percentage': percentage(len(responses), session.total_questions or len(question_ids)),
    }


@router.post('/save-responses')
def save_responses(data: SaveResponsesRequest, request: Request, db: Session = Depends(get_db)):
    if not data.session_id or data.responses is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Session ID and responses are required',
        )

    with database_errors(db, 'Failed to save responses'):
        session = get_session_or_404(db, data.session_id)
        ensure_open_session(session)
        saved_count = store_responses(db, session, data.responses)
        db.commit()

    record_action(
        db,
        'user',
        session.participant_id,
        'responses_saved',
        f'Session: {session.id}, Responses: {saved_count}',
        client_ip(request),
    )

    return {
        'success': True,
        'saved_count': saved_count,
        'completion_percentage': session.completion_percentage,
        'message': f'Saved {saved_count} responses',
    }


@router.post('/complete-assessment')
def complete_assessment(data: CompleteAssessmentRequest, request: Request, db: Session = Depends(get_db)):
    code = normalize_code(data.code)
    if not code or not data.session_id or data.responses is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Code, session ID, and responses are required',
        )

    with database_errors(db, 'Failed to complete assessment'):
        code_record = db.query(AssessmentCode).filter(AssessmentCode.code == code).first()
        if code_record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Invalid assessment code')

        session = get_session_or_404(db, data.session_id)
        if session.code != code:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Session does not belong to this assessment code',
            )
        ensure_open_session(session)

        saved_count = store_responses(db, session, data.responses)

        code_record.is_used = True
        code_record.usage_count = (code_record.usage_count or 0) + 1
        session.status = SESSION_COMPLETED
        session.session_end = datetime.now()
        session.completion_percentage = 100
        scores = calculate_session_scores(db, session)
        db.commit()

    record_action(
        db,
        'user',
        session.participant_id,
        'assessment_completed',
        f'Code: {code}, Session: {session.id}',
        client_ip(request),
    )
    logger.info('Assessment completed for code %s', code)

    return {
        'success': True,
        'message': 'Assessment completed successfully',
        'saved_responses': saved_count,
        'overall_score': scores[-1].raw_score if scores else None,
    }


def code_progress(db: Session, code: str) -> tuple[list[str], set[str]]:
    code_record = get_open_code(db, code)
    question_ids = code_record.questions()
    if not question_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No questions found for this assessment code',
        )

    rows = db.query(AssessmentResponse.question_id).filter(
        AssessmentResponse.assessment_code == code,
    ).distinct().all()
    return question_ids, {question_id for (question_id,) in rows}


@router.post('/questions-by-code')
def first_unanswered_question(data: QuestionsByCodeRequest, db: Session = Depends(get_db)):
    code = normalize_code(data.code)
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Assessment code is required')

    with database_errors(db, 'Failed to process request'):
        question_ids, answered = code_progress(db, code)

    answered_in_list = [question_id for question_id in question_ids if question_id in answered]
    completed = len(answered_in_list) == len(question_ids)

    return {
        'success': True,
        'code': code,
        'question_number': first_unanswered_index(question_ids, answered),
        'total_answered': len(answered_in_list),
        'total_questions': len(question_ids),
        'completed': completed,
    }


@router.get('/questions-by-code')
def list_unanswered_questions(code: str = Query(default=''), db: Session = Depends(get_db)):
    normalized_code = normalize_code(code)
    if not normalized_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Assessment code is required')

    with database_errors(db, 'Failed to process request'):
        question_ids, answered = code_progress(db, normalized_code)

    unanswered = [question_id for question_id in question_ids if question_id not in answered]
    return {
        'success': True,
        'code': normalized_code,
        'unanswered_questions': unanswered,
        'total_unanswered': len(unanswered),
        'total_questions': len(question_ids),
    }


@router.get('/maturity-levels')
def list_maturity_levels(db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch maturity levels'):
        levels = db.query(MaturityLevel).order_by(MaturityLevel.level_number.asc()).all()

    return {'success': True, 'levels': [MaturityLevelResponse.model_validate(level) for level in levels]}


class CalculateScoresRequest(RequestModel):
    session_id: str | None = None


class SessionScoreResponse(ResponseModel):
    subdomain_id: int | None = None
    score_type: str
    raw_score: float
    percentage_score: float
    maturity_level: str
    questions_answered: int
    total_questions: int
    calculated_at: datetime | None = None


def split_scores(scores: list[SessionScore]) -> tuple[SessionScore | None, dict[int, SessionScore]]:
    overall = next((score for score in scores if score.score_type == SCORE_OVERALL), None)
    by_subdomain = {score.subdomain_id: score for score in scores if score.score_type == SCORE_SUBDOMAIN}
    return overall, by_subdomain


@router.post('/calculate-scores')
def calculate_scores(data: CalculateScoresRequest, request: Request, db: Session = Depends(get_db)):
    if not data.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Session ID is required')

    with database_errors(db, 'Failed to calculate scores'):
        session = get_session_or_404(db, data.session_id)
        scores = calculate_session_scores(db, session)
        if not scores:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No valid responses found')
        db.commit()

    record_action(
        db,
        'user',
        session.participant_id,
        'scores_calculated',
        f'Session: {session.id}, Subdomains: {len(scores) - 1}',
        client_ip(request),
    )

    overall, by_subdomain = split_scores(scores)
    return {
        'success': True,
        'session_id': session.id,
        'overall_score': SessionScoreResponse.model_validate(overall),
        'subdomain_scores': [SessionScoreResponse.model_validate(score) for score in by_subdomain.values()],
    }


@router.get('/results')
def get_results(
    session_id: str = Query(default='', alias='session'),
    lang: str = Query(default='en'),
    db: Session = Depends(get_db),
):
    if not session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Session ID is required')
    arabic = lang.strip().lower() == 'ar'

    with database_errors(db, 'Failed to fetch results'):
        session = get_session_or_404(db, session_id)
        participant = db.query(Participant).filter(Participant.id == session.participant_id).first()

        scores = db.query(SessionScore).filter(SessionScore.session_id == session.id).all()
        if not scores:
            scores = calculate_session_scores(db, session)
            db.commit()

        subdomains = (
            db.query(Subdomain, Domain)
            .join(Domain, Domain.id == Subdomain.domain_id)
            .filter(Subdomain.is_active.is_(True), Domain.is_active.is_(True))
            .order_by(Domain.display_order.asc(), Domain.id.asc(), Subdomain.display_order.asc(), Subdomain.id.asc())
            .all()
        )

    overall, by_subdomain = split_scores(scores)
    results = []
    for subdomain, domain in subdomains:
        score = by_subdomain.get(subdomain.id)
        results.append({
            'subdomain_id': subdomain.id,
            'subdomain_name': (arabic and subdomain.name_ar) or subdomain.name,
            'domain_id': domain.id,
            'domain_name': (arabic and domain.name_ar) or domain.name,
            'assessed': score is not None,
            'score': SessionScoreResponse.model_validate(score) if score is not None else None,
        })

    return {
        'success': True,
        'session': {
            'id': session.id,
            'code': session.code,
            'status': session.status,
            'completion_percentage': session.completion_percentage,
            'session_start': session.session_start,
            'session_end': session.session_end,
        },
        'participant': participant_summary(participant),
        'overall_score': SessionScoreResponse.model_validate(overall) if overall is not None else None,
        'subdomain_scores': results,
    }
