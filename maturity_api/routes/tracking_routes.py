import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from maturity_api.core.audit import client_ip, record_action
from maturity_api.core.errors import database_errors
from maturity_api.core.helpers import clean_optional, is_valid_email
from maturity_api.core.schemas import RequestModel, ResponseModel
from maturity_api.database import get_db
from maturity_api.models.organization_request import REQUEST_TYPES, OrganizationRequest

router = APIRouter(tags=['tracking'])

logger = logging.getLogger(__name__)


class TrackVisitRequest(RequestModel):
    page: str | None = None
    session_id: str | None = None
    user_agent: str | None = None


class OrganizationRequestCreate(RequestModel):
    type: str | None = None
    organization_name: str | None = None
    organization_size: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    job_title: str | None = None
    industry: str | None = None
    country: str | None = None
    message: str | None = None


class OrganizationRequestResponse(ResponseModel):
    id: int
    type: str
    organization_name: str
    organization_size: str | None = None
    contact_name: str
    contact_email: str
    contact_phone: str | None = None
    job_title: str | None = None
    industry: str | None = None
    country: str | None = None
    message: str | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@router.post('/track-visit')
def track_visit(data: TrackVisitRequest, request: Request, db: Session = Depends(get_db)):
    page = clean_optional(data.page)
    if page is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Page is required')

    recorded = record_action(db, 'visitor', data.session_id, 'page_view', page, client_ip(request))
    if not recorded:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='Failed to track visit')

    return {'success': True}


@router.post('/org-requests', status_code=status.HTTP_201_CREATED)
def create_organization_request(data: OrganizationRequestCreate, db: Session = Depends(get_db)):
    if data.type not in REQUEST_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid request type. Must be "dma" or "consultation"',
        )

    contact_name = clean_optional(data.contact_name)
    contact_email = clean_optional(data.contact_email)
    organization_name = clean_optional(data.organization_name)

    if not contact_name or not contact_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Contact name and email are required')

    if not organization_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Organization name is required')

    if not is_valid_email(contact_email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid email format')

    new_request = OrganizationRequest(
        type=data.type,
        organization_name=organization_name,
        organization_size=clean_optional(data.organization_size),
        contact_name=contact_name,
        contact_email=contact_email,
        contact_phone=clean_optional(data.contact_phone),
        job_title=clean_optional(data.job_title),
        industry=clean_optional(data.industry),
        country=clean_optional(data.country),
        message=clean_optional(data.message),
        status='pending',
    )

    with database_errors(db, 'Failed to submit request. Please try again.'):
        db.add(new_request)
        db.commit()
        db.refresh(new_request)

    logger.info('Organization request %s received from %s', new_request.id, organization_name)
    return {
        'success': True,
        'message': 'Request submitted successfully',
        'request_id': new_request.id,
    }
