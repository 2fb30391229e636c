import logging
from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AfterValidator, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import get_current_user
from maturity_api.auth.domain_access import check_domain_names, has_unrestricted_access
from maturity_api.core import config
from maturity_api.core.errors import database_errors
from maturity_api.core.schemas import RequestModel, ResponseModel
from maturity_api.database import ensure_table_schema, get_db
from maturity_api.models.domain import Domain, Scope, Subdomain
from maturity_api.models.hist_data import HistData
from maturity_api.models.user import User

router = APIRouter(tags=['hours'])

logger = logging.getLogger(__name__)

WEB_ENTRY_SOURCE = 'WEB_ENTRY'
REGULAR_ACTIVITY = 'Regular'
RECENT_ACTIVITY_LIMIT = 10
MAX_NOTES_LENGTH = 2000


def clean_name(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Value is required.')
    return normalized


def clean_notes(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Notes are required.')
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


EntryName = Annotated[str, AfterValidator(clean_name)]
EntryNotes = Annotated[str, AfterValidator(clean_notes)]
EntryHours = Annotated[float, Field(ge=0.25, le=24)]


class EntryRequest(RequestModel):
    domain_name: EntryName
    subdomain_name: EntryName
    scope_name: EntryName
    hours: EntryHours
    notes: EntryNotes


class UpdateEntryRequest(RequestModel):
    domain_name: EntryName | None = None
    subdomain_name: EntryName | None = None
    scope_name: EntryName | None = None
    hours: EntryHours | None = None
    notes: EntryNotes | None = None


class CreateEntriesRequest(RequestModel):
    entries: list[EntryRequest] = Field(min_length=1)


class EntryResponse(ResponseModel):
    id: int
    client: str
    domain: str | None = None
    subdomain: str | None = None
    scope: str | None = None
    hours: float
    notes: str | None = None
    created_at: datetime | None = None


def to_entry_response(entry: HistData) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        client=entry.client,
        domain=entry.domain,
        subdomain=entry.subdomain or '',
        scope=entry.scope or '',
        hours=float(entry.working_hours),
        notes=entry.notes or '',
        created_at=entry.created_at,
    )


def resolve_entry_target(domain_name: str, subdomain_name: str, scope_name: str, db: Session) -> None:
    domain = db.query(Domain).filter(Domain.name == domain_name).first()
    if domain is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Domain '{domain_name}' not found",
        )

    subdomain = db.query(Subdomain).filter(
        Subdomain.name == subdomain_name,
        Subdomain.domain_id == domain.id,
    ).first()
    if subdomain is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Subdomain '{subdomain_name}' not found in domain '{domain_name}'",
        )

    scope = db.query(Scope).filter(
        Scope.name == scope_name,
        Scope.subdomain_id == subdomain.id,
    ).first()
    if scope is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Scope '{scope_name}' not found in subdomain '{subdomain_name}'",
        )


def format_hours(hours: float) -> str:
    return f'{float(hours):g}'


def consultant_entries(db: Session, username: str):
    return db.query(HistData).filter(HistData.consultant == username)


@router.post('/entries', status_code=status.HTTP_201_CREATED)
def create_entries(
    data: CreateEntriesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    today = date.today()

    with database_errors(db, 'Failed to create entries'):
        check_domain_names(current_user, [entry.domain_name for entry in data.entries], db)
        ensure_table_schema('hist_data')

        # Every entry is resolved before anything is written.
        for entry in data.entries:
            resolve_entry_target(entry.domain_name, entry.subdomain_name, entry.scope_name, db)

        created = []
        for entry in data.entries:
            hist_entry = HistData(
                source=WEB_ENTRY_SOURCE,
                year=today.year,
                month_no=today.month,
                day=today.day,
                month=today.strftime('%B'),
                consultant_id=current_user.id,
                consultant=current_user.username,
                client=entry.subdomain_name,
                activity_type=REGULAR_ACTIVITY,
                working_hours=entry.hours,
                notes=entry.notes,
                domain=entry.domain_name,
                subdomain=entry.subdomain_name,
                scope=entry.scope_name,
            )
            db.add(hist_entry)
            created.append(hist_entry)

        db.commit()
        for hist_entry in created:
            db.refresh(hist_entry)

    logger.info('Created %d entries for %s', len(created), current_user.username)
    return {
        'success': True,
        'message': f'Successfully created {len(created)} entries',
        'entries': [to_entry_response(entry) for entry in created],
    }


def get_editable_entry(db: Session, entry_id: int, user: User) -> HistData:
    entry = db.query(HistData).filter(HistData.id == entry_id).first()
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Entry not found')

    if entry.consultant != user.username and not has_unrestricted_access(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied to this entry')

    if entry.domain:
        check_domain_names(user, [entry.domain], db)
    return entry


@router.get('/entries/{entry_id}')
def get_entry(entry_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch entry'):
        entry = get_editable_entry(db, entry_id, current_user)

    return {'success': True, 'entry': to_entry_response(entry)}


@router.put('/entries/{entry_id}')
def update_entry(
    entry_id: int,
    data: UpdateEntryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No fields to update')

    with database_errors(db, 'Failed to update entry'):
        entry = get_editable_entry(db, entry_id, current_user)

        if {'domain_name', 'subdomain_name', 'scope_name'} & changes.keys():
            domain_name = data.domain_name or entry.domain
            subdomain_name = data.subdomain_name or entry.subdomain
            scope_name = data.scope_name or entry.scope
            if domain_name != entry.domain:
                check_domain_names(current_user, [domain_name], db)
            resolve_entry_target(domain_name, subdomain_name, scope_name, db)

            entry.domain = domain_name
            entry.subdomain = subdomain_name
            entry.client = subdomain_name
            entry.scope = scope_name

        if data.hours is not None:
            entry.working_hours = data.hours
        if data.notes is not None:
            entry.notes = data.notes

        db.commit()
        db.refresh(entry)

    logger.info('Entry %s updated by %s', entry.id, current_user.username)
    return {'success': True, 'message': 'Entry updated successfully', 'entry': to_entry_response(entry)}


@router.delete('/entries/{entry_id}')
def delete_entry(entry_id: int, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to delete entry'):
        entry = get_editable_entry(db, entry_id, current_user)
        db.delete(entry)
        db.commit()

    logger.info('Entry %s deleted by %s', entry_id, current_user.username)
    return {'success': True, 'message': 'Entry deleted successfully', 'deleted_id': entry_id}


@router.get('/dashboard/today')
def list_todays_entries(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    today = date.today()

    with database_errors(db, "Failed to fetch today's entries"):
        entries = consultant_entries(db, current_user.username).filter(
            HistData.year == today.year,
            HistData.month_no == today.month,
            HistData.day == today.day,
        ).order_by(HistData.created_at.desc(), HistData.id.desc()).all()

    return {'success': True, 'entries': [to_entry_response(entry) for entry in entries]}


@router.get('/dashboard/activity')
def list_recent_activity(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch dashboard activity'):
        entries = consultant_entries(db, current_user.username).order_by(
            HistData.created_at.desc(),
            HistData.id.desc(),
        ).limit(RECENT_ACTIVITY_LIMIT).all()

    activities = [
        {
            'id': entry.id,
            'type': 'entry_added',
            'description': f'Added {format_hours(entry.working_hours)}h entry for {entry.client} - {entry.domain}',
            'timestamp': entry.created_at,
            'user': current_user.username,
        }
        for entry in entries
    ]
    return {'success': True, 'activities': activities}


@router.get('/dashboard/stats')
def get_dashboard_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    today = date.today()

    with database_errors(db, 'Failed to fetch dashboard stats'):
        month_query = consultant_entries(db, current_user.username).filter(
            HistData.year == today.year,
            HistData.month_no == today.month,
        )
        today_hours = month_query.filter(HistData.day == today.day).with_entities(
            func.coalesce(func.sum(HistData.working_hours), 0),
        ).scalar()
        month_hours = month_query.with_entities(
            func.coalesce(func.sum(HistData.working_hours), 0),
        ).scalar()
        active_clients = month_query.with_entities(func.count(func.distinct(HistData.client))).scalar()

    expected_monthly_hours = config.DEFAULT_DEAL_DAYS * config.EXPECTED_HOURS_PER_DAY
    utilization = (float(month_hours) / expected_monthly_hours) * 100 if expected_monthly_hours > 0 else 0

    return {
        'success': True,
        'stats': {
            'today_hours': float(today_hours),
            'month_hours': float(month_hours),
            'active_clients': active_clients,
            'utilization': round(utilization, 1),
            'expected_monthly_hours': expected_monthly_hours,
        },
    }
