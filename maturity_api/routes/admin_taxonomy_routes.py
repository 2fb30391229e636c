import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import require_admin, require_manager
from maturity_api.core.errors import database_errors
from maturity_api.core.helpers import clean_optional
from maturity_api.core.schemas import RequestModel
from maturity_api.database import get_db
from maturity_api.models.domain import Domain, Question, Subdomain
from maturity_api.models.user import ROLE_LEAD_CONSULTANT, User

router = APIRouter(tags=['admin-taxonomy'])

logger = logging.getLogger(__name__)


class DomainRequest(RequestModel):
    name_en: str | None = None
    name_ar: str | None = None
    description_en: str | None = None
    description_ar: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


class SubdomainRequest(DomainRequest):
    domain_id: int | None = None
    lead_consultant: str | None = None


class AssignmentsRequest(RequestModel):
    subdomain_ids: list[int]


# Request field name -> model column.
DOMAIN_FIELDS = {
    'name_en': 'name',
    'name_ar': 'name_ar',
    'description_en': 'description',
    'description_ar': 'description_ar',
    'display_order': 'display_order',
    'is_active': 'is_active',
}
SUBDOMAIN_FIELDS = {**DOMAIN_FIELDS, 'domain_id': 'domain_id', 'lead_consultant': 'lead_consultant'}


def domain_payload(domain: Domain, subdomain_count: int) -> dict:
    return {
        'id': domain.id,
        'name_en': domain.name,
        'name_ar': domain.name_ar,
        'description_en': domain.description,
        'description_ar': domain.description_ar,
        'display_order': domain.display_order,
        'is_active': domain.is_active,
        'subdomain_count': subdomain_count,
        'created_at': domain.created_at,
    }


def subdomain_payload(subdomain: Subdomain, question_count: int, domain_name: str | None = None) -> dict:
    return {
        'id': subdomain.id,
        'domain_id': subdomain.domain_id,
        'domain_name': domain_name,
        'name_en': subdomain.name,
        'name_ar': subdomain.name_ar,
        'description_en': subdomain.description,
        'description_ar': subdomain.description_ar,
        'display_order': subdomain.display_order,
        'is_active': subdomain.is_active,
        'lead_consultant': subdomain.lead_consultant,
        'question_count': question_count,
        'created_at': subdomain.created_at,
    }


def apply_updates(record, data: RequestModel, fields: dict[str, str]) -> None:
    for field, value in data.model_dump(exclude_unset=True).items():
        if field not in fields:
            continue
        if isinstance(value, str):
            value = clean_optional(value)
        if field == 'name_en' and not value:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='English name cannot be empty')
        setattr(record, fields[field], value)


def get_domain_or_404(db: Session, domain_id: int) -> Domain:
    domain = db.query(Domain).filter(Domain.id == domain_id).first()
    if domain is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Domain not found')
    return domain


def get_subdomain_or_404(db: Session, subdomain_id: int) -> Subdomain:
    subdomain = db.query(Subdomain).filter(Subdomain.id == subdomain_id).first()
    if subdomain is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Subdomain not found')
    return subdomain


def count_subdomains(db: Session, domain_id: int) -> int:
    return db.query(Subdomain).filter(Subdomain.domain_id == domain_id).count()


def count_questions(db: Session, subdomain_id: int) -> int:
    return db.query(Question).filter(Question.subdomain_id == subdomain_id).count()


def next_display_order(db: Session, model, *criteria) -> int:
    current = db.query(func.max(model.display_order)).filter(*criteria).scalar()
    return (current or 0) + 1


@router.get('/domains')
def list_admin_domains(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch domains'):
        rows = (
            db.query(Domain, func.count(Subdomain.id))
            .outerjoin(Subdomain, Subdomain.domain_id == Domain.id)
            .group_by(Domain.id)
            .order_by(Domain.display_order.asc(), Domain.id.asc())
            .all()
        )

    return {'success': True, 'domains': [domain_payload(domain, count) for domain, count in rows]}


@router.post('/domains', status_code=status.HTTP_201_CREATED)
def create_domain(data: DomainRequest, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    name = clean_optional(data.name_en)
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='English name is required')

    with database_errors(db, 'Failed to create domain'):
        domain = Domain(
            name=name,
            name_ar=clean_optional(data.name_ar),
            description=clean_optional(data.description_en),
            description_ar=clean_optional(data.description_ar),
            display_order=data.display_order if data.display_order is not None else next_display_order(db, Domain),
            is_active=True if data.is_active is None else data.is_active,
        )
        db.add(domain)
        db.commit()
        db.refresh(domain)

    logger.info('%s created domain %s', current_user.username, domain.name)
    return {'success': True, 'domain': domain_payload(domain, 0)}


@router.put('/domains/{domain_id}')
def update_domain(
    domain_id: int,
    data: DomainRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to update domain'):
        domain = get_domain_or_404(db, domain_id)
        apply_updates(domain, data, DOMAIN_FIELDS)
        db.commit()
        db.refresh(domain)
        subdomain_count = count_subdomains(db, domain.id)

    return {'success': True, 'domain': domain_payload(domain, subdomain_count)}


@router.delete('/domains/{domain_id}')
def delete_domain(domain_id: int, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to delete domain'):
        domain = get_domain_or_404(db, domain_id)
        subdomain_count = count_subdomains(db, domain.id)
        if subdomain_count:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'Cannot delete domain with {subdomain_count} existing subdomains',
            )
        db.delete(domain)
        db.commit()

    logger.info('%s deleted domain %s', current_user.username, domain_id)
    return {'success': True, 'message': 'Domain deleted successfully'}


@router.get('/subdomains')
def list_admin_subdomains(
    domain_id: int | None = Query(default=None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to fetch subdomains'):
        query = (
            db.query(Subdomain, Domain.name, func.count(Question.id))
            .join(Domain, Domain.id == Subdomain.domain_id)
            .outerjoin(Question, Question.subdomain_id == Subdomain.id)
        )
        if domain_id is not None:
            query = query.filter(Subdomain.domain_id == domain_id)
        rows = query.group_by(Subdomain.id, Domain.name).order_by(
            Domain.display_order.asc(),
            Subdomain.display_order.asc(),
            Subdomain.id.asc(),
        ).all()

    return {
        'success': True,
        'subdomains': [subdomain_payload(subdomain, count, domain_name) for subdomain, domain_name, count in rows],
    }


@router.post('/subdomains', status_code=status.HTTP_201_CREATED)
def create_subdomain(
    data: SubdomainRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    name = clean_optional(data.name_en)
    if data.domain_id is None or not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Domain ID and English name are required',
        )

    with database_errors(db, 'Failed to create subdomain'):
        domain = get_domain_or_404(db, data.domain_id)
        display_order = data.display_order
        if display_order is None:
            display_order = next_display_order(db, Subdomain, Subdomain.domain_id == domain.id)

        subdomain = Subdomain(
            domain_id=domain.id,
            name=name,
            name_ar=clean_optional(data.name_ar),
            description=clean_optional(data.description_en),
            description_ar=clean_optional(data.description_ar),
            display_order=display_order,
            is_active=True if data.is_active is None else data.is_active,
            lead_consultant=clean_optional(data.lead_consultant),
        )
        db.add(subdomain)
        db.commit()
        db.refresh(subdomain)

    logger.info('%s created subdomain %s in %s', current_user.username, subdomain.name, domain.name)
    return {'success': True, 'subdomain': subdomain_payload(subdomain, 0, domain.name)}


@router.get('/subdomains/{subdomain_id}')
def get_subdomain(subdomain_id: int, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch subdomain'):
        subdomain = get_subdomain_or_404(db, subdomain_id)
        domain = db.query(Domain).filter(Domain.id == subdomain.domain_id).first()
        question_count = count_questions(db, subdomain.id)

    return {
        'success': True,
        'subdomain': subdomain_payload(subdomain, question_count, domain.name if domain else None),
    }


@router.put('/subdomains/{subdomain_id}')
def update_subdomain(
    subdomain_id: int,
    data: SubdomainRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to update subdomain'):
        subdomain = get_subdomain_or_404(db, subdomain_id)
        if data.domain_id is not None:
            get_domain_or_404(db, data.domain_id)
        apply_updates(subdomain, data, SUBDOMAIN_FIELDS)
        db.commit()
        db.refresh(subdomain)
        question_count = count_questions(db, subdomain.id)

    return {'success': True, 'subdomain': subdomain_payload(subdomain, question_count)}


@router.delete('/subdomains/{subdomain_id}')
def delete_subdomain(
    subdomain_id: int,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to delete subdomain'):
        subdomain = get_subdomain_or_404(db, subdomain_id)
        question_count = count_questions(db, subdomain.id)
        if question_count:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'Cannot delete subdomain with {question_count} existing questions',
            )
        db.delete(subdomain)
        db.commit()

    logger.info('%s deleted subdomain %s', current_user.username, subdomain_id)
    return {'success': True, 'message': 'Subdomain deleted successfully'}


@router.get('/lead-consultants')
def list_lead_consultants(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch lead consultants'):
        consultants = db.query(User).filter(
            User.role == ROLE_LEAD_CONSULTANT,
        ).order_by(User.username.asc()).all()

        results = []
        for consultant in consultants:
            rows = (
                db.query(Subdomain.id, Subdomain.name, Domain.name)
                .join(Domain, Domain.id == Subdomain.domain_id)
                .filter(Subdomain.lead_consultant == consultant.username)
                .order_by(Subdomain.name.asc())
                .all()
            )
            assigned = [
                {'id': subdomain_id, 'subdomain_name': subdomain_name, 'domain_name': domain_name}
                for subdomain_id, subdomain_name, domain_name in rows
            ]
            results.append({
                'id': consultant.id,
                'username': consultant.username,
                'email': consultant.email,
                'first_name': consultant.first_name,
                'last_name': consultant.last_name,
                'profile_image': consultant.profile_image,
                'is_active': consultant.is_active,
                'assigned_subdomains': assigned,
                'workload': len(assigned),
            })

    return {'success': True, 'lead_consultants': results}


@router.put('/lead-consultants/{username}/assignments')
def update_lead_consultant_assignments(
    username: str,
    data: AssignmentsRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    subdomain_ids = set(data.subdomain_ids)

    with database_errors(db, 'Failed to update assignments'):
        if subdomain_ids:
            found = {
                subdomain_id
                for (subdomain_id,) in db.query(Subdomain.id).filter(Subdomain.id.in_(subdomain_ids)).all()
            }
            missing = sorted(subdomain_ids - found)
            if missing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Unknown subdomain ids: {', '.join(str(value) for value in missing)}",
                )

        db.query(Subdomain).filter(Subdomain.lead_consultant == username).update(
            {Subdomain.lead_consultant: None},
            synchronize_session=False,
        )
        if subdomain_ids:
            db.query(Subdomain).filter(Subdomain.id.in_(subdomain_ids)).update(
                {Subdomain.lead_consultant: username},
                synchronize_session=False,
            )
        db.commit()

    logger.info('%s assigned %d subdomains to %s', current_user.username, len(subdomain_ids), username)
    return {'success': True, 'message': 'Assignments updated successfully'}
