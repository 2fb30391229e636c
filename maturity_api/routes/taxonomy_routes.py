import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import get_current_user
from maturity_api.auth.domain_access import check_domain_access, has_unrestricted_access
from maturity_api.core.errors import database_errors
from maturity_api.core.schemas import ResponseModel
from maturity_api.database import get_db
from maturity_api.models.domain import Domain, Scope, Subdomain
from maturity_api.models.user import User, UserDomain

router = APIRouter(tags=['taxonomy'])

logger = logging.getLogger(__name__)


class DomainSummaryResponse(ResponseModel):
    id: int
    name: str


class SubdomainSummaryResponse(ResponseModel):
    id: int
    name: str
    lead_consultant: str | None = None


class ScopeResponse(ResponseModel):
    id: int
    name: str
    created_by: str | None = None


@router.get('/domains')
def list_domains(db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch domains'):
        domains = db.query(Domain).order_by(Domain.id.asc()).all()

    return {'success': True, 'domains': [DomainSummaryResponse.model_validate(domain) for domain in domains]}


@router.get('/user/domains')
def list_user_domains(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch user domains'):
        query = db.query(Domain)
        if not has_unrestricted_access(current_user):
            query = query.join(UserDomain, UserDomain.domain_id == Domain.id).filter(
                UserDomain.user_id == current_user.id,
            )
        domains = query.order_by(Domain.name.asc()).all()

    logger.info('Returning %d domains for %s', len(domains), current_user.username)
    return {'success': True, 'domains': [DomainSummaryResponse.model_validate(domain) for domain in domains]}


@router.get('/subdomains/{domain_id}')
def list_domain_subdomains(
    domain_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to fetch subdomains'):
        domain = db.query(Domain).filter(Domain.id == domain_id).first()
        if domain is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Domain not found')

        check_domain_access(current_user, domain, db)

        subdomains = db.query(Subdomain).filter(
            Subdomain.domain_id == domain_id,
        ).order_by(Subdomain.name.asc()).all()

    return {
        'success': True,
        'subdomains': [SubdomainSummaryResponse.model_validate(subdomain) for subdomain in subdomains],
    }


@router.get('/scopes/{subdomain_id}')
def list_subdomain_scopes(
    subdomain_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with database_errors(db, 'Failed to fetch scopes'):
        subdomain = db.query(Subdomain).filter(Subdomain.id == subdomain_id).first()
        if subdomain is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Subdomain not found')

        domain = db.query(Domain).filter(Domain.id == subdomain.domain_id).first()
        check_domain_access(current_user, domain, db, subdomain_name=subdomain.name)

        scopes = db.query(Scope).filter(Scope.subdomain_id == subdomain_id).order_by(Scope.name.asc()).all()

    return {'success': True, 'scopes': [ScopeResponse.model_validate(scope) for scope in scopes]}
