"""Domain-level access rules for regular users.

Admin roles may log hours against any domain. Everybody else is limited to
the domains linked to them in ``user_domains``.
"""

from fastapi import status
from sqlalchemy.orm import Session

from maturity_api.core.errors import ApiError
from maturity_api.models.domain import Domain
from maturity_api.models.user import ADMIN_ROLES, User, UserDomain


def has_unrestricted_access(user: User) -> bool:
    return user.role in ADMIN_ROLES


def allowed_domain_names(user: User, db: Session) -> list[str]:
    rows = (
        db.query(Domain.name)
        .join(UserDomain, UserDomain.domain_id == Domain.id)
        .filter(UserDomain.user_id == user.id)
        .order_by(Domain.name.asc())
        .all()
    )
    return [name for (name,) in rows]


def check_domain_access(user: User, domain: Domain, db: Session, **payload) -> None:
    if has_unrestricted_access(user):
        return

    link = db.query(UserDomain).filter(
        UserDomain.user_id == user.id,
        UserDomain.domain_id == domain.id,
    ).first()
    if link is None:
        raise ApiError(
            status.HTTP_403_FORBIDDEN,
            f"You don't have access to domain '{domain.name}'",
            domain_name=domain.name,
            **payload,
        )


def check_domain_names(user: User, domain_names: list[str], db: Session) -> None:
    """Reject the first domain name the user is not assigned to."""
    if has_unrestricted_access(user):
        return

    allowed = allowed_domain_names(user, db)
    for domain_name in dict.fromkeys(domain_names):
        if domain_name not in allowed:
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                f"You don't have access to domain '{domain_name}'. You are assigned to: {', '.join(allowed)}",
                allowed_domains=allowed,
            )
