import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maturity_api.core.helpers import generate_id
from maturity_api.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get('x-forwarded-for')
    if forwarded:
        return forwarded.split(',')[0].strip()
    real_ip = request.headers.get('x-real-ip')
    if real_ip:
        return real_ip
    if request.client is not None:
        return request.client.host
    return 'unknown'


def record_action(
    db: Session,
    user_type: str,
    user_id: str | int | None,
    action: str,
    details: str | None = None,
    ip_address: str | None = None,
) -> bool:
    """Append an audit row in its own commit.

    A failed audit write is logged and reported as False; it never fails the
    request that triggered it.
    """
    try:
        db.add(AuditLog(
            id=generate_id('log'),
            user_type=user_type,
            user_id=str(user_id) if user_id is not None else None,
            action=action,
            details=details,
            ip_address=ip_address,
        ))
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Failed to record audit action %s', action)
        return False
