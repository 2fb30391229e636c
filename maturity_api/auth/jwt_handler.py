from datetime import datetime, timedelta, timezone

import jwt

from maturity_api.core import config

ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ["sub", "exp", "iat"]


def token_lifetime(expires_minutes: int | None = None) -> timedelta:
    return timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)


def create_access_token(subject: str, role: str | None = None, expires_minutes: int | None = None) -> str:
    """Sign a bearer token for a staff account.

    The role is carried for clients only; requests are always authorised
    against the stored user row.
    """
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + token_lifetime(expires_minutes),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    payload = jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": REQUIRED_CLAIMS},
    )
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not an access token")
    return payload
