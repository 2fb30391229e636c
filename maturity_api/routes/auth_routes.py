import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from maturity_api.auth import jwt_handler
from maturity_api.auth.dependencies import get_current_user
from maturity_api.auth.passwords import verify_password
from maturity_api.core.audit import client_ip, record_action
from maturity_api.core.errors import database_errors
from maturity_api.core.schemas import RequestModel, ResponseModel
from maturity_api.database import get_db
from maturity_api.models.user import User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)


class LoginRequest(RequestModel):
    username: str | None = None
    password: str | None = None


class UserResponse(ResponseModel):
    id: int
    username: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str
    profile_image: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    last_login: datetime | None = None


def check_credentials(data: LoginRequest, db: Session) -> User:
    username = (data.username or '').strip().lower()
    if not username or not data.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Username and password are required',
        )

    with database_errors(db, 'Authentication failed'):
        user = db.query(User).filter(User.username == username).first()

    if user is None or not verify_password(data.password, user.password_hash, user.password_salt):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid username or password')

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Account is disabled')

    return user


def record_login(user: User, db: Session) -> User:
    with database_errors(db, 'Authentication failed'):
        user.last_login = datetime.now()
        db.commit()
        db.refresh(user)
    return user


def authenticate(data: LoginRequest, db: Session) -> User:
    return record_login(check_credentials(data, db), db)


def issue_token(user: User) -> dict:
    return {
        'success': True,
        'access_token': jwt_handler.create_access_token(subject=user.username, role=user.role),
        'token_type': 'bearer',
        'expires_in': int(jwt_handler.token_lifetime().total_seconds()),
        'user': UserResponse.model_validate(user),
    }


@router.post('/login')
def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = authenticate(data, db)
    record_action(db, 'user', user.id, 'login', f'User: {user.username}', client_ip(request))
    logger.info('User %s logged in', user.username)
    return issue_token(user)


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return {'success': True, 'user': UserResponse.model_validate(current_user)}
