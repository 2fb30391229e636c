import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import require_admin, require_manager
from maturity_api.auth.passwords import hash_password
from maturity_api.core import config
from maturity_api.core.audit import client_ip, record_action
from maturity_api.core.errors import database_errors
from maturity_api.core.helpers import clean_optional, is_valid_email
from maturity_api.core.schemas import RequestModel
from maturity_api.database import get_db
from maturity_api.models.domain import Domain
from maturity_api.models.user import ADMIN_ROLES, ROLE_ADMIN, ROLE_SUPER_USER, ROLES, User, UserDomain
from maturity_api.routes.auth_routes import LoginRequest, UserResponse, check_credentials, issue_token, record_login
from maturity_api.routes.profile_routes import ChangePasswordRequest, change_password

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

GENERATED_PASSWORD_BYTES = 9


class CreateUserRequest(RequestModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str = ROLE_ADMIN


@router.post('/login')
def admin_login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = check_credentials(data, db)
    if user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Admin access required')

    record_login(user, db)
    record_action(db, 'admin', user.id, 'admin_login', f'Admin: {user.username}', client_ip(request))
    logger.info('Admin %s logged in', user.username)
    return issue_token(user)


@router.post('/change-password')
def change_admin_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return change_password(current_user, data, db)


@router.get('/users')
def list_users(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to fetch users'):
        users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()

    return {'success': True, 'users': [UserResponse.model_validate(user) for user in users]}


@router.post('/users', status_code=status.HTTP_201_CREATED)
def create_user(
    data: CreateUserRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    username = (data.username or '').strip().lower()
    email = (data.email or '').strip().lower()

    if not username or not email or not data.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Username, email and password are required',
        )

    if len(data.password) < config.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters long',
        )

    if not is_valid_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Please enter a valid email address')

    if data.role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role must be one of: {', '.join(ROLES)}",
        )

    with database_errors(db, 'Failed to create user'):
        if db.query(User).filter(User.username == username).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='A user with this username already exists')
        if db.query(User).filter(User.email == email).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='A user with this email already exists')

        password_hash, password_salt = hash_password(data.password)
        user = User(
            username=username,
            email=email,
            first_name=clean_optional(data.first_name),
            last_name=clean_optional(data.last_name),
            password_hash=password_hash,
            password_salt=password_salt,
            role=data.role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

    logger.info('%s created user %s with role %s', current_user.username, user.username, user.role)
    return {'success': True, 'message': 'User created successfully', 'user': UserResponse.model_validate(user)}


class UpdateUserRequest(RequestModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    is_active: bool | None = None
    domain_ids: list[int] | None = None


class ResetPasswordRequest(RequestModel):
    new_password: str | None = None


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found')
    return user


def ensure_super_user_remains(db: Session, user: User) -> None:
    """Refuse to remove the last active super user."""
    if user.role != ROLE_SUPER_USER or not user.is_active:
        return
    remaining = db.query(User).filter(
        User.role == ROLE_SUPER_USER,
        User.is_active.is_(True),
        User.id != user.id,
    ).count()
    if not remaining:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Cannot deactivate the last super user')


def check_domain_ids(db: Session, domain_ids: list[int]) -> list[int]:
    wanted = list(dict.fromkeys(domain_ids))
    known = {domain_id for (domain_id,) in db.query(Domain.id).filter(Domain.id.in_(wanted)).all()}
    missing = [domain_id for domain_id in wanted if domain_id not in known]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown domain ids: {', '.join(str(domain_id) for domain_id in missing)}",
        )
    return wanted


def drop_domain_links(db: Session, user: User) -> None:
    for link in db.query(UserDomain).filter(UserDomain.user_id == user.id).all():
        db.delete(link)
    db.flush()


def replace_domain_links(db: Session, user: User, domain_ids: list[int]) -> None:
    drop_domain_links(db, user)
    db.add_all([UserDomain(user_id=user.id, domain_id=domain_id) for domain_id in domain_ids])


@router.put('/users/{user_id}')
def update_user(
    user_id: int,
    data: UpdateUserRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No user fields provided')

    if data.role is not None and data.role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role must be one of: {', '.join(ROLES)}",
        )

    email = (data.email or '').strip().lower()
    if 'email' in updates and not is_valid_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Please enter a valid email address')

    with database_errors(db, 'Failed to update user'):
        user = get_user_or_404(db, user_id)

        demoted = data.role is not None and data.role != ROLE_SUPER_USER
        if demoted or data.is_active is False:
            ensure_super_user_remains(db, user)

        if 'email' in updates:
            taken = db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email is already in use')

        domain_ids = check_domain_ids(db, data.domain_ids) if data.domain_ids is not None else None

        if 'email' in updates:
            user.email = email
        if 'first_name' in updates:
            user.first_name = clean_optional(data.first_name)
        if 'last_name' in updates:
            user.last_name = clean_optional(data.last_name)
        if data.role is not None:
            user.role = data.role
        if data.is_active is not None:
            user.is_active = data.is_active

        if data.is_active is False:
            drop_domain_links(db, user)
        elif domain_ids is not None:
            replace_domain_links(db, user, domain_ids)

        db.commit()
        db.refresh(user)

    logger.info('%s updated user %s', current_user.username, user.username)
    return {'success': True, 'message': 'User updated successfully', 'user': UserResponse.model_validate(user)}


@router.delete('/users/{user_id}')
def deactivate_user(user_id: int, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    with database_errors(db, 'Failed to deactivate user'):
        user = get_user_or_404(db, user_id)
        ensure_super_user_remains(db, user)
        user.is_active = False
        drop_domain_links(db, user)
        db.commit()

    logger.info('%s deactivated user %s', current_user.username, user.username)
    return {'success': True, 'message': 'User deactivated successfully'}


@router.post('/users/{user_id}/reset-password')
def reset_user_password(
    user_id: int,
    data: ResetPasswordRequest,
    request: Request,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    generated = not data.new_password
    new_password = secrets.token_urlsafe(GENERATED_PASSWORD_BYTES) if generated else data.new_password
    if len(new_password) < config.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters long',
        )

    with database_errors(db, 'Failed to reset password'):
        user = get_user_or_404(db, user_id)
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Cannot reset password for inactive user',
            )
        user.password_hash, user.password_salt = hash_password(new_password)
        db.commit()

    record_action(db, 'admin', current_user.id, 'password_reset', f'User: {user.username}', client_ip(request))
    logger.info('%s reset the password of %s', current_user.username, user.username)

    body = {'success': True, 'message': 'Password reset successfully', 'username': user.username}
    if generated:
        body['new_password'] = new_password
    return body
