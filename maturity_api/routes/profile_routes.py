import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from maturity_api.auth.dependencies import get_current_user
from maturity_api.auth.passwords import hash_password, verify_password
from maturity_api.core import config
from maturity_api.core.errors import database_errors
from maturity_api.core.helpers import clean_optional, is_valid_email
from maturity_api.core.schemas import RequestModel
from maturity_api.database import get_db
from maturity_api.models.user import User
from maturity_api.routes.auth_routes import UserResponse

router = APIRouter(tags=['profile'])

logger = logging.getLogger(__name__)


class UpdateProfileRequest(RequestModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    profile_image: str | None = None


class ChangePasswordRequest(RequestModel):
    current_password: str | None = None
    new_password: str | None = None


def change_password(user: User, data: ChangePasswordRequest, db: Session) -> dict:
    if not data.current_password or not data.new_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Current password and new password are required',
        )

    if len(data.new_password) < config.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'New password must be at least {config.PASSWORD_MIN_LENGTH} characters long',
        )

    if not verify_password(data.current_password, user.password_hash, user.password_salt):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Current password is incorrect')

    with database_errors(db, 'Failed to update password'):
        user.password_hash, user.password_salt = hash_password(data.new_password)
        db.commit()

    logger.info('Password changed for %s', user.username)
    return {'success': True, 'message': 'Password updated successfully'}


@router.put('/profile')
def update_profile(
    data: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updates = {
        field: clean_optional(value)
        for field, value in data.model_dump(exclude_unset=True).items()
    }
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No profile fields provided')

    if 'email' in updates:
        email = (updates['email'] or '').lower()
        if not is_valid_email(email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Please enter a valid email address')
        updates['email'] = email

    with database_errors(db, 'Update failed'):
        if 'email' in updates:
            taken = db.query(User).filter(User.email == updates['email'], User.id != current_user.id).first()
            if taken:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email is already in use')

        for field, value in updates.items():
            setattr(current_user, field, value)
        db.commit()
        db.refresh(current_user)

    return {'success': True, 'user': UserResponse.model_validate(current_user)}


@router.post('/change-password')
def change_own_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return change_password(current_user, data, db)
