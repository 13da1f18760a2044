"""Account registration, login, profile management and deactivation."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from healthrecord.auth import create_access_token, hash_password, verify_password
from healthrecord.db.models import User
from healthrecord.errors import ConflictError, NotFoundError, UnauthorizedError
from healthrecord.schemas import AuthResponse, MessageResponse, ProfileOut, ProfileUpdateResponse, UserOut
from healthrecord.time_utils import format_date, utc_now

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
ACCOUNT_DEACTIVATED = "This account has been deactivated"


def _find_by_email(session: Session, email: str) -> Optional[User]:
    """Return the account using ``email`` whether or not it is deactivated."""

    stmt = sa.select(User).where(sa.func.lower(User.email) == email.lower())
    return session.execute(stmt).scalars().first()


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        date_of_birth=format_date(user.date_of_birth),
        phone=user.phone,
        existing_conditions=user.existing_conditions,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _profile_out(user: User) -> ProfileOut:
    return ProfileOut(
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        date_of_birth=format_date(user.date_of_birth),
        phone=user.phone,
        existing_conditions=user.existing_conditions,
    )


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(user=_user_out(user), token=create_access_token(user.id, user.email))


def register(session: Session, fields: Mapping[str, Any]) -> AuthResponse:
    """Create an account and return it together with a fresh token.

    Email uniqueness is global: a deactivated account still holds its email.
    """

    data = dict(fields)
    email = data.pop("email")
    password = data.pop("password")
    if _find_by_email(session, email) is not None:
        raise ConflictError("User with this email already exists")

    user = User(email=email, password_hash=hash_password(password), **data)
    session.add(user)
    try:
        session.flush()
    except IntegrityError as exc:
        # a concurrent registration claimed the email first
        session.rollback()
        raise ConflictError("User with this email already exists") from exc
    session.refresh(user)
    logger.info("user_registered", user_id=user.id)
    return _auth_response(user)


def login(session: Session, email: str, password: str) -> AuthResponse:
    """Authenticate by email and password.

    Checks run in a fixed order: existence, then deactivation, then the
    password.  Unknown emails and wrong passwords share one message.
    """

    user = _find_by_email(session, email)
    if user is None:
        logger.info("login_failed", reason="unknown_email")
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if user.soft_deleted_at is not None:
        logger.info("login_failed", reason="deactivated", user_id=user.id)
        raise UnauthorizedError(ACCOUNT_DEACTIVATED)
    if not verify_password(password, user.password_hash):
        logger.info("login_failed", reason="bad_password", user_id=user.id)
        raise UnauthorizedError(INVALID_CREDENTIALS)
    logger.info("user_logged_in", user_id=user.id)
    return _auth_response(user)


def _load_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_active_user(session: Session, user_id: int) -> User:
    """Return the acting account, rejecting deactivated ones."""

    user = _load_user(session, user_id)
    if user.soft_deleted_at is not None:
        raise UnauthorizedError(ACCOUNT_DEACTIVATED)
    return user


def get_profile(session: Session, user_id: int) -> ProfileOut:
    return _profile_out(get_active_user(session, user_id))


def update_profile(session: Session, user_id: int, changes: Mapping[str, Any]) -> ProfileUpdateResponse:
    """Apply a partial profile update; an empty change set is accepted."""

    user = get_active_user(session, user_id)
    data: Dict[str, Any] = dict(changes)

    new_email = data.get("email")
    if new_email is not None and new_email.lower() != user.email.lower():
        other = _find_by_email(session, new_email)
        if other is not None and other.id != user.id:
            raise ConflictError("Email is already in use")

    for name in ("email", "first_name", "last_name", "date_of_birth"):
        if name in data and data[name] is None:
            data.pop(name)
    for name, value in data.items():
        setattr(user, name, value)
    session.flush()
    session.refresh(user)
    logger.info("profile_updated", user_id=user.id, fields=sorted(data))
    return ProfileUpdateResponse(
        success=True,
        message="Profile updated successfully",
        user=_profile_out(user),
    )


def deactivate_account(session: Session, user_id: int) -> MessageResponse:
    """Soft delete the account.

    Deactivating an account that is already deactivated is reported, not
    raised.  The stamp is written with a conditional ``UPDATE`` so concurrent
    calls deactivate the account exactly once.
    """

    _load_user(session, user_id)
    stmt = (
        sa.update(User)
        .where(User.id == user_id, User.soft_deleted_at.is_(None))
        .values(soft_deleted_at=utc_now())
        .execution_options(synchronize_session="fetch")
    )
    result = session.execute(stmt)
    if result.rowcount == 0:
        logger.info("account_deactivation_skipped", user_id=user_id)
        return MessageResponse(success=False, message="Account is already deactivated")
    logger.info("account_deactivated", user_id=user_id)
    return MessageResponse(success=True, message="Account deactivated successfully")
