# backend/saasdb/apps/accounts/services.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from saasdb import security

from . import models

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthenticationError(Exception):
    """Raised when login credentials are invalid or the account is disabled."""


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _normalise_email(email: str) -> str:
    return (email or "").strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# User fetch helpers
# ---------------------------------------------------------------------------


def get_active_user_by_email(db: Session, *, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(
            models.User.email == _normalise_email(email),
            models.User.is_active.is_(True),
        )
        .first()
    )


def get_or_create_department(db: Session, *, name: str) -> models.Department:
    name = name.strip()
    dept = db.query(models.Department).filter(models.Department.name == name).first()
    if dept is None:
        dept = models.Department(name=name)
        db.add(dept)
        db.flush()
    return dept


def create_user(
    db: Session,
    *,
    name: str,
    email: str,
    password: str,
    role: models.UserRole,
    department_names: Iterable[str] = (),
) -> models.User:
    user = models.User(
        name=name.strip(),
        email=_normalise_email(email),
        role=role,
        hashed_password=security.get_password_hash(password),
        is_active=True,
    )
    user.departments = [get_or_create_department(db, name=n) for n in department_names if n.strip()]
    db.add(user)
    db.flush()
    logger.info("User created", extra={"user_id": user.id, "role": role.value})
    return user


# ---------------------------------------------------------------------------
# Authentication and access tokens
# ---------------------------------------------------------------------------


def authenticate_user(db: Session, *, email: str, password: str) -> models.User:
    user = get_active_user_by_email(db, email=email)
    if user is None or not security.verify_password(password, user.hashed_password):
        logger.info("Login failed", extra={"email": _normalise_email(email)})
        raise AuthenticationError("Incorrect email or password.")

    # Upgrade legacy bcrypt hashes on successful login.
    if security.password_needs_rehash(user.hashed_password):
        user.hashed_password = security.get_password_hash(password)
    user.last_login_at = _utcnow()
    db.add(user)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    token = security.create_access_token(
        data={"sub": user.id, "role": user.role.value},
    )
    return token, security.ACCESS_TOKEN_EXPIRE_MINUTES * 60
