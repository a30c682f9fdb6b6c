# backend/saasdb/security.py

"""
Authentication for the SaaS manager API.

Passwords are stored as Argon2id hashes. Users migrated from the spreadsheet
era still carry bcrypt hashes; those verify once and are upgraded on login
(see accounts.services.authenticate_user).

Every request carries a bearer JWT whose `sub` is the user id. Routers use
`get_current_active_user` and the `require_roles(...)` factory; the roles map
onto the software visibility scopes in apps/software/scope.py.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet, Optional, Union

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from saasdb.apps.accounts import models as account_models
from saasdb.apps.accounts.models import UserRole

SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


ACCESS_TOKEN_EXPIRE_MINUTES = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 480)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

_argon2 = PasswordHasher(
    time_cost=_int_env("ARGON2_TIME_COST", 3),
    memory_cost=_int_env("ARGON2_MEMORY_COST", 65536),
    parallelism=_int_env("ARGON2_PARALLELISM", 2),
)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def get_password_hash(password: str) -> str:
    return _argon2.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False

    if hashed_password.startswith("$argon2"):
        try:
            return _argon2.verify(hashed_password, plain_password)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False

    if hashed_password.startswith(_BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            return False

    return False


def password_needs_rehash(hashed_password: str) -> bool:
    """True for bcrypt hashes and Argon2 hashes made with older parameters."""
    if not hashed_password.startswith("$argon2"):
        return True
    return _argon2.check_needs_rehash(hashed_password)


# ---------------------------------------------------------------------------
# Tokens and the current user
# ---------------------------------------------------------------------------


def create_access_token(*, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = dict(data, exp=datetime.now(timezone.utc) + lifetime)
    return jwt.encode(claims, SECRET_KEY, algorithm=JWT_ALGORITHM)


def get_user_by_id(db: Session, user_id: Optional[str]) -> Optional[account_models.User]:
    if not user_id:
        return None
    return db.get(account_models.User, str(user_id).strip())


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.User:
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized()

    user = get_user_by_id(db, claims.get("sub"))
    if user is None:
        raise _unauthorized()
    return user


def get_current_active_user(
    current_user: account_models.User = Depends(get_current_user),
) -> account_models.User:
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user account",
        )
    return current_user


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


def _as_role(value: Union[UserRole, str]) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except ValueError:
        raise ValueError(f"Unknown role {value!r} passed to require_roles()")


def require_roles(
    *allowed_roles: Union[UserRole, str],
) -> Callable[[account_models.User], account_models.User]:
    """
    Build a dependency that lets only the given roles through (403 otherwise).

    Roles may be given as members or by value, e.g. "Software Owner".
    """
    allowed: FrozenSet[UserRole] = frozenset(_as_role(r) for r in allowed_roles)

    def dependency(
        current_user: account_models.User = Depends(get_current_active_user),
    ) -> account_models.User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current_user

    return dependency


require_admin = require_roles(UserRole.ADMINISTRATOR)
