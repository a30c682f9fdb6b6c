# backend/saasdb/apps/software/scope.py
"""
Role-scoped visibility of software records.

`scope_for(user)` maps a user to one of a closed set of scope variants. The
same variant filters list queries (`clause()`) and single-record checks
(`matches()`), so a record that is missing from a list is also a 404 when
fetched by id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from sqlalchemy import false, select, true
from sqlalchemy.sql.elements import ColumnElement

from saasdb.apps.accounts.models import User, UserRole

from . import models


class SoftwareScope(ABC):
    @abstractmethod
    def clause(self) -> ColumnElement[bool]:
        ...

    @abstractmethod
    def matches(self, software: models.Software) -> bool:
        ...


@dataclass(frozen=True)
class UnrestrictedScope(SoftwareScope):
    def clause(self) -> ColumnElement[bool]:
        return true()

    def matches(self, software: models.Software) -> bool:
        return True


@dataclass(frozen=True)
class OwnerScope(SoftwareScope):
    user_id: str

    def clause(self) -> ColumnElement[bool]:
        return models.Software.owner_id == self.user_id

    def matches(self, software: models.Software) -> bool:
        return software.owner_id == self.user_id


@dataclass(frozen=True)
class DepartmentScope(SoftwareScope):
    department_ids: FrozenSet[str] = field(default_factory=frozenset)

    def clause(self) -> ColumnElement[bool]:
        if not self.department_ids:
            return false()
        link = models.software_departments
        return models.Software.id.in_(
            select(link.c.software_id).where(
                link.c.department_id.in_(sorted(self.department_ids))
            )
        )

    def matches(self, software: models.Software) -> bool:
        return bool(self.department_ids & software.department_ids)


@dataclass(frozen=True)
class NoAccessScope(SoftwareScope):
    def clause(self) -> ColumnElement[bool]:
        return false()

    def matches(self, software: models.Software) -> bool:
        return False


def scope_for(user: Optional[User]) -> SoftwareScope:
    if user is None:
        return NoAccessScope()
    if user.role == UserRole.ADMINISTRATOR:
        return UnrestrictedScope()
    if user.role == UserRole.SOFTWARE_OWNER:
        return OwnerScope(user_id=user.id)
    if user.role == UserRole.DEPARTMENT_HEAD:
        return DepartmentScope(department_ids=frozenset(user.department_ids))
    return NoAccessScope()
