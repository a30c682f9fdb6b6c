# backend/saasdb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from .models import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class DepartmentRead(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class UserRead(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool
    departments: List[DepartmentRead] = []
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
