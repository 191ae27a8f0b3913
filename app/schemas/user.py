# app/schemas/user.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field

Role = Literal["citizen", "low_admin", "high_admin"]

class UserCreate(BaseModel):
    """Staff account created by a high admin."""
    email: EmailStr
    name: str = Field(min_length=2, max_length=120)
    password: str = Field(min_length=8, max_length=512)
    role: Literal["low_admin", "high_admin"] = "low_admin"
    phone: Optional[str] = Field(default=None, max_length=30)
    department: Optional[str] = Field(default=None, max_length=120)
    zones: List[str] = []

class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=30)
    # high admin only
    zones: Optional[List[str]] = None
    department: Optional[str] = Field(default=None, max_length=120)
    role: Optional[Role] = None
    is_active: Optional[bool] = None

class UserOut(BaseModel):
    id: int
    email: EmailStr
    name: str
    phone: Optional[str] = None
    role: Role
    department: Optional[str] = None
    zones: List[str] = []
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

class PaginatedUsersOut(BaseModel):
    items: list[UserOut]
    total: int
    page: int
    limit: int
