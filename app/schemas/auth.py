# File: app/schemas/auth.py

from pydantic import BaseModel, EmailStr, Field

class RegisterIn(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: EmailStr
    password: str = Field(min_length=8, max_length=512)
    phone: str | None = Field(default=None, max_length=30)

class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=512)

class RefreshIn(BaseModel):
    refresh_token: str

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int

class ProfileIn(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    phone: str | None = Field(default=None, max_length=30)
