from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional

# bcrypt ne hache que les 72 premiers octets
PASSWORD_MAX_BYTES = 72


def _normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


def _check_password_bytes(value):
    if len(value.encode('utf-8')) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Le mot de passe ne doit pas dépasser {PASSWORD_MAX_BYTES} octets")
    return value


class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return _check_password_bytes(value)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class PasswordUpdate(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6, max_length=72)

    @field_validator("newPassword")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return _check_password_bytes(value)


class User(BaseModel):
    id: int
    name: str
    email: str
    role: str
    created_at: datetime

    class Config:
        from_attributes = True


class TokenUser(BaseModel):
    id: int
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True
