from __future__ import annotations

from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# email-validator already rejects addresses longer than 254 characters.
Email = Annotated[EmailStr, BeforeValidator(_strip)]
Password = Annotated[str, Field(min_length=6, max_length=100)]


class Credentials(BaseModel):
    email: Email
    password: Password

    model_config = {
        "json_schema_extra": {
            "example": {"email": "ana@example.com", "password": "s3nha-segura"}
        },
    }


class SignUpRequest(Credentials):
    full_name: Annotated[str, BeforeValidator(_strip), Field(min_length=1, max_length=200)]


class RefreshRequest(BaseModel):
    refresh_token: str

    model_config = {
        "json_schema_extra": {
            "example": {"refresh_token": "<jwt>"}
        }
    }


class RecoverRequest(BaseModel):
    email: Email


class ResetRequest(BaseModel):
    token: str
    password: Password


# ---------- login screen forms ----------
# Same limits as the service, reported with the messages the login screen shows.

EMAIL_MAX = 255
PASSWORD_MIN = 6
PASSWORD_MAX = 100
NAME_MAX = 200


def _form_email(value) -> str:
    text = _strip(value) if isinstance(value, str) else ""
    if len(text) > EMAIL_MAX:
        raise ValueError("Email muito longo")
    try:
        validate_email(text, check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Email inválido") from None
    return text


def _form_password(value) -> str:
    text = value if isinstance(value, str) else ""
    if len(text) < PASSWORD_MIN:
        raise ValueError("Senha deve ter no mínimo 6 caracteres")
    if len(text) > PASSWORD_MAX:
        raise ValueError("Senha muito longa")
    return text


class PasswordResetForm(BaseModel):
    model_config = ConfigDict(validate_default=True)

    email: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value):
        return _form_email(value)


class SignInForm(PasswordResetForm):
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value):
        return _form_password(value)


class SignUpForm(SignInForm):
    full_name: str = ""

    @field_validator("full_name", mode="before")
    @classmethod
    def _full_name(cls, value):
        text = _strip(value) if isinstance(value, str) else ""
        if not text:
            raise ValueError("Nome é obrigatório")
        if len(text) > NAME_MAX:
            raise ValueError("Nome muito longo")
        return text


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str


class SessionOut(BaseModel):
    """What the provider hands back on sign-in; persisted by the client."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "<jwt>",
                "refresh_token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 900,
                "user": {"id": "<uuid>", "email": "ana@example.com", "full_name": "Ana"},
            }
        }
    }


class UserRoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: str
