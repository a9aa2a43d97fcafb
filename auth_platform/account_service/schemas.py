import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

# At least one letter and one digit, letters and digits only
PASSWORD_RE = re.compile(r"^(?=.*[0-9])(?=.*[a-zA-Z])([a-zA-Z0-9]+)$")
PHONE_RE = re.compile(r"^\d{10,11}$")
DIGITS_RE = re.compile(r"^\d+$")


def _check_password(value: Optional[str]) -> Optional[str]:
    if value is not None and not PASSWORD_RE.match(value):
        raise ValueError("password must contain letters and digits only, with at least one of each")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AddressIn(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    uf: Optional[str] = None
    state: Optional[str] = None
    neighborhood: Optional[str] = None
    country: Optional[str] = None
    number: Optional[str] = None

    @field_validator("number")
    @classmethod
    def number_is_numeric(cls, value):
        if value is not None and not DIGITS_RE.match(value):
            raise ValueError("number must contain digits only")
        return value


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: str = Field(min_length=1)
    phone: str
    address: Optional[AddressIn] = None

    @field_validator("password")
    @classmethod
    def password_is_alphanumeric(cls, value):
        return _check_password(value)

    @field_validator("phone")
    @classmethod
    def phone_has_10_or_11_digits(cls, value):
        if not PHONE_RE.match(value):
            raise ValueError("phone must have 10 or 11 digits")
        return value


class UpdateUserRequest(CamelModel):
    name: str = Field(min_length=5)
    current_password: Optional[str] = None
    new_password: Optional[str] = None

    @field_validator("current_password", "new_password", mode="before")
    @classmethod
    def blank_means_absent(cls, value):
        return value or None

    @field_validator("new_password")
    @classmethod
    def new_password_is_alphanumeric(cls, value):
        return _check_password(value)


# Password reset
class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str = Field(min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def password_is_alphanumeric(cls, value):
        return _check_password(value)


class UserOut(CamelModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    text_to_speech: bool = False


class AuthResponse(BaseModel):
    user: UserOut
    token: str


class UserResponse(BaseModel):
    user: UserOut
