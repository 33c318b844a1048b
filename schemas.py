"""
schemas.py – Record and form-input validation.

The stored administrator record and every form the UI layer submits are
pydantic models.  Field names are snake_case in Python and camelCase on the
wire (admin.json and UI payloads), so every model validates by alias or by
field name and dumps by alias.

parse_input() is the single entry point the services use: it validates a
payload and converts a pydantic error into errors.ValidationError with a
field -> message map ready for form rendering.
"""

import re
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from config import MIN_PASSWORD_LENGTH, PASSWORD_SPECIALS, PIN_LENGTH
from errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
_PIN_RE = re.compile(r"[0-9]{%d}" % PIN_LENGTH)


# ---------------------------------------------------------------------------
# Shared rules
# ---------------------------------------------------------------------------

def _require(value: str, message: str) -> str:
    if not value or not value.strip():
        raise ValueError(message)
    return value


def _check_email(value: str) -> str:
    if not value or not _EMAIL_RE.fullmatch(value):
        raise ValueError("Invalid email address.")
    return value


def password_problem(value: str) -> Optional[str]:
    """Return the first strength rule *value* breaks, or None."""
    if len(value) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    if not re.search(r"[A-Z]", value):
        return "Password must contain at least one uppercase letter."
    if not re.search(r"[0-9]", value):
        return "Password must contain at least one number."
    if not any(ch in PASSWORD_SPECIALS for ch in value):
        return "Password must contain at least one special character (e.g., !@#$%)."
    return None


def _check_password_strength(value: str) -> str:
    problem = password_problem(value)
    if problem:
        raise ValueError(problem)
    return value


def _check_pin(value: str) -> str:
    if len(value) != PIN_LENGTH:
        raise ValueError(f"PIN must be exactly {PIN_LENGTH} digits.")
    if not _PIN_RE.fullmatch(value):
        raise ValueError(f"PIN must be {PIN_LENGTH} digits.")
    return value


def field_errors(exc: pydantic.ValidationError) -> Dict[str, str]:
    """Flatten *exc* into {field: first message}."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "form"
        message = err["msg"]
        if err["type"] == "value_error":
            message = str(err["ctx"]["error"])
        errors.setdefault(field, message)
    return errors


def parse_input(model: Type[ModelT], data: Union[Mapping[str, Any], BaseModel]) -> ModelT:
    """Validate *data* against *model*, raising errors.ValidationError."""
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError("Invalid input. Please check the form details.", field_errors(exc)) from exc


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Stored record and public profile
# ---------------------------------------------------------------------------

class AdminProfile(_Model):
    """Public-safe view of the administrator: never carries secrets."""

    admin_name: str = Field(alias="adminName")
    admin_id: str = Field(alias="adminId")
    email: str
    is_2fa_enabled: bool = Field(default=False, alias="is2FAEnabled")


class AdminRecord(_Model):
    """
    The administrator as persisted in admin.json.

    ``password`` and ``pin`` hold encoded hashes (see crypto.SecretHasher).
    ``pin`` is also read from the older ``hashedPin`` key.
    """

    admin_name: str = Field(alias="adminName")
    admin_id: str = Field(alias="adminId")
    email: str
    password: str
    is_2fa_enabled: bool = Field(default=False, alias="is2FAEnabled")
    pin: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pin", "hashedPin"),
        serialization_alias="pin",
    )

    @field_validator("admin_name", "admin_id", "password")
    @classmethod
    def _not_blank(cls, value: str, info: ValidationInfo) -> str:
        return _require(value, f"{info.field_name} must not be empty.")

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @model_validator(mode="after")
    def _pin_matches_flag(self) -> "AdminRecord":
        if self.is_2fa_enabled and not self.pin:
            raise ValueError("is2FAEnabled is set but no PIN is stored.")
        if not self.is_2fa_enabled and self.pin is not None:
            raise ValueError("A PIN is stored while 2FA is disabled.")
        return self

    def to_profile(self) -> AdminProfile:
        return AdminProfile(
            admin_name=self.admin_name,
            admin_id=self.admin_id,
            email=self.email,
            is_2fa_enabled=self.is_2fa_enabled,
        )


# ---------------------------------------------------------------------------
# Account forms
# ---------------------------------------------------------------------------

class CreateAdminInput(_Model):
    admin_name: str = Field(alias="adminName")
    admin_id: str = Field(alias="adminId")
    email: str
    password: str
    confirm_password: str = Field(alias="confirmPassword")

    @field_validator("admin_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _require(value, "Admin name is required.")

    @field_validator("admin_id")
    @classmethod
    def _id(cls, value: str) -> str:
        return _require(value, "Admin ID is required.")

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def _strength(cls, value: str) -> str:
        return _check_password_strength(value)

    @field_validator("confirm_password")
    @classmethod
    def _matches(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("Passwords don't match.")
        return value


class LoginInput(_Model):
    admin_name: str = Field(alias="adminName")
    admin_id: str = Field(alias="adminId")
    email: str
    password: str

    @field_validator("admin_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _require(value, "Admin name is required.")

    @field_validator("admin_id")
    @classmethod
    def _id(cls, value: str) -> str:
        return _require(value, "Admin ID is required.")

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required.")
        return value


class UpdateProfileInput(_Model):
    """
    Profile form.  ``admin_id`` is accepted for form symmetry but is never
    applied: the stored id is immutable.
    """

    admin_name: str = Field(alias="adminName")
    admin_id: str = Field(alias="adminId")
    email: str
    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    confirm_new_password: Optional[str] = Field(default=None, alias="confirmNewPassword")

    @field_validator("current_password", "new_password", "confirm_new_password", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and value == "":
            return None
        return value

    @field_validator("admin_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _require(value, "Admin name is required.")

    @field_validator("admin_id")
    @classmethod
    def _id(cls, value: str) -> str:
        return _require(value, "Admin ID is required.")

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check_email(value)

    @property
    def wants_password_change(self) -> bool:
        return bool(self.new_password or self.confirm_new_password)

    def password_change_errors(self) -> Dict[str, str]:
        """Per-field problems with the password-change fields, if any."""
        errors: Dict[str, str] = {}
        if not self.wants_password_change:
            return errors
        if not self.current_password:
            errors["currentPassword"] = "Current password is required to change your password."
        if not self.new_password:
            errors["newPassword"] = "New password is required."
        else:
            problem = password_problem(self.new_password)
            if problem:
                errors["newPassword"] = problem
        if not self.confirm_new_password:
            errors["confirmNewPassword"] = "Please confirm your new password."
        elif self.new_password and self.new_password != self.confirm_new_password:
            errors["confirmNewPassword"] = "New passwords do not match."
        return errors


# ---------------------------------------------------------------------------
# Two-factor forms
# ---------------------------------------------------------------------------

class Enable2FAInput(_Model):
    new_pin: str = Field(alias="newPin")
    confirm_new_pin: str = Field(alias="confirmNewPin")

    @field_validator("new_pin")
    @classmethod
    def _pin(cls, value: str) -> str:
        return _check_pin(value)

    @field_validator("confirm_new_pin")
    @classmethod
    def _confirm(cls, value: str, info: ValidationInfo) -> str:
        _check_pin(value)
        new_pin = info.data.get("new_pin")
        if new_pin is not None and value != new_pin:
            raise ValueError("PINs don't match.")
        return value


class ChangePinInput(_Model):
    current_pin: str = Field(alias="currentPin")
    new_pin: str = Field(alias="newPin")
    confirm_new_pin: str = Field(alias="confirmNewPin")

    @field_validator("current_pin")
    @classmethod
    def _current(cls, value: str) -> str:
        return _require(value, "Current PIN is required.")

    @field_validator("new_pin")
    @classmethod
    def _pin(cls, value: str) -> str:
        return _check_pin(value)

    @field_validator("confirm_new_pin")
    @classmethod
    def _confirm(cls, value: str, info: ValidationInfo) -> str:
        _check_pin(value)
        new_pin = info.data.get("new_pin")
        if new_pin is not None and value != new_pin:
            raise ValueError("New PINs don't match.")
        return value


class Disable2FAInput(_Model):
    current_pin_or_password: str = Field(alias="currentPinOrPassword")

    @field_validator("current_pin_or_password")
    @classmethod
    def _present(cls, value: str) -> str:
        return _require(value, "Current PIN or password is required to disable 2FA.")


class VerifyPinInput(_Model):
    pin: str

    @field_validator("pin")
    @classmethod
    def _pin(cls, value: str) -> str:
        return _check_pin(value)


class SuperActionInput(_Model):
    code: str

    @field_validator("code")
    @classmethod
    def _present(cls, value: str) -> str:
        return _require(value, "Super Action code is required.")
