"""Form schemas for create/edit dialogs.

HTML forms post strings; blank strings count as "not provided" for
optional fields. ``validate_form`` turns pydantic errors into a
``{field: message}`` dict the templates display next to each input.
"""
from __future__ import annotations
from typing import Any, List, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .validators import (
    SNAKE_CASE_PATTERN,
    validate_email,
    validate_entity_name,
    validate_identifier,
    validate_name,
    validate_password,
    validate_phone,
    validate_url,
)

FormModel = TypeVar("FormModel", bound=BaseModel)


class _Form(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any):
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data


# ─────────────────────────────────────────────────────────────────────────────
# Guardian
# ─────────────────────────────────────────────────────────────────────────────
class RoleForm(_Form):
    name: str
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str):
        return validate_entity_name(v)


class PolicyForm(RoleForm):
    pass


class PermissionForm(_Form):
    service: str
    resource_name: str
    operation: Literal["READ", "CREATE", "UPDATE", "DELETE", "LIST"]
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("service", "resource_name")
    @classmethod
    def _snake_case(cls, v: str):
        if not SNAKE_CASE_PATTERN.match(v):
            raise ValueError("Only lowercase letters and underscores are allowed")
        return v

    @field_validator("operation", mode="before")
    @classmethod
    def _upper(cls, v: Any):
        return v.upper() if isinstance(v, str) else v


def _identifier_list(values: Any, field: str) -> List[str]:
    if values is None:
        return []
    if isinstance(values, (str, int)):
        values = [values]
    return [validate_identifier(v, field) for v in values if v not in (None, "")]


class UserRoleAssignmentForm(_Form):
    user_id: str
    role_id: str

    @field_validator("user_id", "role_id", mode="before")
    @classmethod
    def _identifier(cls, v: Any, info):
        return validate_identifier(v, info.field_name)


class PolicyPermissionAssignmentForm(_Form):
    policy_id: str
    permission_ids: List[str]

    @field_validator("policy_id", mode="before")
    @classmethod
    def _policy(cls, v: Any):
        return validate_identifier(v, "policy_id")

    @field_validator("permission_ids", mode="before")
    @classmethod
    def _permissions(cls, v: Any):
        ids = _identifier_list(v, "permission_id")
        if not ids:
            raise ValueError("Select at least one permission")
        return ids


# ─────────────────────────────────────────────────────────────────────────────
# Identity
# ─────────────────────────────────────────────────────────────────────────────
class _UserFields(_Form):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    avatar_url: Optional[str] = None
    position_id: Optional[str] = None
    role_ids: List[str] = Field(default_factory=list)
    # false when the edit form could not read the current roles
    roles_loaded: bool = True

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, v: Optional[str]):
        return validate_name(v, "First name", max_length=50) if v else v

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, v: Optional[str]):
        return validate_name(v, "Last name", max_length=50) if v else v

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]):
        if v and len(v) > 50:
            raise ValueError("Phone must not exceed 50 characters")
        return v

    @field_validator("avatar_url")
    @classmethod
    def _avatar(cls, v: Optional[str]):
        return validate_url(v, "Avatar URL", max_length=255) if v else v

    @field_validator("position_id", mode="before")
    @classmethod
    def _position(cls, v: Any):
        return validate_identifier(v, "position_id") if v not in (None, "") else None

    @field_validator("role_ids", mode="before")
    @classmethod
    def _roles(cls, v: Any):
        return _identifier_list(v, "role_id")

    @field_validator("roles_loaded", mode="before")
    @classmethod
    def _roles_loaded(cls, v: Any):
        return True if v is None else v


class UserCreateForm(_UserFields):
    email: str
    password: str
    language: Literal["en", "fr"] = "fr"
    is_active: bool = True
    is_verified: bool = False

    @field_validator("email")
    @classmethod
    def _email(cls, v: str):
        return validate_email(v, max_length=100)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str):
        return validate_password(v)

    @field_validator("language", mode="before")
    @classmethod
    def _language_default(cls, v: Any):
        return "fr" if v is None else v


class UserUpdateForm(_UserFields):
    email: Optional[str] = None
    language: Optional[Literal["en", "fr"]] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]):
        return validate_email(v, max_length=100) if v else v


class CustomerForm(_Form):
    name: str = Field(min_length=2, max_length=200)
    email: Optional[str] = None
    contact_person: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)
    company_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]):
        return validate_email(v) if v else v

    @field_validator("phone_number")
    @classmethod
    def _phone(cls, v: Optional[str]):
        return validate_phone(v) if v else v

    @field_validator("company_id", mode="before")
    @classmethod
    def _company(cls, v: Any):
        return validate_identifier(v, "company_id") if v not in (None, "") else None


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
def _error_message(error: dict) -> str:
    if error["type"] == "missing" or (error["type"] == "string_type" and error.get("input") is None):
        return "This field is required"
    message = error["msg"]
    # "Value error, Password must ..." → "Password must ..."
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return message


def validate_form(schema: Type[FormModel], data: dict) -> Tuple[Optional[FormModel], dict[str, str]]:
    """Validate ``data`` against ``schema``.

    Returns:
        ``(model, {})`` on success, ``(None, {field: first message})`` otherwise
    """
    try:
        return schema.model_validate(data), {}
    except ValidationError as exc:
        errors: dict[str, str] = {}
        for error in exc.errors():
            field = str(error["loc"][0]) if error["loc"] else "__all__"
            errors.setdefault(field, _error_message(error))
        return None, errors


def payload(model: BaseModel, exclude: Tuple[str, ...] = ()) -> dict:
    """Request body for the backend: unset and empty optional values dropped."""
    data = model.model_dump(exclude_none=True, exclude=set(exclude))
    return {k: v for k, v in data.items() if v != "" and v != []}
