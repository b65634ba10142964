"""Input validation helpers for form data."""
from __future__ import annotations
import re
import uuid
from typing import Any
from urllib.parse import urlparse

ENTITY_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\s]+$")
SNAKE_CASE_PATTERN = re.compile(r"^[a-z_]+$")
PHONE_PATTERN = re.compile(r"^[\d\s+()-]*$")


def validate_email(email: str, max_length: int = 254) -> str:
    """Validate email address.

    Args:
        email: Email address to validate
        max_length: Maximum accepted length

    Returns:
        Normalized email address

    Raises:
        ValueError: If email is invalid
    """
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain or " " in email:
        raise ValueError("Invalid email format")
    if len(email) > max_length:
        raise ValueError(f"Email must not exceed {max_length} characters")

    return email


def validate_name(name: str, field: str, max_length: int = 128) -> str:
    """Validate first/last name fields.

    Args:
        name: Name to validate
        field: Field name for error messages (e.g., "First name")
        max_length: Maximum accepted length

    Returns:
        Trimmed name

    Raises:
        ValueError: If name is invalid
    """
    name = name.strip()
    if len(name) > max_length:
        raise ValueError(f"{field} must not exceed {max_length} characters")

    # Prevent injection attacks
    if any(char in name for char in "<>\"'`;&|$"):
        raise ValueError(f"{field} contains invalid characters")

    return name


def validate_entity_name(name: str, field: str = "Name", min_length: int = 3, max_length: int = 100) -> str:
    """Role/policy names: letters, digits, ``-``, ``_`` and spaces."""
    name = name.strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) < min_length:
        raise ValueError(f"{field} must be at least {min_length} characters")
    if len(name) > max_length:
        raise ValueError(f"{field} must not exceed {max_length} characters")
    if not ENTITY_NAME_PATTERN.match(name):
        raise ValueError(f"{field} can only contain letters, numbers, hyphens, underscores and spaces")
    return name


def validate_password(password: str, min_length: int = 8) -> str:
    """Require length plus at least one uppercase, one lowercase and one digit."""
    if len(password) < min_length:
        raise ValueError(f"Password must be at least {min_length} characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise ValueError("Password must contain at least one digit")
    return password


def validate_url(url: str, field: str = "URL", max_length: int = 255) -> str:
    url = url.strip()
    if len(url) > max_length:
        raise ValueError(f"{field} must not exceed {max_length} characters")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field} must be a valid URL")
    return url


def validate_phone(phone: str, max_length: int = 50) -> str:
    phone = phone.strip()
    if len(phone) > max_length:
        raise ValueError(f"Phone must not exceed {max_length} characters")
    if not PHONE_PATTERN.match(phone):
        raise ValueError("Phone can only contain digits, spaces, +, ( ) and -")
    return phone


def validate_identifier(value: Any, field: str = "id") -> str:
    """Accept a UUID or a positive integer id, returned as a string."""
    text = str(value).strip()
    if text.isdigit() and int(text) > 0:
        return text
    try:
        uuid.UUID(text)
    except ValueError:
        raise ValueError(f"{field} must be a UUID or a positive integer") from None
    return text
