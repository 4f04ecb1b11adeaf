# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Form rules for registration, login and the user directory.

Each check raises ValidationError with a message fit for display.
"""

from __future__ import annotations

import re

from schema_gate.core.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


def _required(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


def validate_email(email: str) -> str:
    email = _required(email, "Email")
    if not EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address")
    return email


def validate_password(password: str) -> str:
    _required(password, "Password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    return password


def validate_registration(
    user_name: str,
    user_code: str,
    email: str,
    password: str,
    confirm_password: str,
) -> None:
    """Checks run in display order; the first failure wins."""
    _required(user_name, "Username")
    _required(user_code, "User code")
    validate_email(email)
    validate_password(password)
    if password != confirm_password:
        raise ValidationError("Passwords do not match")


def validate_login(email: str, password: str) -> None:
    _required(email, "Email")
    _required(password, "Password")


def validate_directory_entry(user_name: str, email: str) -> None:
    if not (user_name or "").strip() or not (email or "").strip():
        raise ValidationError("Name and email are required")
