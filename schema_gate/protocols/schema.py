# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
SchemaGate Protocol Schema — Records exchanged with the backend.

Design decisions:
  - Create and update payloads are separate models, so the fields that
    may be omitted on each are named explicitly.
  - Credentials are never part of a persisted model.
  - Unknown backend columns are ignored, not rejected.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Tenant validation ───────────────────────────────────────────


class ValidationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


class TenantValidationStatus(BaseModel):
    """Current verdict of the tenant validator for one input."""

    state: ValidationState = ValidationState.IDLE
    message: str = ""
    code: Optional[str] = Field(
        default=None,
        description="Normalized tenant code this status was produced for",
    )
    offline: bool = Field(
        default=False,
        description="True when the verdict was reached without the backend",
    )

    model_config = {"frozen": True}

    @property
    def is_valid(self) -> bool:
        return self.state is ValidationState.VALID

    @classmethod
    def idle(cls) -> TenantValidationStatus:
        return cls()

    @classmethod
    def validating(cls, code: str) -> TenantValidationStatus:
        return cls(state=ValidationState.VALIDATING, code=code, message=f"Checking schema '{code}'...")

    @classmethod
    def valid(cls, code: str, message: str = "", offline: bool = False) -> TenantValidationStatus:
        if not message:
            message = f"Schema '{code}' is valid" + (" (offline mode)" if offline else "")
        return cls(state=ValidationState.VALID, code=code, message=message, offline=offline)

    @classmethod
    def invalid(cls, code: str, message: str) -> TenantValidationStatus:
        return cls(state=ValidationState.INVALID, code=code, message=message)


# ── Profiles ────────────────────────────────────────────────────


class UserProfile(BaseModel):
    """A profile record inside one tenant schema."""

    id: str = Field(..., description="Namespace-local record identifier")
    user_id: Optional[str] = Field(
        default=None,
        description="Identity-provider subject id (1:1 with an auth user)",
    )
    user_name: str
    email: str
    role: str = "User"
    user_code: Optional[str] = None
    profile_image: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Backends return integer or UUID ids; keep them as strings."""
        if v is None:
            return v
        return str(v)


class ProfileCreate(BaseModel):
    """Insert payload. Only user_name and email are mandatory."""

    user_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: str = "User"
    user_id: Optional[str] = None
    user_code: Optional[str] = None
    profile_image: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Serialize for insert, stamping timestamps that were not given."""
        now = utc_now()
        row = self.model_dump(mode="json", exclude_none=True, exclude={"created_at", "updated_at"})
        row["created_at"] = (self.created_at or now).isoformat()
        row["updated_at"] = (self.updated_at or now).isoformat()
        return row


class ProfileUpdate(BaseModel):
    """Partial update payload. Every field may be omitted."""

    user_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    role: Optional[str] = None
    user_code: Optional[str] = None
    profile_image: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Serialize only the fields explicitly set, plus updated_at."""
        row = self.model_dump(mode="json", exclude_unset=True)
        row["updated_at"] = utc_now().isoformat()
        return row


# ── Auth ────────────────────────────────────────────────────────


class Credentials(BaseModel):
    """Transient sign-in / sign-up input. Never persisted."""

    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"

    __str__ = __repr__


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[str] = None

    model_config = {"extra": "ignore"}


class AuthSession(BaseModel):
    """Identity-provider token material, persisted across restarts."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[float] = None
    user: Optional[AuthUser] = None

    model_config = {"extra": "ignore"}

    @property
    def expired(self) -> bool:
        # 10s leeway so a token does not expire mid-request
        return self.expires_at is not None and self.expires_at - 10 <= time.time()

    @classmethod
    def from_token_response(cls, data: Dict[str, Any]) -> AuthSession:
        """Build from a GoTrue token payload (expires_in relative, or expires_at absolute)."""
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type", "bearer"),
            expires_at=expires_at,
            user=data.get("user"),
        )

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> AuthSession:
        return cls.model_validate_json(data)


# ── Storage ─────────────────────────────────────────────────────


class UploadResult(BaseModel):
    public_url: str
    path: Optional[str] = Field(
        default=None,
        description="Object name inside the bucket; None for pass-through URLs",
    )
