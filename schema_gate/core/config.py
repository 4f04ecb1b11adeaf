# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
SchemaGate Configuration — Environment-driven settings.

All configuration is loaded from environment variables (or .env file).
Settings hold plain values only; clients are built by schema_gate.bootstrap.
"""

from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class GateSettings(BaseSettings):
    """Client-wide configuration loaded from environment."""

    # --- Backend ---
    SUPABASE_URL: str = Field(
        default="http://localhost:54321",
        description="Base URL of the Supabase-compatible backend",
    )
    SUPABASE_ANON_KEY: str = Field(
        default="",
        description="Publishable (anon) API key, respects row level security",
    )
    HTTP_TIMEOUT: float = Field(
        default=30.0,
        description="Timeout in seconds for every backend HTTP call",
    )

    # --- Tenancy ---
    ALLOWED_SCHEMAS: List[str] = Field(
        default=["s22", "big7"],
        description="Allow-list of tenant schema codes (JSON list in env)",
    )
    VALIDATION_DEBOUNCE: float = Field(
        default=0.6,
        description="Seconds the tenant code must be stable before confirming it",
    )
    VALIDATION_RPC: str = Field(
        default="validate_schema",
        description="Remote procedure used to confirm a tenant schema",
    )

    # --- Data ---
    PROFILES_TABLE: str = Field(default="profiles")
    PROFILE_IMAGE_BUCKET: str = Field(
        default="profile-images",
        description="Shared storage bucket for profile images (not tenant-scoped)",
    )

    # --- Session persistence ---
    SESSION_STORE: str = Field(
        default="redis",
        description="Session store backend: redis | memory",
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the persisted auth session",
    )
    SESSION_KEY: str = Field(
        default="schema_gate:auth:session",
        description="Key under which the auth session is persisted",
    )

    # --- Platform ---
    LOG_LEVEL: str = Field(default="INFO")
    GATE_ENV: str = Field(
        default="dev",
        description="Environment: dev | prod",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


# Global singleton
settings = GateSettings()
