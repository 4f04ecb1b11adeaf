# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Bootstrap — explicit construction of the client components.

Nothing here is cached at module level: the caller owns the BackendClient
and passes it (and the TenantContext) to whatever needs them.

Usage:
    backend = create_backend()
    validator = create_validator(backend)
    status = await validator.validate("S22")
    gateway = create_gateway(backend, validator.context())
"""

from __future__ import annotations

import logging
from typing import Optional, TextIO

from schema_gate.core.config import GateSettings, settings as default_settings
from schema_gate.core.logging import setup_logging
from schema_gate.core.tenant import TenantContext
from schema_gate.gateway.schema_gateway import SchemaGateway
from schema_gate.gateway.uploads import ImageUploader
from schema_gate.runtime.backend import BackendClient
from schema_gate.runtime.redis_client import create_redis
from schema_gate.runtime.session_store import MemorySessionStore, RedisSessionStore, SessionStore
from schema_gate.tenancy.registry import TenantRegistry
from schema_gate.tenancy.validator import TenantValidator

logger = logging.getLogger("gate.bootstrap")


def configure_logging(settings: Optional[GateSettings] = None, stream: Optional[TextIO] = None) -> None:
    """Install JSON logging at LOG_LEVEL; call once at process start."""
    cfg = settings or default_settings
    setup_logging(cfg.LOG_LEVEL, stream=stream)
    logger.info("Logging configured for %s environment at %s", cfg.GATE_ENV, cfg.LOG_LEVEL.upper())


def create_session_store(settings: Optional[GateSettings] = None) -> SessionStore:
    """Session store selected by SESSION_STORE (redis | memory)."""
    cfg = settings or default_settings
    kind = cfg.SESSION_STORE.lower()
    if kind == "memory":
        return MemorySessionStore()
    if kind == "redis":
        return RedisSessionStore(create_redis(cfg.REDIS_URL), cfg.SESSION_KEY)
    raise ValueError(f"Unknown SESSION_STORE '{cfg.SESSION_STORE}' (expected redis or memory)")


def create_backend(
    settings: Optional[GateSettings] = None,
    session_store: Optional[SessionStore] = None,
) -> BackendClient:
    cfg = settings or default_settings
    if not cfg.SUPABASE_ANON_KEY:
        logger.warning("SUPABASE_ANON_KEY is empty; the backend will reject most calls")
    return BackendClient(
        cfg.SUPABASE_URL,
        cfg.SUPABASE_ANON_KEY,
        session_store=session_store or create_session_store(cfg),
        timeout=cfg.HTTP_TIMEOUT,
    )


def create_validator(
    backend: BackendClient,
    settings: Optional[GateSettings] = None,
) -> TenantValidator:
    cfg = settings or default_settings
    return TenantValidator(
        backend,
        registry=TenantRegistry(cfg.ALLOWED_SCHEMAS),
        debounce=cfg.VALIDATION_DEBOUNCE,
        rpc_name=cfg.VALIDATION_RPC,
    )


def create_gateway(
    backend: BackendClient,
    tenant: TenantContext,
    settings: Optional[GateSettings] = None,
) -> SchemaGateway:
    cfg = settings or default_settings
    return SchemaGateway(
        backend,
        tenant,
        uploader=ImageUploader(backend, bucket=cfg.PROFILE_IMAGE_BUCKET),
        table=cfg.PROFILES_TABLE,
    )
