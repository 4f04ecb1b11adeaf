# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Schema-Scoped Gateway — profile CRUD, image upload and auth bound to one tenant.

Every data-path call goes through a ScopedTable bound to the gateway's
tenant schema, so two gateways built for different tenants never observe or
mutate each other's records, even over one shared BackendClient.

The gateway owns no long-lived data. Expected backend failures come back as
Result(None, error); unexpected exceptions are caught and normalized into
the same shape.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from schema_gate.core.config import settings
from schema_gate.core.errors import (
    BackendError,
    NotFoundError,
    Result,
    ValidationError,
    unexpected,
)
from schema_gate.core.logging import schema_logger
from schema_gate.core.tenant import TenantContext
from schema_gate.gateway.uploads import ImageUploader
from schema_gate.protocols.schema import ProfileCreate, ProfileUpdate, UserProfile
from schema_gate.runtime.auth import AuthDelegate
from schema_gate.runtime.backend import BackendClient, rows_of


def _guarded(fn: Callable[..., Awaitable[Result]]) -> Callable[..., Awaitable[Result]]:
    """Normalize anything raised by a gateway operation into Result(None, error)."""

    @functools.wraps(fn)
    async def wrapper(self: SchemaGateway, *args: Any, **kwargs: Any) -> Result:
        try:
            return await fn(self, *args, **kwargs)
        except PydanticValidationError as exc:
            self._log.error(
                "%s returned a malformed record: %s", fn.__name__, exc,
                extra={"operation": fn.__name__},
            )
            return Result.failure(BackendError(
                code="MALFORMED_RECORD",
                message=f"Backend returned a malformed profile: {exc.error_count()} error(s)",
            ))
        except Exception as exc:
            self._log.exception("Unexpected error in %s", fn.__name__, extra={"operation": fn.__name__})
            return Result.failure(unexpected(exc))

    return wrapper


class SchemaGateway:
    """
    Bound operation set for one confirmed tenant.

    Usage:
        gateway = SchemaGateway(backend, validator.context())
        users, error = await gateway.get_all_users()
    """

    def __init__(
        self,
        backend: BackendClient,
        tenant: TenantContext,
        uploader: Optional[ImageUploader] = None,
        table: Optional[str] = None,
    ) -> None:
        self._backend = backend
        self._tenant = tenant
        self._profiles = backend.table(table or settings.PROFILES_TABLE, schema=tenant.schema)
        self._uploader = uploader or ImageUploader(backend)
        self._log = schema_logger("gate.gateway", tenant.schema)

    @property
    def tenant(self) -> TenantContext:
        return self._tenant

    @property
    def schema(self) -> str:
        return self._tenant.schema

    @property
    def auth(self) -> AuthDelegate:
        """Identity-provider delegate; tenant-independent, shared with the backend."""
        return self._backend.auth

    # ── Lookups ─────────────────────────────────────────────────

    @_guarded
    async def check_user_exists(self, email: str) -> Result:
        """Profile with this email in the tenant, or Result(None, None) if absent."""
        return await self._find_one({"email": email.strip()})

    @_guarded
    async def get_user_profile(self, user_id: str) -> Result:
        """Profile for an identity-provider subject id, or Result(None, None)."""
        return await self._find_one({"user_id": user_id})

    @_guarded
    async def get_all_users(self) -> Result:
        """Every profile in the tenant, newest first. No pagination."""
        data, error = await self._profiles.select(order="created_at.desc")
        if error:
            return Result.failure(error)
        return Result.success([UserProfile.model_validate(row) for row in rows_of(data)])

    # ── Writes ──────────────────────────────────────────────────

    @_guarded
    async def create_user_profile(self, data: ProfileCreate) -> Result:
        """
        Insert the profile of a newly registered identity.

        user_id is mandatory here. A duplicate unique field comes back as
        ConflictError and is not retried.
        """
        if not data.user_id:
            return Result.failure(ValidationError("user_id is required for a registration profile"))
        return await self._insert(data)

    @_guarded
    async def create_user(self, data: ProfileCreate) -> Result:
        """Insert a profile from the administrative directory."""
        return await self._insert(data)

    @_guarded
    async def update_user(self, id: str, data: ProfileUpdate) -> Result:
        """Apply a partial update to the record with this namespace-local id."""
        rows, error = await self._profiles.update(data.to_row(), {"id": id})
        if error:
            return Result.failure(error)
        return self._single_written(rows, id)

    @_guarded
    async def delete_user(self, id: str) -> Result:
        """Delete the record with this namespace-local id. Data is the deleted profile, if returned."""
        rows, error = await self._profiles.delete({"id": id})
        if error:
            return Result.failure(error)
        deleted = rows_of(rows)
        self._log.info("Deleted profile %s", id)
        return Result.success(UserProfile.model_validate(deleted[0]) if deleted else None)

    # ── Images ──────────────────────────────────────────────────

    @_guarded
    async def upload_image(self, local_ref: str) -> Result:
        """Store a local image and return its public URL; remote URLs pass through."""
        return await self._uploader.upload(local_ref)

    # ── Helpers ─────────────────────────────────────────────────

    async def _find_one(self, filters: Dict[str, Any]) -> Result:
        data, error = await self._profiles.select(filters=filters, limit=1)
        if error:
            return Result.failure(error)
        rows = rows_of(data)
        if not rows:
            return Result.success(None)
        return Result.success(UserProfile.model_validate(rows[0]))

    async def _insert(self, data: ProfileCreate) -> Result:
        rows, error = await self._profiles.insert([data.to_row()])
        if error:
            self._log.info("Insert rejected: %s", error.code, extra={"operation": "insert"})
            return Result.failure(error)
        created: List[Dict[str, Any]] = rows_of(rows)
        if not created:
            return Result.failure(BackendError(code="EMPTY_RESPONSE", message="Insert returned no record"))
        return Result.success(UserProfile.model_validate(created[0]))

    def _single_written(self, rows: Any, id: str) -> Result:
        written = rows_of(rows)
        if not written:
            return Result.failure(NotFoundError(f"No profile with id '{id}' in schema '{self.schema}'"))
        return Result.success(UserProfile.model_validate(written[0]))

    def __repr__(self) -> str:
        return f"SchemaGateway(schema={self.schema!r})"
