# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Auth Delegate — Identity-provider operations (GoTrue API).

Identity sessions are tenant-independent: one delegate belongs to one
BackendClient and is shared by every schema-scoped gateway built on it.
A user signed in once can open any tenant; which tenant records they may
touch is decided by the backend's row level security.

The session is persisted through a SessionStore on sign-in, sign-up (when
the provider returns a session) and refresh, and cleared on sign-out.
Refresh tokens are single use, so at most one refresh is in flight per
delegate; concurrent callers wait for it and reuse its session.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from schema_gate.core.errors import AuthError, Result, unexpected
from schema_gate.protocols.schema import AuthSession, AuthUser, Credentials
from schema_gate.runtime.session_store import SessionStore

if TYPE_CHECKING:
    from schema_gate.runtime.backend import BackendClient

logger = logging.getLogger("gate.auth")


def _guarded(fn: Callable[..., Awaitable[Result]]) -> Callable[..., Awaitable[Result]]:
    """Turn an unexpected provider payload or local failure into Result(None, error)."""

    @functools.wraps(fn)
    async def wrapper(self: AuthDelegate, *args: Any, **kwargs: Any) -> Result:
        try:
            return await fn(self, *args, **kwargs)
        except Exception as exc:
            logger.exception("Unexpected error in %s", fn.__name__, extra={"operation": f"auth:{fn.__name__}"})
            return Result.failure(unexpected(exc))

    return wrapper


class AuthDelegate:
    """
    Sign-in / sign-up / sign-out / current-user for the identity provider.

    Only one sign-in or sign-out sequence may be in flight at a time; callers
    serialize by disabling re-entrant triggers (see services.account).
    """

    def __init__(self, backend: BackendClient, store: SessionStore) -> None:
        self._backend = backend
        self._store = store
        self._session: Optional[AuthSession] = None
        self._restored = False
        self._restore_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()

    # ── Session state ─────────────────────────────────────────

    async def _restore(self) -> None:
        """Load the persisted session once, on first use."""
        if self._restored:
            return
        async with self._restore_lock:
            if self._restored:
                return
            try:
                blob = await self._store.load()
            except Exception as exc:
                logger.warning("Could not read persisted session, starting signed out: %s", exc)
                blob = None
            # A sign-in may have persisted a newer session during the load
            if self._restored:
                return
            self._restored = True
            if not blob:
                return
            try:
                self._session = AuthSession.from_json(blob)
                logger.info("Restored persisted auth session")
            except PydanticValidationError:
                logger.warning("Discarding unreadable persisted session")
                await self._store.clear()

    async def _persist(self, session: Optional[AuthSession]) -> None:
        self._session = session
        self._restored = True
        try:
            if session is None:
                await self._store.clear()
            else:
                await self._store.save(session.to_json())
        except Exception as exc:
            # The in-memory session stays valid for this process
            logger.error("Could not persist auth session: %s", exc)

    async def access_token(self) -> Optional[str]:
        """Token for data-path requests; None when signed out."""
        result = await self.get_session()
        return result.data.access_token if result.data else None

    @_guarded
    async def get_session(self) -> Result:
        """Current session, refreshed first if it has expired."""
        await self._restore()
        session = self._session
        if session is None or not session.expired or not session.refresh_token:
            return Result.success(session)
        async with self._refresh_lock:
            if self._session is not session:
                # Refreshed (or signed out) while this caller waited
                return Result.success(self._session)
            return await self._refresh(session)

    # ── Operations ────────────────────────────────────────────

    @_guarded
    async def sign_in_with_password(self, credentials: Credentials) -> Result:
        """Exchange email/password for a session. Data is the AuthSession."""
        data, error = await self._backend.request(
            "POST",
            "/auth/v1/token",
            operation="auth:sign_in",
            params={"grant_type": "password"},
            json={"email": credentials.email, "password": credentials.password},
            headers=self._anon_headers(),
        )
        if error:
            return Result.failure(_as_auth_error(error))
        session = AuthSession.from_token_response(data)
        await self._persist(session)
        logger.info("Signed in user %s", session.user.id if session.user else "?")
        return Result.success(session)

    @_guarded
    async def sign_up(self, credentials: Credentials) -> Result:
        """
        Register a new identity. Data is the AuthUser.

        When the provider auto-confirms, it also returns a session, which is
        persisted; otherwise the user must confirm by email first.
        """
        data, error = await self._backend.request(
            "POST",
            "/auth/v1/signup",
            operation="auth:sign_up",
            json={"email": credentials.email, "password": credentials.password},
            headers=self._anon_headers(),
        )
        if error:
            return Result.failure(_as_auth_error(error))
        if data and data.get("access_token"):
            session = AuthSession.from_token_response(data)
            await self._persist(session)
            return Result.success(session.user)
        user_payload = data.get("user", data) if data else None
        if not user_payload or not user_payload.get("id"):
            return Result.failure(AuthError("Sign-up returned no user", code="no_user"))
        return Result.success(AuthUser.model_validate(user_payload))

    @_guarded
    async def sign_out(self) -> Result:
        """Revoke the session remotely and always forget it locally."""
        await self._restore()
        session = self._session
        if session is None:
            return Result.success(None)
        try:
            _, error = await self._backend.request(
                "POST",
                "/auth/v1/logout",
                operation="auth:sign_out",
                headers={"Authorization": f"Bearer {session.access_token}"},
            )
        finally:
            await self._persist(None)
        # An already-invalid token is as good as signed out
        if error and not isinstance(error, AuthError):
            return Result.failure(error)
        logger.info("Signed out")
        return Result.success(None)

    @_guarded
    async def get_user(self) -> Result:
        """The identity behind the current session, confirmed by the provider."""
        session, error = await self.get_session()
        if error:
            return Result.failure(error)
        if session is None:
            return Result.failure(AuthError("Auth session missing", code="session_missing"))
        data, error = await self._backend.request(
            "GET",
            "/auth/v1/user",
            operation="auth:get_user",
            headers={"Authorization": f"Bearer {session.access_token}"},
        )
        if error:
            return Result.failure(_as_auth_error(error))
        return Result.success(AuthUser.model_validate(data))

    @_guarded
    async def refresh_session(self) -> Result:
        """Trade the refresh token for a new session; forget the session if refused."""
        await self._restore()
        async with self._refresh_lock:
            if self._session is None or not self._session.refresh_token:
                return Result.failure(AuthError("No refresh token", code="session_missing"))
            return await self._refresh(self._session)

    # ── Helpers ───────────────────────────────────────────────

    async def _refresh(self, session: AuthSession) -> Result:
        """Caller holds _refresh_lock."""
        data, error = await self._backend.request(
            "POST",
            "/auth/v1/token",
            operation="auth:refresh",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
            headers=self._anon_headers(),
        )
        if error:
            error = _as_auth_error(error)
            if isinstance(error, AuthError):
                await self._persist(None)
            return Result.failure(error)
        refreshed = AuthSession.from_token_response(data)
        await self._persist(refreshed)
        return Result.success(refreshed)

    def _anon_headers(self) -> dict:
        return {"Authorization": f"Bearer {self._backend.anon_key}"}


def _as_auth_error(error):
    """Credential and session rejections from GoTrue are AuthErrors, whatever their status."""
    if isinstance(error, AuthError) or error.code == "NETWORK_ERROR":
        return error
    if 400 <= error.status_code < 500:
        return AuthError(error.message, code=error.code, status_code=error.status_code, details=error.details)
    return error
