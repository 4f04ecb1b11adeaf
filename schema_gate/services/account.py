# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Account Service — registration and login inside one tenant.

Handles:
  - Registration: form rules → duplicate check in the tenant → identity
    sign-up → profile insert in the tenant
  - Login: identity sign-in → profile lookup in the tenant
  - Current profile and logout

Auth sequences touch the shared identity session, so only one may be in
flight per service; a second call while one is pending fails fast.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Optional

from schema_gate.core.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    Result,
    ValidationError,
)
from schema_gate.gateway.schema_gateway import SchemaGateway
from schema_gate.protocols.schema import Credentials, ProfileCreate
from schema_gate.services.forms import validate_login, validate_registration

logger = logging.getLogger("gate.account")


def _exclusive(fn: Callable[..., Awaitable[Result]]) -> Callable[..., Awaitable[Result]]:
    """Reject re-entrant auth sequences instead of queueing them."""

    @functools.wraps(fn)
    async def wrapper(self: AccountService, *args: Any, **kwargs: Any) -> Result:
        if self._busy:
            return Result.failure(AuthError(
                "An authentication request is already in progress",
                code="AUTH_BUSY",
                status_code=429,
            ))
        self._busy = True
        try:
            return await fn(self, *args, **kwargs)
        finally:
            self._busy = False

    return wrapper


class AccountService:
    """Registration / login / logout for one schema-scoped gateway."""

    def __init__(self, gateway: SchemaGateway) -> None:
        self._gateway = gateway
        self._busy = False

    @property
    def busy(self) -> bool:
        """True while an auth sequence is pending; callers disable their triggers."""
        return self._busy

    @_exclusive
    async def register(
        self,
        user_name: str,
        user_code: str,
        email: str,
        password: str,
        confirm_password: str,
        avatar_url: Optional[str] = None,
    ) -> Result:
        """Create the identity and its profile in this tenant. Data is the UserProfile."""
        try:
            validate_registration(user_name, user_code, email, password, confirm_password)
        except ValidationError as exc:
            return Result.failure(exc)
        email = email.strip()

        existing, error = await self._gateway.check_user_exists(email)
        if error:
            return Result.failure(error)
        if existing:
            return Result.failure(ConflictError(
                "A user with this email already exists in this schema.",
                code="EMAIL_TAKEN",
            ))

        user, error = await self._gateway.auth.sign_up(Credentials(email=email, password=password))
        if error:
            logger.warning("Sign-up failed: %s", error.message, extra={"schema": self._gateway.schema})
            return Result.failure(error)

        profile, error = await self._gateway.create_user_profile(ProfileCreate(
            user_id=user.id,
            user_name=user_name.strip(),
            user_code=user_code.strip(),
            email=email,
            profile_image=avatar_url or None,
            role="User",
        ))
        if error:
            logger.error(
                "Identity %s created but profile insert failed: %s", user.id, error.message,
                extra={"schema": self._gateway.schema},
            )
            return Result.failure(error)
        logger.info("Registered %s", profile.id, extra={"schema": self._gateway.schema})
        return Result.success(profile)

    @_exclusive
    async def login(self, email: str, password: str) -> Result:
        """Sign in and load the caller's profile from this tenant. Data is the UserProfile."""
        try:
            validate_login(email, password)
        except ValidationError as exc:
            return Result.failure(exc)

        session, error = await self._gateway.auth.sign_in_with_password(
            Credentials(email=email.strip(), password=password)
        )
        if error:
            return Result.failure(error)
        if session.user is None:
            return Result.failure(AuthError("Sign-in returned no user", code="no_user"))

        profile, error = await self._gateway.get_user_profile(session.user.id)
        if error:
            return Result.failure(error)
        if profile is None:
            return Result.failure(NotFoundError("User profile not found. Please contact support."))
        return Result.success(profile)

    async def current_profile(self) -> Result:
        """Profile of the signed-in identity in this tenant, or Result(None, None)."""
        user, error = await self._gateway.auth.get_user()
        if error:
            return Result.failure(error)
        return await self._gateway.get_user_profile(user.id)

    @_exclusive
    async def logout(self) -> Result:
        return await self._gateway.auth.sign_out()
