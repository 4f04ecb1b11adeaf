# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
User Directory — the per-tenant administrative user list.

Ordering rules:
  - save: the image upload completes before the record write that
    references it; a failed upload aborts the save.
  - delete: the confirmation callback is awaited before the destructive
    call; delete and refresh run one after the other.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Union

from schema_gate.core.errors import Result, ValidationError
from schema_gate.gateway.schema_gateway import SchemaGateway
from schema_gate.protocols.schema import ProfileCreate, ProfileUpdate, UserProfile
from schema_gate.services.forms import validate_directory_entry

logger = logging.getLogger("gate.directory")

ConfirmFn = Callable[[], Awaitable[bool]]


class UserDirectory:
    """Cached, searchable list of the tenant's profiles."""

    def __init__(self, gateway: SchemaGateway) -> None:
        self._gateway = gateway
        self._users: List[UserProfile] = []

    @property
    def users(self) -> List[UserProfile]:
        return list(self._users)

    async def refresh(self) -> Result:
        """Reload every profile, newest first. The cache is kept on failure."""
        users, error = await self._gateway.get_all_users()
        if error:
            logger.warning("Failed to fetch users: %s", error.message, extra={"schema": self._gateway.schema})
            return Result.failure(error)
        self._users = users
        return Result.success(self.users)

    def search(self, query: str) -> List[UserProfile]:
        """Case-insensitive match on name, email or role. Blank query returns everything."""
        needle = (query or "").strip().lower()
        if not needle:
            return self.users
        return [
            u for u in self._users
            if needle in u.user_name.lower()
            or needle in u.email.lower()
            or needle in (u.role or "").lower()
        ]

    async def save_user(
        self,
        data: Union[ProfileCreate, ProfileUpdate],
        image_ref: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Result:
        """
        Create (id is None) or update a profile, uploading its image first.

        Data is the written UserProfile.
        """
        if id is None and not isinstance(data, ProfileCreate):
            return Result.failure(ValidationError("A new user needs a ProfileCreate payload"))
        if isinstance(data, ProfileCreate):
            try:
                validate_directory_entry(data.user_name, data.email)
            except ValidationError as exc:
                return Result.failure(exc)

        fields = data.model_dump(exclude_unset=True)
        if image_ref:
            upload, error = await self._gateway.upload_image(image_ref)
            if error:
                logger.error("Image upload failed, profile not saved: %s", error.message)
                return Result.failure(error)
            fields["profile_image"] = upload.public_url

        if id is None:
            result = await self._gateway.create_user(ProfileCreate(**fields))
        else:
            result = await self._gateway.update_user(id, ProfileUpdate(**fields))
        if result.ok:
            await self.refresh()
        return result

    async def delete_user(self, id: str, confirm: ConfirmFn) -> Result:
        """
        Delete after explicit confirmation.

        Data is True when deleted, False when the confirmation was declined.
        """
        if not await confirm():
            return Result.success(False)
        _, error = await self._gateway.delete_user(id)
        if error:
            return Result.failure(error)
        await self.refresh()
        return Result.success(True)
