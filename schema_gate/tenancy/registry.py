# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Tenant Registry — Static allow-list of tenant schema codes.

This is the first gate: a code that is not listed here never reaches the
network.
"""

from __future__ import annotations

from typing import Iterable, Optional

from schema_gate.core.config import settings
from schema_gate.core.tenant import normalize_code


class TenantRegistry:
    """Allow-list of valid tenant codes, compared case-insensitively."""

    def __init__(self, allowed: Optional[Iterable[str]] = None) -> None:
        codes = allowed if allowed is not None else settings.ALLOWED_SCHEMAS
        self._allowed = frozenset(c for c in (normalize_code(x) for x in codes) if c)

    @property
    def allowed_codes(self) -> list[str]:
        return sorted(self._allowed)

    def is_valid_code(self, code: str) -> bool:
        """Normalize, then test membership. Empty input is never valid."""
        normalized = normalize_code(code)
        return bool(normalized) and normalized in self._allowed

    def rejection_message(self, code: str) -> str:
        return (
            f"Unknown schema '{normalize_code(code)}'. "
            f"Please use one of the following: {', '.join(self.allowed_codes)}"
        )

    def __contains__(self, code: str) -> bool:
        return self.is_valid_code(code)

    def __len__(self) -> int:
        return len(self._allowed)
