# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Tenant Context — Multi-tenancy support.

Every data operation in SchemaGate is scoped to a tenant schema.
TenantContext carries that identity explicitly through the call chain;
there is no process-wide client bound to a tenant.
"""

from __future__ import annotations

from dataclasses import dataclass


def normalize_code(code: str) -> str:
    """Trim and lowercase a user-typed tenant code."""
    return (code or "").strip().lower()


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant identity for schema-scoped operations."""

    schema: str

    def __post_init__(self):
        normalized = normalize_code(self.schema)
        if not normalized:
            raise ValueError("tenant schema must not be empty")
        object.__setattr__(self, "schema", normalized)

    def __repr__(self) -> str:
        return f"TenantContext(schema={self.schema!r})"
