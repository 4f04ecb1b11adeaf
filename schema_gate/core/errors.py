# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Error Handling — Unified error structure and the (data, error) result pair.

Every backend failure is normalized into a GateError subclass and returned
inside a Result rather than raised, so callers have one failure contract.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, NamedTuple, Optional

# Postgres / PostgREST codes the client reacts to
UNIQUE_VIOLATION = "23505"
UNDEFINED_FUNCTION = "42883"
PGRST_FUNCTION_NOT_FOUND = "PGRST202"
PGRST_NO_ROWS = "PGRST116"

UNDEFINED_PROCEDURE_CODES = frozenset({UNDEFINED_FUNCTION, PGRST_FUNCTION_NOT_FOUND})


class GateError(Exception):
    """Base client error with structured fields."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.trace_id = trace_id or str(uuid.uuid4())
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "trace_id": self.trace_id,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(GateError):
    """Tenant code or form input rejected."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", **kwargs: Any):
        super().__init__(code=code, message=message, status_code=422, **kwargs)


class NetworkError(GateError):
    """Backend unreachable (connect failure, timeout, dropped connection)."""

    def __init__(self, message: str = "Network request failed", **kwargs: Any):
        super().__init__(code="NETWORK_ERROR", message=message, **kwargs)


class ConflictError(GateError):
    """A uniqueness constraint was violated on create."""

    def __init__(self, message: str, code: str = UNIQUE_VIOLATION, **kwargs: Any):
        super().__init__(code=code, message=message, status_code=409, **kwargs)


class NotFoundError(GateError):
    """An expected record is absent."""

    def __init__(self, message: str, code: str = "NOT_FOUND", **kwargs: Any):
        super().__init__(code=code, message=message, status_code=404, **kwargs)


class AuthError(GateError):
    """Identity provider rejected the credentials or the session."""

    def __init__(self, message: str, code: str = "AUTH_ERROR", status_code: int = 401, **kwargs: Any):
        super().__init__(code=code, message=message, status_code=status_code, **kwargs)


class BackendError(GateError):
    """Any other backend failure, carrying the backend's machine-readable code."""


class Result(NamedTuple):
    """(data, error) pair returned by every client operation."""

    data: Any
    error: Optional[GateError]

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any = None) -> "Result":
        return cls(data, None)

    @classmethod
    def failure(cls, error: GateError) -> "Result":
        return cls(None, error)


def unexpected(exc: BaseException) -> BackendError:
    """Wrap an unexpected exception into the common error shape."""
    return BackendError(
        code="UNEXPECTED_ERROR",
        message=str(exc) or type(exc).__name__,
        details={"exception": type(exc).__name__},
    )
