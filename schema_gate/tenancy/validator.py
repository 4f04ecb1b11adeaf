# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Tenant Validator — Debounced, cancellable confirmation of a typed tenant code.

States:
    IDLE        no code, or the code just changed and is still settling
    VALIDATING  the debounce window elapsed; one remote confirmation in flight
    VALID       confirmed (possibly in offline mode)
    INVALID     rejected by the allow-list or by the backend

Work is a task queue of depth one. Every edit that changes the normalized
code bumps a generation counter, cancels a task still sleeping in its
debounce window, and leaves an in-flight confirmation to finish on its own.
Results carry the (code, generation) ticket they were issued for and are
dropped on arrival when the ticket is no longer current.

Once the allow-list passes, the remote call can only narrow the verdict with
an explicit rejection: a missing procedure, a network failure or any
unexpected exception all resolve to VALID.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from schema_gate.core.config import settings
from schema_gate.core.errors import UNDEFINED_PROCEDURE_CODES, NetworkError, ValidationError
from schema_gate.core.metrics import gate_metrics
from schema_gate.core.tenant import TenantContext, normalize_code
from schema_gate.protocols.schema import TenantValidationStatus
from schema_gate.runtime.backend import BackendClient
from schema_gate.tenancy.registry import TenantRegistry

logger = logging.getLogger("gate.validator")

Listener = Callable[[TenantValidationStatus], None]


@dataclass(frozen=True)
class _Ticket:
    code: str
    generation: int


class TenantValidator:
    """
    Turns raw keystrokes into a trustworthy TenantValidationStatus.

    Usage:
        validator = TenantValidator(backend)
        validator.subscribe(render)
        validator.update("S2")
        validator.update("S22 ")
        await validator.wait()
        tenant = validator.context()
    """

    def __init__(
        self,
        backend: BackendClient,
        registry: Optional[TenantRegistry] = None,
        debounce: Optional[float] = None,
        rpc_name: Optional[str] = None,
    ) -> None:
        """
        Args:
            backend: Client used for the remote confirmation call.
            registry: Allow-list; defaults to the configured schemas.
            debounce: Seconds of stable input before confirming.
            rpc_name: Remote procedure that confirms a schema.
        """
        self._backend = backend
        self._registry = registry or TenantRegistry()
        self._debounce = settings.VALIDATION_DEBOUNCE if debounce is None else debounce
        self._rpc_name = rpc_name or settings.VALIDATION_RPC

        self._code = ""
        self._generation = 0
        self._status = TenantValidationStatus.idle()
        self._pending: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []
        self._closed = False

    @property
    def code(self) -> str:
        """Current normalized input."""
        return self._code

    @property
    def status(self) -> TenantValidationStatus:
        return self._status

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    @property
    def busy(self) -> bool:
        """True while a debounce window or a confirmation call is outstanding."""
        return self._pending is not None or bool(self._inflight)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a status listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Input ───────────────────────────────────────────────────

    def update(self, raw: str) -> None:
        """
        Feed the latest input text. Must be called from a running event loop.

        Edits that normalize to the current code are ignored.
        """
        if self._closed:
            raise RuntimeError("TenantValidator is closed")
        code = normalize_code(raw)
        if code == self._code:
            return

        self._code = code
        self._generation += 1
        self._cancel_pending()
        self._set_status(TenantValidationStatus.idle())
        if not code:
            return

        ticket = _Ticket(code, self._generation)
        self._pending = asyncio.get_running_loop().create_task(self._run(ticket))

    async def validate(self, raw: str) -> TenantValidationStatus:
        """Feed input and wait for its verdict."""
        self.update(raw)
        await self.wait()
        return self._status

    async def wait(self) -> None:
        """Wait until no debounce window or confirmation call is outstanding."""
        while True:
            tasks = {t for t in (self._pending, *self._inflight) if t is not None and not t.done()}
            if not tasks:
                return
            await asyncio.wait(tasks)

    def close(self) -> None:
        """Tear down: cancel the debounce timer and ignore late results."""
        self._closed = True
        self._generation += 1
        self._cancel_pending()

    def context(self) -> TenantContext:
        """The confirmed tenant, or ValidationError if the current input is not VALID."""
        status = self._status
        if not status.is_valid or status.code != self._code:
            raise ValidationError(status.message or "Schema does not exist or is not accessible.")
        return TenantContext(self._code)

    # ── Task queue ──────────────────────────────────────────────

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _is_current(self, ticket: _Ticket) -> bool:
        return not self._closed and ticket.generation == self._generation and ticket.code == self._code

    async def _run(self, ticket: _Ticket) -> None:
        await asyncio.sleep(self._debounce)

        # Past the debounce window the task is no longer cancellable
        task = asyncio.current_task()
        if self._pending is task:
            self._pending = None
        self._inflight.add(task)
        gate_metrics.set_gauge("tenant_confirm_inflight", len(self._inflight))
        try:
            if not self._is_current(ticket):
                return
            self._set_status(TenantValidationStatus.validating(ticket.code))
            verdict = await self.confirm(ticket.code)
            if self._is_current(ticket):
                self._set_status(verdict)
            else:
                logger.debug(
                    "Discarding stale verdict for %r (current %r)", ticket.code, self._code,
                    extra={"schema": ticket.code},
                )
        finally:
            self._inflight.discard(task)
            gate_metrics.set_gauge("tenant_confirm_inflight", len(self._inflight))

    # ── Confirmation protocol ───────────────────────────────────

    async def confirm(self, code: str) -> TenantValidationStatus:
        """
        Confirm one code, without debounce.

        1. Allow-list miss: INVALID, no network call.
        2. One RPC carrying the normalized code.
        3. Explicit flag wins; missing procedure, network failure or any
           unexpected exception fail open to VALID.
        """
        code = normalize_code(code)
        if not self._registry.is_valid_code(code):
            return TenantValidationStatus.invalid(code, self._registry.rejection_message(code))

        gate_metrics.inc("tenant_confirm")
        try:
            data, error = await self._backend.rpc(self._rpc_name, {"schema_name": code})
        except Exception:
            logger.exception(
                "Schema validation error for %r, accepting in offline mode", code,
                extra={"schema": code},
            )
            return TenantValidationStatus.valid(code, offline=True)

        if error is None:
            payload = _verdict_payload(data)
            message = payload.get("message") or ""
            if payload.get("isValid", True):
                return TenantValidationStatus.valid(code, message)
            return TenantValidationStatus.invalid(code, message or f"Schema '{code}' is not available")

        if error.code in UNDEFINED_PROCEDURE_CODES:
            logger.info("No %s procedure on backend, allow-list verdict stands", self._rpc_name)
            return TenantValidationStatus.valid(code)
        if isinstance(error, NetworkError):
            logger.warning(
                "Network request failed, using fallback validation for %r", code,
                extra={"schema": code},
            )
            return TenantValidationStatus.valid(code, offline=True)
        return TenantValidationStatus.invalid(code, error.message or "Schema validation failed")

    # ── Listeners ───────────────────────────────────────────────

    def _set_status(self, status: TenantValidationStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as exc:
                logger.error("Validator listener error: %s", exc)


def _verdict_payload(data) -> dict:
    """Accept {isValid, message}, the same wrapped in {data: ...}, or a one-row list."""
    if isinstance(data, list):
        data = data[0] if data else {}
    if isinstance(data, dict) and "isValid" not in data and isinstance(data.get("data"), dict):
        data = data["data"]
    return data if isinstance(data, dict) else {}
