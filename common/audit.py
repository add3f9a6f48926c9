"""
common.audit
~~~~~~~~~~~~
Audit event emission for mutating operations.

The engine does not persist audit records itself.  Every event is written as
a structured log record and broadcast through the :data:`audit_event` Django
signal so an external audit sink can subscribe with ``audit_event.connect``.

Usage::

    with audited("config_value.put", actor=actor, resource_type="config_value",
                 resource_id=f"{set_id}:{key}") as event:
        ...
        event["version"] = value.version
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from django.dispatch import Signal

from common.exceptions import AppError

logger = structlog.get_logger(__name__)

#: Sent with keyword arguments ``action``, ``actor``, ``resource_type``,
#: ``resource_id``, ``status`` (``"success"`` / ``"failure"``), ``error`` and
#: ``metadata``.
audit_event = Signal()


def failure_reason(exc: BaseException) -> str:
    """Return a caller-safe description of *exc* for audit records."""
    if isinstance(exc, AppError):
        if exc.is_internal:
            return f"{exc.code}: {exc.default_detail}"
        return f"{exc.code}: {exc.detail}"
    return type(exc).__name__


def emit_audit_event(
    action: str,
    *,
    actor: str | None,
    resource_type: str,
    resource_id: Any,
    status: str = "success",
    error: str | None = None,
    metadata: dict | None = None,
) -> None:
    """Log and broadcast one audit event."""
    metadata = metadata or {}
    log = logger.info if status == "success" else logger.warning
    log(
        "audit_event",
        action=action,
        actor=actor,
        resource_type=resource_type,
        resource_id=str(resource_id),
        status=status,
        error=error,
        **metadata,
    )
    audit_event.send(
        sender=None,
        action=action,
        actor=actor,
        resource_type=resource_type,
        resource_id=str(resource_id),
        status=status,
        error=error,
        metadata=metadata,
    )


@contextmanager
def audited(
    action: str,
    *,
    actor: str | None,
    resource_type: str,
    resource_id: Any,
    **metadata: Any,
) -> Iterator[dict]:
    """
    Emit an audit event when the wrapped block finishes, whatever the outcome.

    The yielded dict is the event metadata; the block may add fields to it.
    Exceptions are re-raised unchanged after the failure event is emitted.
    """
    try:
        yield metadata
    except Exception as exc:
        emit_audit_event(
            action,
            actor=actor,
            resource_type=resource_type,
            resource_id=resource_id,
            status="failure",
            error=failure_reason(exc),
            metadata=metadata,
        )
        raise
    emit_audit_event(
        action,
        actor=actor,
        resource_type=resource_type,
        resource_id=resource_id,
        metadata=metadata,
    )
