"""Security audit events.

Opt-in event channel for authentication and authorization outcomes. Every
event names the pipeline step that produced it (``"role:admin"``,
``"auth"``), so a denial in the audit trail points at the reference that
caused it::

    set_security_event_sink(lambda e: audit_log.info("%s %s by %s", e.name, e.path, e.middleware))
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from time import time
from typing import Any, TypeAlias

from turnstile.actors import is_authenticated

_step: ContextVar[str | None] = ContextVar("turnstile_pipeline_step", default=None)


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    """One authentication or authorization outcome.

    ``middleware`` is the reference of the pipeline step that emitted the
    event. It is ``None`` for events raised by a route handler (``login()``
    inside a view) or outside any request.
    """

    name: str
    middleware: str | None = None
    path: str | None = None
    method: str | None = None
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time)


@contextmanager
def pipeline_step(reference: str | None) -> Iterator[None]:
    """Attribute events emitted inside the block to *reference*."""
    token = _step.set(reference)
    try:
        yield
    finally:
        _step.reset(token)


def current_step() -> str | None:
    return _step.get()


SecurityEventSink: TypeAlias = Callable[[SecurityEvent], None]

_sink_lock = threading.Lock()
_sink: SecurityEventSink | None = None


def set_security_event_sink(sink: SecurityEventSink | None) -> None:
    """Install the process-wide sink. ``None`` turns delivery off."""
    global _sink
    with _sink_lock:
        _sink = sink


def emit_security_event(
    name: str,
    *,
    request: Any | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Deliver an event to the installed sink, if any.

    Without an explicit *user_id*, the request's actor is recorded when it
    is authenticated.
    """
    with _sink_lock:
        sink = _sink
    if sink is None:
        return

    if user_id is None and request is not None:
        actor = getattr(request, "user", None)
        if is_authenticated(actor):
            user_id = str(actor.id)

    event = SecurityEvent(
        name=name,
        middleware=_step.get(),
        path=getattr(request, "path", None),
        method=getattr(request, "method", None),
        user_id=user_id,
        details=details or {},
    )
    sink(event)
