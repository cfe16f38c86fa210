"""Security utilities — audit events for authentication and authorization.

Route protection itself is middleware (``turnstile.middleware.auth`` and
``turnstile.middleware.roles``); this package carries what they report::

    from turnstile.security import set_security_event_sink

    set_security_event_sink(lambda event: log.info("%s %s", event.name, event.path))
"""

from turnstile.security.audit import (
    SecurityEvent,
    current_step,
    emit_security_event,
    set_security_event_sink,
)

__all__ = [
    "SecurityEvent",
    "current_step",
    "emit_security_event",
    "set_security_event_sink",
]
