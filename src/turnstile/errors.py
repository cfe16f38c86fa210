"""turnstile exception hierarchy.

Shared across the registry, router, App, handler, and middleware so every
module raises and catches the same types.

Two families live here:

- **Configuration errors** surface while the app compiles, before the
  first request is served. A duplicate middleware name or a pipeline that
  references an unregistered name stops the app from starting.
- **HTTP errors** map to a status code and are turned into a response by
  the ASGI handler.

Access denials (unauthenticated, forbidden) are not exceptions: the
middleware that denies returns a terminal ``Response`` instead.
"""

from dataclasses import dataclass


class TurnstileError(Exception):
    """Base for all turnstile-specific errors."""


class ConfigurationError(TurnstileError):
    """Raised when app configuration is invalid.

    Typically raised during ``App._freeze()`` at startup.
    """


class DuplicateNameError(ConfigurationError):
    """A middleware, middleware group, or global middleware name is taken."""

    def __init__(self, name: str, kind: str = "middleware") -> None:
        self.name = name
        self.kind = kind
        super().__init__(f"{kind.capitalize()} {name!r} is already registered.")


class UnknownHandlerError(ConfigurationError):
    """A pipeline references a middleware name that was never registered."""

    def __init__(self, name: str, known: frozenset[str] = frozenset()) -> None:
        self.name = name
        self.known = known
        msg = f"No middleware registered under {name!r}."
        if known:
            msg += f" Registered names: {', '.join(sorted(known))}"
        super().__init__(msg)


@dataclass(frozen=True, slots=True)
class HTTPError(TurnstileError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405 — route exists but not for this HTTP method.

    Carries an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )
