"""Session middleware — signed cookie sessions.

The session dict is serialized as JSON and signed with ``itsdangerous``.
While a request is in flight the dict lives in a ContextVar, reachable via
``get_session()`` from handlers and from middleware further down the
pipeline (``AuthMiddleware`` reads the logged-in user id from it).
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadData, URLSafeTimedSerializer

from turnstile.errors import ConfigurationError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.protocol import Next

_session_var: ContextVar[dict[str, Any] | None] = ContextVar("turnstile_session", default=None)


def get_session() -> dict[str, Any]:
    """Return the current session dict.

    Raises ``LookupError`` outside a request handled by ``SessionMiddleware``.
    """
    session = _session_var.get()
    if session is None:
        msg = (
            "No active session. Register SessionMiddleware as global "
            "middleware before accessing the session."
        )
        raise LookupError(msg)
    return session


def regenerate_session() -> dict[str, Any]:
    """Discard all session data and return the (now empty) session.

    The middleware signs the emptied dict into a fresh cookie, so the old
    cookie value can no longer carry a login. ``login()`` and ``logout()``
    call this.
    """
    session = get_session()
    session.clear()
    return session


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session cookie settings. ``secret_key`` is required."""

    secret_key: str
    cookie_name: str = "turnstile_session"
    max_age: int = 86400
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"


class SessionMiddleware:
    """Signed cookie session middleware.

    Usage::

        app.add_middleware(SessionMiddleware(SessionConfig(secret_key="...")), name="session")

        @app.route("/visits")
        def visits():
            session = get_session()
            session["n"] = session.get("n", 0) + 1
            return f"Visits: {session['n']}"
    """

    __slots__ = ("_config", "_serializer")

    def __init__(self, config: SessionConfig) -> None:
        if not config.secret_key:
            msg = "SessionConfig.secret_key must not be empty."
            raise ConfigurationError(msg)
        self._config = config
        self._serializer = URLSafeTimedSerializer(config.secret_key, salt="turnstile.session")

    def _load(self, request: Request) -> dict[str, Any]:
        raw = request.cookies.get(self._config.cookie_name)
        if not raw:
            return {}
        try:
            data = self._serializer.loads(raw, max_age=self._config.max_age)
        except BadData:
            # Tampered, expired, or signed with another key
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, response: Response, session: dict[str, Any]) -> Response:
        cfg = self._config
        return response.with_cookie(
            cfg.cookie_name,
            self._serializer.dumps(session),
            max_age=cfg.max_age,
            path=cfg.path,
            domain=cfg.domain,
            secure=cfg.secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )

    async def __call__(self, request: Request, next: Next) -> Response:
        session = self._load(request)
        token = _session_var.set(session)
        try:
            response = await next(request)
        finally:
            _session_var.reset(token)
        # Re-sign on every response so the expiry slides
        return self._save(response, session)
