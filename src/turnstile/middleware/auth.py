"""Authentication middleware — who is making this request.

``AuthMiddleware`` is global middleware: it resolves the actor from a
bearer token (API clients) or the session (browsers) and hands the rest of
the pipeline ``request.with_user(user)``. The same user is also kept in a
ContextVar for code that has no request at hand (``get_user()``).

``Authenticate`` is route middleware, usually registered as ``"auth"``:
it turns anonymous requests away before they reach the handler.

Usage::

    app.add_middleware(SessionMiddleware(SessionConfig(secret_key="...")), name="session")
    app.add_middleware(AuthMiddleware(AuthConfig(load_user=load_user)), name="auth.resolve")
    app.middleware("auth", Authenticate(login_url="/login"))

    @app.route("/dashboard", middleware=["auth"])
    def dashboard(request: Request):
        return f"Hello {request.user.id}"
"""

from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from urllib.parse import quote

from turnstile.actors import ANONYMOUS, User, is_authenticated
from turnstile.errors import ConfigurationError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.protocol import Next
from turnstile.security.audit import emit_security_event

_user_var: ContextVar[User] = ContextVar("turnstile_user")


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Authentication middleware configuration.

    Attributes:
        session_key: Session dict key holding the user id.
        token_header: HTTP header carrying bearer tokens.
        token_scheme: Expected scheme prefix (e.g. ``"Bearer"``).
        load_user: Async callback loading a user by id (session auth).
        verify_token: Async callback resolving a bearer token (token auth).
    """

    session_key: str = "user_id"
    token_header: str = "Authorization"
    token_scheme: str = "Bearer"
    load_user: Callable[[str], Awaitable[User | None]] | None = None
    verify_token: Callable[[str], Awaitable[User | None]] | None = None


_active_config: ContextVar[AuthConfig | None] = ContextVar("turnstile_auth_config", default=None)


def get_user() -> User:
    """Return the current user (``ANONYMOUS`` when nobody is logged in).

    Raises ``LookupError`` outside a request handled by ``AuthMiddleware``.
    """
    try:
        return _user_var.get()
    except LookupError:
        msg = "No auth context. Register AuthMiddleware as global middleware."
        raise LookupError(msg) from None


def login(user: User) -> None:
    """Log *user* in: rotate the session, store the user id, update ``get_user()``.

    Requires ``SessionMiddleware`` and ``AuthMiddleware``.
    """
    from turnstile.middleware.sessions import regenerate_session

    config = _active_config.get()
    if config is None:
        msg = "login() requires AuthMiddleware to be active."
        raise LookupError(msg)

    session = regenerate_session()
    session[config.session_key] = user.id
    _user_var.set(user)
    emit_security_event("auth.login.success", user_id=user.id)


def logout() -> None:
    """Log the current user out and discard the session."""
    from turnstile.middleware.sessions import regenerate_session

    if _active_config.get() is None:
        msg = "logout() requires AuthMiddleware to be active."
        raise LookupError(msg)

    regenerate_session()
    _user_var.set(ANONYMOUS)
    emit_security_event("auth.logout.success")


class AuthMiddleware:
    """Resolve the actor for every request.

    Token auth is tried first, then the session. A request nobody can be
    resolved for continues as ``ANONYMOUS``; rejecting it is the job of
    ``Authenticate`` or ``RoleMiddleware`` further down the pipeline.
    """

    __slots__ = ("_config",)

    def __init__(self, config: AuthConfig) -> None:
        if config.load_user is None and config.verify_token is None:
            msg = (
                "AuthConfig requires at least one of 'load_user' (session auth) "
                "or 'verify_token' (token auth)."
            )
            raise ConfigurationError(msg)
        self._config = config

    def _extract_token(self, request: Request) -> str | None:
        header = request.headers.get(self._config.token_header)
        prefix = f"{self._config.token_scheme} "
        if not header or not header.startswith(prefix):
            return None
        return header[len(prefix) :].strip() or None

    async def _from_token(self, request: Request) -> User | None:
        if self._config.verify_token is None:
            return None
        token = self._extract_token(request)
        if token is None:
            return None
        user = await self._config.verify_token(token)
        if user is None:
            emit_security_event(
                "auth.token.invalid",
                request=request,
                details={"scheme": self._config.token_scheme},
            )
        return user

    async def _from_session(self) -> User | None:
        if self._config.load_user is None:
            return None

        from turnstile.middleware.sessions import get_session

        try:
            session = get_session()
        except LookupError:
            msg = (
                "Session auth requires SessionMiddleware registered before "
                "AuthMiddleware, or set load_user=None for token auth only."
            )
            raise ConfigurationError(msg) from None

        user_id = session.get(self._config.session_key)
        if not user_id:
            return None
        return await self._config.load_user(str(user_id))

    async def __call__(self, request: Request, next: Next) -> Response:
        user = await self._from_token(request)
        if user is None:
            user = await self._from_session()
        resolved: User = user if user is not None else ANONYMOUS

        user_token = _user_var.set(resolved)
        config_token = _active_config.set(self._config)
        try:
            return await next(request.with_user(resolved))
        finally:
            _user_var.reset(user_token)
            _active_config.reset(config_token)


class Authenticate:
    """Route middleware rejecting anonymous requests.

    API clients get ``401``. Browsers are redirected to *login_url* with
    the original URL in ``next``; with ``login_url=None`` they get ``401``
    as well.
    """

    __slots__ = ("login_url",)

    def __init__(self, login_url: str | None = "/login") -> None:
        self.login_url = login_url

    async def __call__(self, request: Request, next: Next) -> Response:
        if is_authenticated(request.user):
            return await next(request)

        emit_security_event("auth.require.unauthenticated", request=request)
        if request.is_api or not self.login_url:
            return Response("Unauthenticated", status=401).with_header(
                "WWW-Authenticate", "Bearer"
            )

        separator = "&" if "?" in self.login_url else "?"
        location = f"{self.login_url}{separator}next={quote(request.url, safe='')}"
        return Response("", status=302).with_header("Location", location)
