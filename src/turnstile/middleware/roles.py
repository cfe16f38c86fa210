"""Role-check middleware — ``"role:admin"``.

Parameterized route middleware comparing the actor's role against the
role(s) bound in the reference::

    app.middleware("role", RoleMiddleware())

    @app.route("/admin", middleware=["role:admin"])
    def admin_panel():
        return "admin"

    @app.route("/posts/{id}/edit", middleware=["role:admin,editor"])
    def edit_post(id: int):
        return f"editing {id}"

Roles are read from the request's actor:

1. ``RoleConfig.resolver`` when set (e.g. a role-membership query);
2. otherwise a ``roles`` collection on the user (names or objects with
   ``name``), for users belonging to several roles;
3. otherwise a single ``role`` field.

Several bound roles mean *any of*. Denials are terminal responses; the
continuation is never called for a denied request.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeAlias

from turnstile.actors import is_authenticated, normalize_roles, role_names
from turnstile.errors import ConfigurationError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.pipeline import invoke
from turnstile.middleware.protocol import Next
from turnstile.security.audit import emit_security_event

_log = logging.getLogger("turnstile.security")

RoleResolver: TypeAlias = Callable[[Any], Iterable[Any] | str | None | Awaitable[Iterable[Any] | str | None]]


@dataclass(frozen=True, slots=True)
class RoleConfig:
    """Role middleware configuration.

    Attributes:
        resolver: Optional sync or async ``(user) -> roles`` callable. Its
            result may be a role name, an iterable of names, or role
            objects exposing ``name``.
        forbidden_status: Status for an authenticated actor lacking the role.
        forbidden_message: Body for that response.
        unauthenticated_status: Status when there is no actor at all.
        unauthenticated_message: Body for that response.
    """

    resolver: RoleResolver | None = None
    forbidden_status: int = 403
    forbidden_message: str = "Forbidden"
    unauthenticated_status: int = 403
    unauthenticated_message: str = "Unauthenticated"


class RoleMiddleware:
    """Grant access when the actor holds one of the bound roles."""

    __slots__ = ("config",)

    def __init__(self, config: RoleConfig | None = None) -> None:
        self.config = config or RoleConfig()

    def validate_params(self, params: tuple[str, ...]) -> None:
        """Reject ``"role"`` references that name no role."""
        if not params:
            msg = "Role middleware needs at least one role, e.g. 'role:admin'."
            raise ConfigurationError(msg)

    async def roles_for(self, user: Any) -> frozenset[str]:
        """Return the role names *user* holds."""
        if self.config.resolver is not None:
            return normalize_roles(await invoke(self.config.resolver, user))
        return role_names(user)

    def _deny(self, status: int, message: str, request: Request) -> Response:
        if request.is_api:
            return Response.json({"error": message}, status=status)
        return Response(message, status=status)

    async def __call__(self, request: Request, next: Next, *roles: str) -> Response:
        cfg = self.config
        user = request.user

        if not is_authenticated(user):
            emit_security_event(
                "auth.require.unauthenticated",
                request=request,
                details={"roles": list(roles)},
            )
            return self._deny(cfg.unauthenticated_status, cfg.unauthenticated_message, request)

        held = await self.roles_for(user)
        if held.isdisjoint(roles):
            _log.warning(
                "User %s denied %s %s: needs role %s, has %s",
                user.id,
                request.method,
                request.path,
                " or ".join(roles),
                ", ".join(sorted(held)) or "none",
            )
            emit_security_event(
                "authz.role.denied",
                request=request,
                user_id=user.id,
                details={"required": list(roles), "held": sorted(held)},
            )
            return self._deny(cfg.forbidden_status, cfg.forbidden_message, request)

        return await next(request)
