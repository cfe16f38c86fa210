"""Route groups — shared prefix, name prefix, and middleware.

Usage::

    admin = app.group("/admin", middleware=["auth", "role:admin"], name="admin.")

    @admin.route("/users", name="users")        # GET /admin/users, "admin.users"
    def users(): ...

    reports = admin.group("/reports", middleware=["audit"])

    @reports.route("/daily")                     # auth -> role:admin -> audit
    def daily(): ...

Nested groups compose outer-first: prefixes and name prefixes are
concatenated, and middleware run ``outer group -> inner group -> route``.
Groups are also context managers, for visual nesting::

    with app.group("/api", middleware=["api"]) as api:
        @api.route("/status")
        def status(): ...
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from turnstile.middleware.pipeline import MiddlewareRef

if TYPE_CHECKING:
    from turnstile.app import App


def join_paths(prefix: str, path: str) -> str:
    """Join a group prefix and a route path into one normalized path."""
    joined = "/".join(part.strip("/") for part in (prefix, path) if part.strip("/"))
    return f"/{joined}"


class RouteGroup:
    """Routes sharing a path prefix, a name prefix, and middleware."""

    __slots__ = ("_app", "middleware", "name_prefix", "prefix")

    def __init__(
        self,
        app: App,
        prefix: str = "",
        *,
        middleware: Sequence[str] = (),
        name: str = "",
    ) -> None:
        for reference in middleware:
            MiddlewareRef.parse(reference)
        self._app = app
        self.prefix = join_paths("", prefix)
        self.middleware: tuple[str, ...] = tuple(middleware)
        self.name_prefix = name

    def route(
        self,
        path: str,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
        middleware: Sequence[str] = (),
        exclude: Sequence[str] = (),
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a route inside this group. See ``App.route``."""
        return self._app.route(
            join_paths(self.prefix, path),
            methods=methods,
            name=f"{self.name_prefix}{name}" if name else None,
            middleware=(*self.middleware, *middleware),
            exclude=exclude,
        )

    def group(
        self,
        prefix: str = "",
        *,
        middleware: Sequence[str] = (),
        name: str = "",
    ) -> RouteGroup:
        """Create a nested group inheriting this group's prefix and middleware."""
        return RouteGroup(
            self._app,
            join_paths(self.prefix, prefix),
            middleware=(*self.middleware, *middleware),
            name=f"{self.name_prefix}{name}",
        )

    def __enter__(self) -> RouteGroup:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def __repr__(self) -> str:
        return f"RouteGroup(prefix={self.prefix!r}, middleware={list(self.middleware)!r})"
