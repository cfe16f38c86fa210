"""Middleware registry — named middleware, groups, and pipeline resolution.

Three kinds of names share one namespace:

- **global** middleware run on every request, in registration order;
- **aliases** run only where a route or route group references them;
- **groups** bundle several references under one name and expand in place.

The registry is filled during setup and frozen when the app compiles.
From then on it is read-only, so concurrent requests can read it without
locking.

Usage::

    registry = MiddlewareRegistry()
    registry.add_global("sessions", SessionMiddleware(config))
    registry.register("role", RoleMiddleware())
    registry.register_group("admin", ["auth", "role:admin"])
    registry.freeze()

    pipeline = registry.pipeline(["admin", "throttle:60"])
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from turnstile.errors import ConfigurationError, DuplicateNameError, UnknownHandlerError
from turnstile.middleware.pipeline import BoundMiddleware, MiddlewareRef, Pipeline

logger = logging.getLogger("turnstile.middleware")


def middleware_name(middleware: Any) -> str:
    """Derive a registry name for an unnamed global middleware."""
    name = getattr(middleware, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return type(middleware).__name__


class MiddlewareRegistry:
    """Name -> middleware mapping, frozen at startup."""

    __slots__ = ("_aliases", "_frozen", "_globals", "_groups")

    def __init__(self) -> None:
        self._globals: dict[str, Callable[..., Any]] = {}
        self._aliases: dict[str, Callable[..., Any]] = {}
        self._groups: dict[str, tuple[MiddlewareRef, ...]] = {}
        self._frozen = False

    # -- Registration --

    def add_global(self, name: str, middleware: Callable[..., Any]) -> None:
        """Register *middleware* to run on every request.

        Raises ``DuplicateNameError`` if *name* is already registered.
        """
        self._claim(name, "global middleware")
        self._globals[name] = middleware

    def register(self, name: str, middleware: Callable[..., Any]) -> None:
        """Register a route middleware under *name*.

        Raises ``DuplicateNameError`` if *name* is already registered.
        """
        self._claim(name, "middleware")
        self._aliases[name] = middleware

    def register_group(self, name: str, references: Iterable[str]) -> None:
        """Register a named bundle of references.

        Members are resolved when the app compiles, so a group may name
        middleware registered after it.
        """
        refs = tuple(MiddlewareRef.parse(r) for r in references)
        self._claim(name, "middleware group")
        self._groups[name] = refs

    def _claim(self, name: str, kind: str) -> None:
        if self._frozen:
            msg = "Cannot register middleware after the app has been compiled."
            raise RuntimeError(msg)
        if not name or ":" in name or "," in name:
            msg = f"Invalid middleware name {name!r}."
            raise ConfigurationError(msg)
        if name in self:
            raise DuplicateNameError(name, kind)

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    # -- Lookup --

    def __contains__(self, name: object) -> bool:
        return name in self._globals or name in self._aliases or name in self._groups

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._globals) | frozenset(self._aliases) | frozenset(self._groups)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, name: str) -> Callable[..., Any]:
        """Return the middleware registered under *name*.

        Global middleware are resolvable too, for introspection. Routes and
        groups cannot reference them (see ``pipeline()``). Groups are not
        single middleware.

        Raises ``UnknownHandlerError`` if *name* is not registered.
        """
        if name in self._aliases:
            return self._aliases[name]
        if name in self._globals:
            return self._globals[name]
        raise UnknownHandlerError(name, self.names)

    def _expand(
        self, ref: MiddlewareRef, trail: tuple[str, ...], excluded: frozenset[str]
    ) -> Iterable[BoundMiddleware]:
        if ref.name in excluded:
            return

        if ref.name in self._groups:
            if ref.params:
                msg = f"Middleware group {ref.name!r} does not take parameters (got {ref})."
                raise ConfigurationError(msg)
            if ref.name in trail:
                cycle = " -> ".join((*trail, ref.name))
                msg = f"Middleware group cycle: {cycle}"
                raise ConfigurationError(msg)
            for member in self._groups[ref.name]:
                yield from self._expand(member, (*trail, ref.name), excluded)
            return

        if ref.name in self._globals:
            via = f" (via group {' -> '.join(trail)})" if trail else ""
            msg = (
                f"Global middleware {ref.name!r} already runs on every request and "
                f"cannot be referenced by a route{via}."
            )
            raise ConfigurationError(msg)

        bound = BoundMiddleware(ref.name, self.resolve(ref.name), ref.params)
        bound.check()
        yield bound

    def global_pipeline(self) -> Pipeline:
        """The middleware applied to every request, in registration order."""
        return Pipeline(tuple(BoundMiddleware(name, mw) for name, mw in self._globals.items()))

    def pipeline(
        self,
        references: Iterable[str | MiddlewareRef],
        *,
        exclude: Iterable[str] = (),
    ) -> Pipeline:
        """Resolve *references* into a route pipeline.

        References are expanded in order. A name in *exclude* is skipped
        wherever it appears, at any group depth: an excluded group drops
        all of its members, an excluded middleware drops every
        parameterization of it.

        Raises ``UnknownHandlerError`` for any unregistered name, including
        excluded ones, and ``ConfigurationError`` for a global name, which
        can neither be referenced nor excluded.
        """
        excluded = frozenset(exclude)
        for name in excluded:
            if name not in self:
                raise UnknownHandlerError(name, self.names)
            if name in self._globals:
                msg = f"Global middleware {name!r} runs on every request and cannot be excluded."
                raise ConfigurationError(msg)

        bound: list[BoundMiddleware] = []
        for reference in references:
            ref = reference if isinstance(reference, MiddlewareRef) else MiddlewareRef.parse(reference)
            bound.extend(self._expand(ref, (), excluded))
        logger.debug("Resolved pipeline: %s", ", ".join(mw.reference for mw in bound) or "-")
        return Pipeline(tuple(bound))
