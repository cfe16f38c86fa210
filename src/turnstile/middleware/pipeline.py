"""Middleware references, bound middleware, and the pipeline dispatcher.

A route declares its middleware as references::

    "auth"                -> name only
    "role:admin"          -> name + one parameter
    "role:admin,editor"   -> name + two parameters

When the app compiles, each reference is resolved against the registry
and bound to its parameters, producing a ``BoundMiddleware``. A route's
bound middleware form its ``Pipeline``: an immutable tuple run strictly in
declaration order around the route handler.

Middleware may be ``async def`` or plain ``def``. A plain function either
returns its own ``Response`` or returns ``next(request)`` unawaited.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from turnstile.errors import ConfigurationError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.protocol import Next
from turnstile.security.audit import pipeline_step


@dataclass(frozen=True, slots=True)
class MiddlewareRef:
    """A parsed ``name[:param,param...]`` reference."""

    name: str
    params: tuple[str, ...] = ()

    @classmethod
    def parse(cls, reference: str) -> MiddlewareRef:
        """Parse a reference string.

        Raises ``ConfigurationError`` for an empty name.
        """
        name, sep, raw_params = reference.strip().partition(":")
        name = name.strip()
        if not name:
            msg = f"Middleware reference {reference!r} has no name."
            raise ConfigurationError(msg)
        params: tuple[str, ...] = ()
        if sep:
            params = tuple(p.strip() for p in raw_params.split(",") if p.strip())
        return cls(name, params)

    def __str__(self) -> str:
        if self.params:
            return f"{self.name}:{','.join(self.params)}"
        return self.name


@dataclass(frozen=True, slots=True)
class BoundMiddleware:
    """A resolved middleware with its parameters bound.

    Calling it with ``(request, next)`` forwards the bound parameters
    positionally after ``next``. While the step runs, security events are
    attributed to its reference. ``next`` clears the attribution for the
    rest of the chain.
    """

    name: str
    handler: Callable[..., Awaitable[Response] | Response]
    params: tuple[str, ...] = ()

    async def __call__(self, request: Request, next: Next) -> Response:
        async def downstream(req: Request) -> Response:
            with pipeline_step(None):
                return await next(req)

        with pipeline_step(self.reference):
            return await invoke(self.handler, request, downstream, *self.params)

    def check(self) -> None:
        """Verify the handler accepts the bound parameters.

        Runs at compile time so a bad reference stops the app from starting
        instead of failing on the first matching request.
        """
        try:
            sig = inspect.signature(self.handler)
        except (TypeError, ValueError):
            sig = None
        if sig is not None:
            try:
                sig.bind(None, None, *self.params)
            except TypeError as exc:
                msg = f"Middleware {self.reference!r} cannot accept its parameters: {exc}"
                raise ConfigurationError(msg) from exc

        validate = getattr(self.handler, "validate_params", None)
        if callable(validate):
            validate(self.params)

    @property
    def reference(self) -> str:
        return str(MiddlewareRef(self.name, self.params))


@dataclass(frozen=True, slots=True)
class Pipeline:
    """An ordered, immutable chain of bound middleware.

    Usage::

        pipeline = Pipeline((auth, role_admin))
        response = await pipeline.run(request, endpoint)
    """

    middleware: tuple[BoundMiddleware, ...] = ()

    def __len__(self) -> int:
        return len(self.middleware)

    def __iter__(self) -> Iterator[BoundMiddleware]:
        return iter(self.middleware)

    @property
    def references(self) -> tuple[str, ...]:
        return tuple(mw.reference for mw in self.middleware)

    def then(self, endpoint: Next) -> Next:
        """Wrap *endpoint* in this pipeline and return the outermost callable."""
        return compose(self.middleware, endpoint)

    async def run(self, request: Request, endpoint: Next) -> Response:
        """Dispatch *request* through the pipeline, ending at *endpoint*."""
        return await self.then(endpoint)(request)


def compose(middleware: Sequence[Any], endpoint: Next) -> Next:
    """Build the continuation chain for *middleware* around *endpoint*.

    The first middleware in the sequence is the outermost: it runs first on
    the way in and last on the way out. Each one receives the rest of the
    chain as its ``next``.
    """
    handler = endpoint
    for mw in reversed(middleware):
        outer = handler

        async def make_next(req: Request, _mw: Any = mw, _next: Next = outer) -> Response:
            return await _mw(req, _next)

        handler = make_next
    return handler


async def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result when it is awaitable.

    Middleware, route handlers, error handlers, lifecycle hooks and role
    resolvers all go through here, so each may be sync or async.
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
