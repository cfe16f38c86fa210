"""Middleware protocol and the ``Next`` continuation type.

A middleware is any async callable matching::

    async def my_mw(request: Request, next: Next) -> Response: ...

No base class required. The framework checks the shape, not the lineage.

Parameterized middleware take extra positional string arguments, bound
from the reference that attached them to a route (``"role:admin,editor"``
calls ``mw(request, next, "admin", "editor")``)::

    async def role(request: Request, next: Next, *roles: str) -> Response: ...

A middleware either calls ``next(request)`` to run the rest of the
pipeline, or returns its own response to stop it there. A plain ``def``
works too: it returns a response, or returns ``next(request)`` unawaited.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol, TypeAlias

from turnstile.http.request import Request
from turnstile.http.response import Response

# The remaining pipeline, as seen from inside a middleware
Next: TypeAlias = Callable[[Request], Awaitable[Response]]


class Middleware(Protocol):
    """Protocol for turnstile middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def timing(request: Request, next: Next) -> Response:
            start = time.monotonic()
            response = await next(request)
            return response.with_header("X-Time", f"{time.monotonic() - start:.3f}")

        # Class middleware with parameters
        class RequireHeader:
            async def __call__(self, request: Request, next: Next, name: str) -> Response:
                if name not in request.headers:
                    return Response("Missing header", status=400)
                return await next(request)

    Middleware may also define ``validate_params(params)``; it is called
    once per reference when the app compiles and should raise
    ``ConfigurationError`` for parameters it cannot work with.
    """

    async def __call__(self, request: Request, next: Next, /, *params: str) -> Response: ...
