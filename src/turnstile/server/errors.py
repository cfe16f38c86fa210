"""Error handling for turnstile requests.

Maps ``HTTPError`` exceptions and unexpected failures to Response objects,
using handlers registered with ``@app.error()`` or plain-text defaults.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeAlias

from turnstile.errors import HTTPError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.pipeline import invoke
from turnstile.server.negotiation import negotiate

logger = logging.getLogger("turnstile.server")

ErrorHandlers: TypeAlias = dict[int | type, Callable[..., Any]]


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
) -> Response:
    """Invoke an error handler taking ``()``, ``(request)``, or ``(request, exc)``."""
    arity = len(inspect.signature(handler).parameters)
    args: tuple[Any, ...] = (request, exc)[: min(arity, 2)]
    return negotiate(await invoke(handler, *args))


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        # Keep the error status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
    else:
        detail = exc.detail or f"Error {exc.status}"
        if debug and exc.detail:
            detail = f"{exc.status}: {exc.detail}"
        response = Response(detail, status=exc.status)

    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Handle an unexpected exception as a 500."""
    logger.exception("500 %s %s", request.method, request.path)

    handler = error_handlers.get(type(exc)) or error_handlers.get(500)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        return response.with_status(500) if response.status == 200 else response

    if debug:
        return Response(f"Internal Server Error\n\n{type(exc).__name__}: {exc}", status=500)
    return Response("Internal Server Error", status=500)
