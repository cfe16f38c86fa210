"""ASGI handler — runs one HTTP request through both pipeline layers.

The only component besides the test client that touches raw ASGI. Per
request:

1. build a typed ``Request`` from the scope;
2. run the **global** pipeline, whose innermost step matches the route;
3. run the matched route's **pipeline**, whose innermost step calls the
   route handler and negotiates its return value;
4. send the resulting ``Response``.

Routing happens inside the global pipeline, so global middleware see
404s and 405s too. Route middleware run after matching and see path
params.
"""

import inspect
from collections.abc import Callable
from typing import Any

from turnstile.errors import HTTPError
from turnstile.http.request import Receive, Request, Scope, Send
from turnstile.http.response import Response
from turnstile.middleware.pipeline import Pipeline, invoke
from turnstile.routing.router import Router
from turnstile.server.errors import ErrorHandlers, handle_http_error, handle_internal_error
from turnstile.server.negotiation import negotiate
from turnstile.server.sender import send_response


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    middleware: Pipeline,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)

    async def dispatch(req: Request) -> Response:
        match = router.match(req.method, req.path)
        handler = match.route.handler

        async def endpoint(routed: Request) -> Response:
            return await _invoke_handler(handler, routed)

        return await match.route.pipeline.run(req.with_path_params(match.path_params), endpoint)

    try:
        response = await middleware.run(request, dispatch)
    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers, debug)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)

    await send_response(response, send, method=request.method)


async def _invoke_handler(handler: Callable[..., Any], request: Request) -> Response:
    """Call the route handler with arguments built from its signature."""
    result = await invoke(handler, **_build_handler_kwargs(handler, request))
    return negotiate(result)


def _build_handler_kwargs(handler: Callable[..., Any], request: Request) -> dict[str, Any]:
    """Inspect the handler signature and build its keyword arguments.

    - a parameter named ``request`` or annotated ``Request`` gets the request
      (as the route pipeline left it, so ``request.user`` is resolved);
    - a parameter named after a path param gets that value, converted with
      its annotation when it has one.
    """
    kwargs: dict[str, Any] = {}
    for name, param in inspect.signature(handler, eval_str=True).parameters.items():
        if name == "request" or param.annotation is Request:
            kwargs[name] = request
        elif name in request.path_params:
            value = request.path_params[name]
            if param.annotation is not inspect.Parameter.empty:
                try:
                    kwargs[name] = param.annotation(value)
                except (ValueError, TypeError):
                    kwargs[name] = value
            else:
                kwargs[name] = value
    return kwargs
