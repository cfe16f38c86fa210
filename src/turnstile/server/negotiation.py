"""Return-value negotiation — maps handler results to Response objects.

isinstance-based dispatch, fully predictable:

1. ``Response``            -> pass through
2. ``Redirect``            -> status + ``Location`` header
3. ``str``                 -> 200, text/html
4. ``bytes``               -> 200, application/octet-stream
5. ``dict`` / ``list``     -> 200, application/json
6. ``None``                -> 204, empty body
7. ``(value, int)``        -> negotiate value, override status
8. ``(value, int, dict)``  -> negotiate value, override status, add headers
"""

from typing import Any

from turnstile.http.response import Redirect, Response


def negotiate(value: Any) -> Response:
    """Convert a route handler's return value to a Response."""
    match value:
        case Response():
            return value
        case Redirect():
            return (
                Response(status=value.status)
                .with_header("Location", value.url)
                .with_headers(dict(value.headers))
            )
        case str():
            return Response(value, content_type="text/html; charset=utf-8")
        case bytes():
            return Response(value, content_type="application/octet-stream")
        case dict() | list():
            return Response.json(value)
        case None:
            return Response(status=204)
        case (inner, int() as status):
            return negotiate(inner).with_status(status)
        case (inner, int() as status, dict() as headers):
            return negotiate(inner).with_status(status).with_headers(headers)
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return str, bytes, dict, list, None, Response, or Redirect."
            )
            raise TypeError(msg)
