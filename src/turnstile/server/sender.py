"""ASGI response sending — one ``http.response.start`` plus one body message."""

from turnstile.http.request import Send
from turnstile.http.response import Response


def _body_allowed(status: int, method: str) -> bool:
    # 1xx, 204, 304 and HEAD responses carry no body
    return method != "HEAD" and not (100 <= status < 200 or status in {204, 304})


async def send_response(response: Response, send: Send, *, method: str = "GET") -> None:
    """Translate a Response into ASGI ``send()`` calls."""
    body = response.body_bytes if _body_allowed(response.status, method) else b""

    raw_headers: list[tuple[bytes, bytes]] = [
        (b"content-type", response.content_type.encode("latin-1")),
    ]
    raw_headers.extend(
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
    )
    raw_headers.extend(
        (b"set-cookie", cookie.header_value().encode("latin-1"))
        for cookie in response.cookies
    )
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send({"type": "http.response.start", "status": response.status, "headers": raw_headers})
    await send({"type": "http.response.body", "body": body})
