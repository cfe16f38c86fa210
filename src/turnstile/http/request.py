"""Immutable HTTP request.

Frozen metadata with async body access. Middleware never mutate a request;
they pass a modified copy to ``next`` (``request.with_user(user)``).
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping, MutableMapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, TypeAlias
from urllib.parse import parse_qsl

from turnstile.actors import ANONYMOUS
from turnstile.http.headers import Headers

# ASGI boundary types. Only Request.from_asgi, the ASGI handler and the app
# entry point see these; everything past them works with Request and Response.
Scope: TypeAlias = MutableMapping[str, Any]
Message: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[Message]]
Send: TypeAlias = Callable[[Message], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``user`` is the actor the request is made on behalf of. It is
    ``ANONYMOUS`` until an authentication middleware resolves someone.
    """

    method: str
    path: str
    headers: Headers
    query: Mapping[str, str]
    query_string: str
    path_params: dict[str, str]
    http_version: str
    client: tuple[str, int] | None
    cookies: Mapping[str, str]

    _receive: Receive
    user: Any = ANONYMOUS

    # Body cache; the dict is shared by every copy made with replace()
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Path plus query string."""
        if self.query_string:
            return f"{self.path}?{self.query_string}"
        return self.path

    @property
    def is_api(self) -> bool:
        """True when the client looks like an API client rather than a browser.

        A request carrying ``Authorization``, or whose ``Accept`` asks for
        JSON without HTML, is treated as an API request.
        """
        if self.headers.get("authorization"):
            return True
        accept = self.headers.get("accept", "") or ""
        return "application/json" in accept and "text/html" not in accept

    def with_user(self, user: Any) -> Request:
        """Return a copy of this request acting on behalf of *user*."""
        return replace(self, user=user)

    def with_path_params(self, path_params: dict[str, str]) -> Request:
        return replace(self, path_params=path_params)

    # -- Body --

    async def body(self) -> bytes:
        """Read the full body. The ASGI stream is consumed once, then cached."""
        if "body" not in self._cache:
            self._cache["body"] = b"".join([chunk async for chunk in self.stream()])
        return self._cache["body"]

    async def stream(self) -> AsyncGenerator[bytes]:
        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        return json.loads(await self.body())

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        """Build a Request from an ASGI HTTP scope."""
        headers = Headers(tuple(scope.get("headers", ())))
        client = scope.get("client")
        query_string = scope.get("query_string", b"").decode("latin-1")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=headers,
            query=_first_values(parse_qsl(query_string, keep_blank_values=True)),
            query_string=query_string,
            path_params={},
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
            cookies=_first_values(_cookie_pairs(headers.get("cookie") or "")),
            _receive=receive,
        )


def _first_values(pairs: list[tuple[str, str]]) -> Mapping[str, str]:
    """Read-only mapping keeping the first value of each repeated key."""
    values: dict[str, str] = {}
    for key, value in pairs:
        values.setdefault(key, value)
    return MappingProxyType(values)


def _cookie_pairs(header: str) -> list[tuple[str, str]]:
    pairs = []
    for item in header.split(";"):
        name, sep, value = item.strip().partition("=")
        if sep and name.strip():
            pairs.append((name.strip(), value.strip()))
    return pairs
