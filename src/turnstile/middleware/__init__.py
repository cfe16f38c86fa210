"""Middleware — named, parameterized request handlers.

A middleware is any callable matching:
    async def mw(request: Request, next: Next, *params: str) -> Response

Built-in middleware:
    AuthMiddleware -- Resolve the request's actor (session + token), global
    Authenticate -- Reject anonymous requests (401 / login redirect)
    RoleMiddleware -- ``role:<name>[,<name>...]`` access check
    SessionMiddleware -- Signed cookie sessions (itsdangerous)
"""

from turnstile.middleware.auth import AuthConfig, Authenticate, AuthMiddleware
from turnstile.middleware.pipeline import BoundMiddleware, MiddlewareRef, Pipeline
from turnstile.middleware.protocol import Middleware, Next
from turnstile.middleware.registry import MiddlewareRegistry
from turnstile.middleware.roles import RoleConfig, RoleMiddleware
from turnstile.middleware.sessions import SessionConfig, SessionMiddleware

__all__ = [
    "AuthConfig",
    "AuthMiddleware",
    "Authenticate",
    "BoundMiddleware",
    "Middleware",
    "MiddlewareRef",
    "MiddlewareRegistry",
    "Next",
    "Pipeline",
    "RoleConfig",
    "RoleMiddleware",
    "SessionConfig",
    "SessionMiddleware",
]
