"""Application configuration.

AppConfig is a frozen dataclass, immutable after creation. Middleware keep
their own config dataclasses next to the middleware (``SessionConfig``,
``AuthConfig``, ``RoleConfig``).
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    Attributes:
        debug: Include error details in default error responses.
        default_methods: HTTP methods used when a route declares none.
    """

    debug: bool = False
    default_methods: tuple[str, ...] = ("GET",)
