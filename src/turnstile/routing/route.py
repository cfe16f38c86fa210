"""Route and RouteMatch frozen dataclasses."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from turnstile.middleware.pipeline import Pipeline


@dataclass(frozen=True, slots=True)
class PathSegment:
    """One parsed segment of a route path.

    Static ``/users`` has ``is_param=False``; ``/{id:int}`` has
    ``param_name="id"`` and ``param_type="int"``.
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"


@dataclass(frozen=True, slots=True)
class Route:
    """A compiled route.

    ``middleware`` keeps the references as declared (group references
    first, then the route's own); ``pipeline`` is what they resolved to.
    Global middleware are not part of either: they wrap every request.
    """

    path: str
    handler: Callable[..., Any]
    methods: frozenset[str]
    name: str | None = None
    middleware: tuple[str, ...] = ()
    exclude: frozenset[str] = frozenset()
    pipeline: Pipeline = field(default_factory=Pipeline)


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    path_params: dict[str, str]
