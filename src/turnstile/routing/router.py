"""Trie-based router.

Routes are added during compilation and matched per request in
O(path depth). Static segments win over parameters, parameters over
catch-alls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import quote

from turnstile.errors import ConfigurationError, MethodNotAllowed, NotFound
from turnstile.routing.route import PathSegment, Route, RouteMatch

_FLASK_STYLE = re.compile(r"<[^>]+>")

# converter name -> segment regex
CONVERTERS: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"\d+",
    "float": r"\d+(?:\.\d+)?",
    "path": r".+",
}


def parse_path(path: str) -> list[PathSegment]:
    """Split a route path into segments.

    ``"/users/{id:int}"`` -> ``[PathSegment("users"), PathSegment("{id:int}", True, "id", "int")]``

    Raises ``ConfigurationError`` for ``<param>`` placeholders, unknown
    converters, and catch-alls that are not the last segment.
    """
    if _FLASK_STYLE.search(path):
        msg = f"Route path {path!r} uses <param> placeholders; use {{param}} instead."
        raise ConfigurationError(msg)

    parts = [p for p in path.strip("/").split("/") if p]
    segments: list[PathSegment] = []
    for index, part in enumerate(parts):
        if not (part.startswith("{") and part.endswith("}")):
            segments.append(PathSegment(part))
            continue
        name, _, param_type = part[1:-1].partition(":")
        param_type = param_type or "str"
        if param_type not in CONVERTERS:
            msg = f"Unknown path converter {param_type!r} in route {path!r}."
            raise ConfigurationError(msg)
        if param_type == "path" and index != len(parts) - 1:
            msg = f"Catch-all parameter {part!r} must be the last segment of {path!r}."
            raise ConfigurationError(msg)
        segments.append(PathSegment(part, True, name, param_type))
    return segments


@dataclass(slots=True)
class _Node:
    """A trie node. Only mutated while routes are added."""

    static: dict[str, _Node] = field(default_factory=dict)
    param: _ParamEdge | None = None
    catch_all: _ParamEdge | None = None
    routes: dict[str, Route] = field(default_factory=dict)


@dataclass(slots=True)
class _ParamEdge:
    name: str
    converter: str
    pattern: re.Pattern[str]
    node: _Node


class Router:
    """Compiled router.

    Usage::

        router = Router()
        router.add(Route("/users/{id:int}", handler, frozenset({"GET"})))
        router.compile()
        match = router.match("GET", "/users/42")
    """

    __slots__ = ("_compiled", "_names", "_root", "_routes")

    def __init__(self) -> None:
        self._root = _Node()
        self._routes: list[Route] = []
        self._names: dict[str, Route] = {}
        self._compiled = False

    def add(self, route: Route) -> None:
        """Add *route*. Must be called before ``compile()``."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)
        if route.name is not None:
            if route.name in self._names:
                msg = f"Route name {route.name!r} is used by more than one route."
                raise ConfigurationError(msg)
            self._names[route.name] = route

        node = self._root
        for seg in parse_path(route.path):
            if not seg.is_param:
                node = node.static.setdefault(seg.value, _Node())
                continue
            pattern = re.compile(f"^{CONVERTERS[seg.param_type]}$")
            if seg.param_type == "path":
                if node.catch_all is None:
                    node.catch_all = _ParamEdge(seg.param_name or "path", "path", pattern, _Node())
                node = node.catch_all.node
            else:
                if node.param is None:
                    node.param = _ParamEdge(seg.param_name or "", seg.param_type, pattern, _Node())
                elif node.param.name != seg.param_name:
                    msg = (
                        f"Route {route.path!r} names parameter {seg.param_name!r} where "
                        f"another route already uses {node.param.name!r}."
                    )
                    raise ConfigurationError(msg)
                elif node.param.converter != seg.param_type:
                    # one param edge per node: its converter decides every match
                    msg = (
                        f"Route {route.path!r} declares {{{seg.param_name}:{seg.param_type}}} "
                        f"where another route already uses {{{seg.param_name}:{node.param.converter}}}."
                    )
                    raise ConfigurationError(msg)
                node = node.param.node

        for method in route.methods:
            if method in node.routes:
                msg = f"Duplicate route: {method} {route.path!r}"
                raise ConfigurationError(msg)
            node.routes[method] = route
        self._routes.append(route)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True

    @property
    def routes(self) -> list[Route]:
        """All routes, in registration order."""
        return list(self._routes)

    def match(self, method: str, path: str) -> RouteMatch:
        """Match *method* and *path*.

        Raises ``NotFound`` when no route matches the path and
        ``MethodNotAllowed`` when the path matches for other methods only.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        found = self._walk(self._root, parts, 0, {})
        if found is None:
            raise NotFound(f"No route matches {method} {path!r}")

        node, params = found
        route = node.routes.get(method)
        if route is None and method == "HEAD":
            route = node.routes.get("GET")
        if route is None:
            raise MethodNotAllowed(frozenset(node.routes))
        return RouteMatch(route=route, path_params=params)

    def _walk(
        self,
        node: _Node,
        parts: list[str],
        index: int,
        params: dict[str, str],
    ) -> tuple[_Node, dict[str, str]] | None:
        if index == len(parts):
            return (node, params) if node.routes else None

        part = parts[index]
        child = node.static.get(part)
        if child is not None:
            found = self._walk(child, parts, index + 1, params)
            if found is not None:
                return found

        if node.param is not None and node.param.pattern.match(part):
            found = self._walk(
                node.param.node, parts, index + 1, {**params, node.param.name: part}
            )
            if found is not None:
                return found

        if node.catch_all is not None and node.catch_all.node.routes:
            rest = "/".join(parts[index:])
            return node.catch_all.node, {**params, node.catch_all.name: rest}

        return None

    def url_for(self, name: str, **params: object) -> str:
        """Build the path of the route called *name*.

        Raises ``KeyError`` for an unknown name or a missing parameter.
        """
        route = self._names.get(name)
        if route is None:
            raise KeyError(f"No route named {name!r}")
        parts: list[str] = []
        for seg in parse_path(route.path):
            if not seg.is_param:
                parts.append(seg.value)
                continue
            if seg.param_name not in params:
                raise KeyError(f"Route {name!r} needs parameter {seg.param_name!r}")
            safe = "/" if seg.param_type == "path" else ""
            parts.append(quote(str(params[seg.param_name]), safe=safe))
        return "/" + "/".join(parts)
