"""``turnstile routes`` — list routes with their resolved pipelines.

Loading the app compiles it, which resolves every middleware reference.
The command therefore doubles as a configuration check: an unknown,
duplicate or misplaced middleware name is reported and the command exits
with status 1.
"""

import argparse
import importlib
import sys

from turnstile.app import App
from turnstile.errors import ConfigurationError


def load_app(import_string: str) -> App:
    """Import ``"module[:attribute]"`` and compile the App it names.

    The attribute defaults to ``app``. Every way this can fail (a missing
    module or attribute, an object that is not an App, a pipeline that does
    not resolve) surfaces as ``ConfigurationError``.
    """
    module_path, _, attr_name = import_string.partition(":")
    try:
        module = importlib.import_module(module_path)
        app = getattr(module, attr_name or "app")
    except (ImportError, AttributeError) as exc:
        msg = f"Cannot load {import_string!r}: {exc}"
        raise ConfigurationError(msg) from exc

    if not isinstance(app, App):
        msg = f"{import_string!r} is a {type(app).__name__}, not a turnstile.App."
        raise ConfigurationError(msg)

    app._ensure_frozen()
    return app


def run_routes(args: argparse.Namespace) -> None:
    """Print METHOD, PATH, HANDLER and MIDDLEWARE for every route.

    The MIDDLEWARE column lists the global middleware followed by the
    route's own pipeline, in the order a request passes through them.
    """
    try:
        app = load_app(args.app)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    routes = app.routes
    if not routes:
        print("No routes registered.")
        return

    global_refs = app.global_middleware.references
    rows: list[tuple[str, str, str, str]] = []
    for route in routes:
        handler_name = getattr(route.handler, "__name__", str(route.handler))
        if route.name:
            handler_name = f"{handler_name} ({route.name})"
        pipeline = " -> ".join((*global_refs, *route.pipeline.references)) or "-"
        rows.append((", ".join(sorted(route.methods)), route.path, handler_name, pipeline))

    headers = ("METHOD", "PATH", "HANDLER", "MIDDLEWARE")
    widths = [max(len(headers[i]), *(len(r[i]) for r in rows)) for i in range(3)]

    fmt = f"{{:<{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    print(fmt.format(*headers))
    sep_len = sum(widths) + 6 + max(len(r[3]) for r in rows)
    print("-" * min(sep_len, 100))
    for row in rows:
        print(fmt.format(*row))
