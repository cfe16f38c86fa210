"""turnstile CLI — inspect an application's compiled routes.

Entry point registered as ``turnstile`` in ``pyproject.toml``::

    [project.scripts]
    turnstile = "turnstile.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``turnstile`` command."""
    parser = argparse.ArgumentParser(
        prog="turnstile",
        description="turnstile: request-scoped middleware pipelines.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- turnstile routes -------------------------------------------------
    routes_parser = subparsers.add_parser(
        "routes", help="List routes and their middleware pipelines"
    )
    routes_parser.add_argument(
        "app",
        help="Import string (e.g. myapp:app)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "routes":
        from turnstile.cli._routes import run_routes

        run_routes(args)
