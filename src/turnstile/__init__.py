"""turnstile — request-scoped middleware pipelines for Python web apps.

Named middleware are registered once and referenced by name from routes
and route groups. Each route compiles to a pipeline run strictly in
declaration order; any step may answer the request itself and stop the
chain. Parameterized references carry arguments: ``"role:admin"``.

Basic usage::

    from turnstile import App, RoleMiddleware

    app = App()
    app.middleware("role", RoleMiddleware())

    @app.route("/admin", middleware=["role:admin"])
    def admin():
        return "admin area"
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "Authenticate",
    "ConfigurationError",
    "DuplicateNameError",
    "HTTPError",
    "MethodNotAllowed",
    "Middleware",
    "MiddlewareRegistry",
    "Next",
    "NotFound",
    "Pipeline",
    "Redirect",
    "Request",
    "Response",
    "RoleConfig",
    "RoleMiddleware",
    "RouteGroup",
    "TurnstileError",
    "UnknownHandlerError",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import turnstile`` cheap while providing a flat top-level API.
    """
    if name == "App":
        from turnstile.app import App

        return App

    if name == "AppConfig":
        from turnstile.config import AppConfig

        return AppConfig

    if name == "Request":
        from turnstile.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from turnstile.http import response as _resp

        return getattr(_resp, name)

    if name in ("Middleware", "Next"):
        from turnstile.middleware import protocol as _mw

        return getattr(_mw, name)

    if name in ("Pipeline", "MiddlewareRegistry"):
        from turnstile import middleware as _middleware

        return getattr(_middleware, name)

    if name in ("Authenticate", "RoleConfig", "RoleMiddleware"):
        from turnstile import middleware as _middleware

        return getattr(_middleware, name)

    if name == "RouteGroup":
        from turnstile.routing.groups import RouteGroup

        return RouteGroup

    if name in (
        "ConfigurationError",
        "DuplicateNameError",
        "HTTPError",
        "MethodNotAllowed",
        "NotFound",
        "TurnstileError",
        "UnknownHandlerError",
    ):
        from turnstile import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
