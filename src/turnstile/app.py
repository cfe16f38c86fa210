"""turnstile application class.

Mutable during setup (routes, groups, middleware registration, error
handlers). Frozen at runtime when the app is first called, when lifespan
startup runs, or when the test client or CLI compile it.
"""

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, overload, TypeAlias

from turnstile.config import AppConfig
from turnstile.http.request import Receive, Scope, Send
from turnstile.middleware.pipeline import MiddlewareRef, Pipeline, invoke
from turnstile.middleware.protocol import Middleware
from turnstile.middleware.registry import MiddlewareRegistry, middleware_name
from turnstile.routing.groups import RouteGroup
from turnstile.routing.route import Route
from turnstile.routing.router import Router
from turnstile.server.handler import handle_request

Handler: TypeAlias = Callable[..., Any]
ErrorHandler: TypeAlias = Callable[..., Any]


@dataclass(slots=True)
class _PendingRoute:
    """A route waiting to be compiled."""

    path: str
    handler: Handler
    methods: list[str] | None
    name: str | None
    middleware: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


class App:
    """The turnstile application.

    Middleware come in two collections, both named:

    - ``add_middleware(mw, name=...)`` registers **global** middleware,
      run on every request in registration order;
    - ``middleware(name, mw)`` registers **route** middleware, run only
      where a route, route group, or middleware group references the name.

    Usage::

        app = App()
        app.add_middleware(SessionMiddleware(SessionConfig(secret_key="...")), name="session")
        app.add_middleware(AuthMiddleware(AuthConfig(load_user=load_user)), name="auth.resolve")
        app.middleware("auth", Authenticate())
        app.middleware("role", RoleMiddleware())

        @app.route("/admin", middleware=["auth", "role:admin"])
        def admin():
            return "admin area"

    Every reference is resolved when the app compiles. An unknown name
    raises ``UnknownHandlerError`` and the app never serves a request.

    Thread safety:
        Setup is single-threaded (decorators at import time). The freeze
        uses a Lock + double-check so exactly one thread compiles, even
        when several workers call ``__call__()`` on their first request.
    """

    __slots__ = (
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware",
        "_pending_routes",
        "_registry",
        "_router",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self._pending_routes: list[_PendingRoute] = []
        self._registry: MiddlewareRegistry = MiddlewareRegistry()
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set by _freeze()
        self._router: Router | None = None
        self._middleware: Pipeline = Pipeline()

    # -- Route registration --

    def route(
        self,
        path: str,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
        middleware: Sequence[str] = (),
        exclude: Sequence[str] = (),
    ) -> Callable[[Handler], Handler]:
        """Register a route handler via decorator.

        Args:
            path: URL path pattern. Use ``{param}`` / ``{param:int}``.
            methods: HTTP methods. Defaults to ``AppConfig.default_methods``.
            name: Optional route name for ``url_for()``.
            middleware: References run before the handler, in order
                (``"auth"``, ``"role:admin"``, a middleware group name).
            exclude: Names to drop from the inherited group middleware.
        """
        for reference in middleware:
            MiddlewareRef.parse(reference)

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            self._pending_routes.append(
                _PendingRoute(path, func, methods, name, tuple(middleware), tuple(exclude))
            )
            return func

        return decorator

    def group(
        self,
        prefix: str = "",
        *,
        middleware: Sequence[str] = (),
        name: str = "",
    ) -> RouteGroup:
        """Start a route group sharing *prefix*, *middleware*, and a name prefix."""
        self._check_not_frozen()
        return RouteGroup(self, prefix, middleware=middleware, name=name)

    # -- Middleware registration --

    def add_middleware(self, middleware: Middleware, *, name: str | None = None) -> None:
        """Add global middleware, run on every request.

        *name* defaults to the function or class name. Raises
        ``DuplicateNameError`` when the name is already registered.
        """
        self._check_not_frozen()
        self._registry.add_global(name or middleware_name(middleware), middleware)

    @overload
    def middleware(self, name: str) -> Callable[[Middleware], Middleware]: ...

    @overload
    def middleware(self, name: str, middleware: Middleware) -> Middleware: ...

    def middleware(self, name: str, middleware: Middleware | None = None) -> Any:
        """Register route middleware under *name*.

        Call directly or use as a decorator::

            app.middleware("role", RoleMiddleware())

            @app.middleware("json-only")
            async def json_only(request, next):
                ...

        Raises ``DuplicateNameError`` when *name* is already registered.
        """
        self._check_not_frozen()
        if middleware is not None:
            self._registry.register(name, middleware)
            return middleware

        def decorator(func: Middleware) -> Middleware:
            self._check_not_frozen()
            self._registry.register(name, func)
            return func

        return decorator

    def middleware_group(self, name: str, references: Sequence[str]) -> None:
        """Register *references* as a group referenced by *name*."""
        self._check_not_frozen()
        self._registry.register_group(name, references)

    @property
    def registry(self) -> MiddlewareRegistry:
        return self._registry

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a sync or async hook run at ASGI lifespan startup."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register a sync or async hook run at ASGI lifespan shutdown."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Introspection --

    @property
    def routes(self) -> list[Route]:
        """Compiled routes with their resolved pipelines. Compiles the app."""
        self._ensure_frozen()
        assert self._router is not None
        return self._router.routes

    @property
    def global_middleware(self) -> Pipeline:
        """The global pipeline. Compiles the app."""
        self._ensure_frozen()
        return self._middleware

    def url_for(self, name: str, **params: object) -> str:
        """Build the path of a named route. Compiles the app."""
        self._ensure_frozen()
        assert self._router is not None
        return self._router.url_for(name, **params)

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()
        assert self._router is not None

        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            debug=self.config.debug,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Compiles the app at startup, so a configuration error is reported
        as ``lifespan.startup.failed`` and the server refuses to start.
        """
        while True:
            message = await receive()

            if message["type"] == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    await self.startup()
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif message["type"] == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def startup(self) -> None:
        """Run startup hooks in registration order."""
        for hook in self._startup_hooks:
            await invoke(hook)

    async def shutdown(self) -> None:
        """Run shutdown hooks in registration order."""
        for hook in self._shutdown_hooks:
            await invoke(hook)

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Compile once, with double-checked locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile routes and pipelines into the frozen runtime state.

        MUST only be called while holding _freeze_lock. Raises
        ``UnknownHandlerError`` / ``ConfigurationError`` without freezing,
        so a misconfigured app keeps failing instead of serving.
        """
        registry = self._registry

        router = Router()
        for pending in self._pending_routes:
            methods = pending.methods or list(self.config.default_methods)
            router.add(
                Route(
                    path=pending.path,
                    handler=pending.handler,
                    methods=frozenset(m.upper() for m in methods),
                    name=pending.name,
                    middleware=pending.middleware,
                    exclude=frozenset(pending.exclude),
                    pipeline=registry.pipeline(pending.middleware, exclude=pending.exclude),
                )
            )
        router.compile()

        global_pipeline = registry.global_pipeline()
        registry.freeze()

        self._router = router
        self._middleware = global_pipeline
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes and middleware before the first request."
            )
            raise RuntimeError(msg)
