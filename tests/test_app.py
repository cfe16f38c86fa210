"""Tests for turnstile.app — registration, compilation, and ASGI entry."""

from typing import Any

import pytest

from turnstile.app import App
from turnstile.config import AppConfig
from turnstile.errors import ConfigurationError, DuplicateNameError, NotFound, UnknownHandlerError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.testing import TestClient


def _recorder(label: str, log: list[str]):
    async def mw(request, next):
        log.append(label)
        return await next(request)

    return mw


class TestAppRegistration:
    def test_route_decorator(self) -> None:
        app = App()

        @app.route("/")
        def index():
            return "hello"

        assert len(app._pending_routes) == 1
        assert app._pending_routes[0].path == "/"

    def test_route_keeps_middleware_references(self) -> None:
        app = App()

        @app.route("/admin", middleware=["auth", "role:admin"])
        def admin():
            return "admin"

        assert app._pending_routes[0].middleware == ("auth", "role:admin")

    def test_malformed_reference_rejected_at_declaration(self) -> None:
        app = App()
        with pytest.raises(ConfigurationError, match="has no name"):
            app.route("/", middleware=[":admin"])

    def test_duplicate_middleware_name(self) -> None:
        app = App()
        app.middleware("auth", _recorder("a", []))
        with pytest.raises(DuplicateNameError):
            app.middleware("auth", _recorder("b", []))

    def test_global_name_defaults_to_function_name(self) -> None:
        app = App()

        async def timing(request, next):
            return await next(request)

        app.add_middleware(timing)
        assert "timing" in app.registry

    def test_middleware_decorator_form(self) -> None:
        app = App()

        @app.middleware("json-only")
        async def json_only(request, next):
            return await next(request)

        assert app.registry.resolve("json-only") is json_only

    def test_error_decorator(self) -> None:
        app = App()

        @app.error(404)
        def not_found():
            return "Not found"

        assert 404 in app._error_handlers


class TestAppFreeze:
    def test_freeze_compiles_routes_and_pipelines(self) -> None:
        app = App()
        app.middleware("auth", _recorder("auth", []))

        @app.route("/", middleware=["auth"])
        def index():
            return "hello"

        app._ensure_frozen()
        assert app._frozen is True
        assert app.routes[0].pipeline.references == ("auth",)
        assert app.registry.frozen

    def test_unknown_reference_fails_compilation(self) -> None:
        app = App()

        @app.route("/admin", middleware=["role:admin"])
        def admin():
            return "admin"

        with pytest.raises(UnknownHandlerError, match="'role'"):
            app._ensure_frozen()
        assert app._frozen is False

    async def test_unknown_reference_fails_before_first_request(self) -> None:
        app = App()

        @app.route("/", middleware=["missing"])
        def index():
            return "hello"

        with pytest.raises(UnknownHandlerError):
            async with TestClient(app):
                pass

    def test_middleware_registered_after_route(self) -> None:
        app = App()

        @app.route("/", middleware=["late"])
        def index():
            return "hello"

        app.middleware("late", _recorder("late", []))
        app._ensure_frozen()
        assert app.routes[0].pipeline.references == ("late",)

    def test_route_referencing_global_middleware_fails(self) -> None:
        log: list[str] = []
        app = App()
        app.add_middleware(_recorder("session", log), name="session")

        @app.route("/", middleware=["session"])
        def index():
            return "hello"

        with pytest.raises(ConfigurationError, match="already runs on every request"):
            app._ensure_frozen()
        assert app._frozen is False

    def test_cannot_add_routes_after_freeze(self) -> None:
        app = App()
        app._ensure_frozen()

        with pytest.raises(RuntimeError, match="Cannot modify"):

            @app.route("/")
            def index():
                return "hello"

    def test_cannot_register_middleware_after_freeze(self) -> None:
        app = App()
        app._ensure_frozen()
        with pytest.raises(RuntimeError, match="Cannot modify"):
            app.middleware("auth", _recorder("auth", []))
        with pytest.raises(RuntimeError, match="Cannot modify"):
            app.add_middleware(_recorder("g", []), name="g")

    def test_double_freeze_is_safe(self) -> None:
        app = App()
        app._ensure_frozen()
        app._ensure_frozen()
        assert app._frozen is True

    def test_default_methods_from_config(self) -> None:
        app = App(AppConfig(default_methods=("GET", "POST")))

        @app.route("/")
        def index():
            return "hello"

        assert app.routes[0].methods == frozenset({"GET", "POST"})


class TestPipelines:
    async def test_global_then_route_middleware_in_order(self) -> None:
        log: list[str] = []
        app = App()
        app.add_middleware(_recorder("g1", log), name="g1")
        app.add_middleware(_recorder("g2", log), name="g2")
        app.middleware("r1", _recorder("r1", log))
        app.middleware("r2", _recorder("r2", log))

        @app.route("/", middleware=["r2", "r1"])
        def index():
            log.append("handler")
            return "ok"

        async with TestClient(app) as client:
            response = await client.get("/")

        assert response.status == 200
        assert log == ["g1", "g2", "r2", "r1", "handler"]

    async def test_route_middleware_only_on_referencing_routes(self) -> None:
        log: list[str] = []
        app = App()
        app.middleware("audit", _recorder("audit", log))

        @app.route("/a", middleware=["audit"])
        def a():
            return "a"

        @app.route("/b")
        def b():
            return "b"

        async with TestClient(app) as client:
            await client.get("/b")
            assert log == []
            await client.get("/a")
            assert log == ["audit"]

    async def test_global_middleware_sees_not_found(self) -> None:
        app = App()

        async def stamp(request, next):
            try:
                return await next(request)
            except NotFound:
                return Response("custom 404", status=404).with_header("X-Stamped", "1")

        app.add_middleware(stamp)
        async with TestClient(app) as client:
            response = await client.get("/nowhere")
        assert response.status == 404
        assert response.header("x-stamped") == "1"

    async def test_route_middleware_sees_path_params(self) -> None:
        seen: dict[str, str] = {}
        app = App()

        async def capture(request, next):
            seen.update(request.path_params)
            return await next(request)

        app.middleware("capture", capture)

        @app.route("/posts/{id:int}", middleware=["capture"])
        def post(id: int):
            return f"post {id + 1}"

        async with TestClient(app) as client:
            response = await client.get("/posts/41")
        assert response.text == "post 42"
        assert seen == {"id": "41"}

    async def test_short_circuit_skips_handler(self) -> None:
        called: list[str] = []
        app = App()

        async def closed(request, next):
            return Response("maintenance", status=503)

        app.middleware("closed", closed)

        @app.route("/", middleware=["closed"])
        def index():
            called.append("handler")
            return "ok"

        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 503
        assert called == []

    async def test_parameterized_middleware_receives_params(self) -> None:
        app = App()

        async def tag(request, next, *values):
            response = await next(request)
            return response.with_header("X-Tags", "|".join(values))

        app.middleware("tag", tag)

        @app.route("/", middleware=["tag:a,b"])
        def index():
            return "ok"

        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.header("x-tags") == "a|b"

    async def test_middleware_group_reference(self) -> None:
        log: list[str] = []
        app = App()
        app.middleware("a", _recorder("a", log))
        app.middleware("b", _recorder("b", log))
        app.middleware_group("web", ["a", "b"])

        @app.route("/", middleware=["web"])
        def index():
            return "ok"

        async with TestClient(app) as client:
            await client.get("/")
        assert log == ["a", "b"]

    async def test_exclude_on_route(self) -> None:
        log: list[str] = []
        app = App()
        app.middleware("a", _recorder("a", log))
        app.middleware("b", _recorder("b", log))
        app.middleware_group("web", ["a", "b"])

        @app.route("/", middleware=["web"], exclude=["a"])
        def index():
            return "ok"

        async with TestClient(app) as client:
            await client.get("/")
        assert log == ["b"]


class TestRequestHandling:
    async def test_handler_receives_request(self) -> None:
        app = App()

        @app.route("/echo", methods=["POST"])
        async def echo(request: Request):
            data = await request.json()
            return {"got": data["value"], "page": request.query.get("page")}

        async with TestClient(app) as client:
            response = await client.post("/echo?page=2", json={"value": 3})
        assert response.status == 200
        assert response.text == '{"got": 3, "page": "2"}'

    async def test_method_not_allowed(self) -> None:
        app = App()

        @app.route("/only-get")
        def only_get():
            return "ok"

        async with TestClient(app) as client:
            response = await client.post("/only-get")
        assert response.status == 405
        assert response.header("allow") == "GET"

    async def test_error_handler_for_status(self) -> None:
        app = App()

        @app.error(404)
        def missing(request: Request):
            return f"nothing at {request.path}"

        async with TestClient(app) as client:
            response = await client.get("/gone")
        assert response.status == 404
        assert response.text == "nothing at /gone"

    async def test_unhandled_exception_is_500(self) -> None:
        app = App()

        @app.route("/boom")
        def boom():
            raise ValueError("kaboom")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert response.text == "Internal Server Error"

    async def test_debug_includes_exception(self) -> None:
        app = App(AppConfig(debug=True))

        @app.route("/boom")
        def boom():
            raise ValueError("kaboom")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert "ValueError: kaboom" in response.text

    async def test_head_falls_back_to_get_without_body(self) -> None:
        app = App()

        @app.route("/")
        def index():
            return "hello"

        async with TestClient(app) as client:
            response = await client.request("HEAD", "/")
        assert response.status == 200
        assert response.body == b""

    def test_url_for(self) -> None:
        app = App()

        @app.route("/users/{id:int}", name="user")
        def user(id: int):
            return str(id)

        assert app.url_for("user", id=5) == "/users/5"


async def _run_lifespan(app: App, messages: list[str]) -> list[dict[str, Any]]:
    incoming = [{"type": m} for m in messages]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return incoming.pop(0)

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    return sent


class TestLifespan:
    async def test_startup_and_shutdown_hooks(self) -> None:
        events: list[str] = []
        app = App()

        @app.on_startup
        async def start():
            events.append("start")

        @app.on_shutdown
        def stop():
            events.append("stop")

        sent = await _run_lifespan(app, ["lifespan.startup", "lifespan.shutdown"])
        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]
        assert events == ["start", "stop"]

    async def test_misconfiguration_fails_startup(self) -> None:
        app = App()

        @app.route("/", middleware=["missing"])
        def index():
            return "hello"

        sent = await _run_lifespan(app, ["lifespan.startup"])
        assert sent[0]["type"] == "lifespan.startup.failed"
        assert "missing" in sent[0]["message"]
