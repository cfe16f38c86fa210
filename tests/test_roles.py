"""Tests for turnstile.middleware.roles — the ``role:<name>`` access check."""

import json
import logging
from dataclasses import dataclass, field

import pytest

from turnstile.actors import ANONYMOUS
from turnstile.app import App
from turnstile.errors import ConfigurationError
from turnstile.http.request import Request
from turnstile.http.response import Response
from turnstile.middleware.roles import RoleConfig, RoleMiddleware
from turnstile.security.audit import SecurityEvent, set_security_event_sink
from turnstile.testing import TestClient


@dataclass(frozen=True, slots=True)
class Member:
    id: str
    role: str | None = None
    is_authenticated: bool = True


@dataclass(frozen=True, slots=True)
class Role:
    name: str


@dataclass(frozen=True, slots=True)
class MultiRoleMember:
    id: str
    roles: tuple = ()
    role: str | None = None
    is_authenticated: bool = True


async def _receive() -> dict:
    return {"type": "http.request", "body": b"", "more_body": False}


def _request(user=ANONYMOUS, headers: list | None = None) -> Request:
    scope = {"type": "http", "method": "GET", "path": "/admin", "headers": headers or []}
    return Request.from_asgi(scope, _receive).with_user(user)


class _Continuation:
    """Records calls and returns a fixed response."""

    def __init__(self) -> None:
        self.calls: list[Request] = []
        self.response = Response("granted")

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request)
        return self.response


class TestRoleMiddlewareUnit:
    async def test_matching_role_calls_next_once_and_returns_its_response(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(Member("1", "admin")), nxt, "admin")

        assert len(nxt.calls) == 1
        assert response is nxt.response

    async def test_request_passed_through_unchanged(self) -> None:
        nxt = _Continuation()
        request = _request(Member("1", "admin"))
        await RoleMiddleware()(request, nxt, "admin")
        assert nxt.calls[0] is request

    async def test_mismatched_role_is_forbidden(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(Member("1", "editor")), nxt, "admin")

        assert response.status == 403
        assert response.text == "Forbidden"
        assert nxt.calls == []

    async def test_no_actor_is_denied_without_calling_next(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(ANONYMOUS), nxt, "admin")

        assert response.status == 403
        assert response.text == "Unauthenticated"
        assert nxt.calls == []

    async def test_none_user_is_treated_as_no_actor(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(None), nxt, "admin")
        assert response.status == 403
        assert nxt.calls == []

    async def test_empty_role_never_matches(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(Member("1", "")), nxt, "admin")
        assert response.status == 403
        assert nxt.calls == []

    async def test_role_comparison_is_exact(self) -> None:
        nxt = _Continuation()
        response = await RoleMiddleware()(_request(Member("1", "Admin")), nxt, "admin")
        assert response.status == 403

    async def test_any_of_several_bound_roles(self) -> None:
        mw = RoleMiddleware()
        editor = await mw(_request(Member("1", "editor")), _Continuation(), "admin", "editor")
        viewer = await mw(_request(Member("2", "viewer")), _Continuation(), "admin", "editor")
        assert editor.status == 200
        assert viewer.status == 403

    async def test_roles_collection(self) -> None:
        user = MultiRoleMember("1", roles=(Role("viewer"), "editor"))
        response = await RoleMiddleware()(_request(user), _Continuation(), "editor")
        assert response.status == 200

    async def test_roles_collection_wins_over_single_role(self) -> None:
        user = MultiRoleMember("1", roles=("viewer",), role="admin")
        response = await RoleMiddleware()(_request(user), _Continuation(), "admin")
        assert response.status == 403

    async def test_api_clients_get_json_denial(self) -> None:
        request = _request(Member("1", "editor"), headers=[(b"accept", b"application/json")])
        response = await RoleMiddleware()(request, _Continuation(), "admin")

        assert response.status == 403
        assert response.content_type.startswith("application/json")
        assert json.loads(response.text) == {"error": "Forbidden"}


class TestRoleConfig:
    async def test_sync_resolver(self) -> None:
        mw = RoleMiddleware(RoleConfig(resolver=lambda user: ["admin"]))
        response = await mw(_request(Member("1", None)), _Continuation(), "admin")
        assert response.status == 200

    async def test_async_resolver(self) -> None:
        async def lookup(user):
            return {"u1": "admin"}.get(user.id)

        mw = RoleMiddleware(RoleConfig(resolver=lookup))
        granted = await mw(_request(Member("u1")), _Continuation(), "admin")
        denied = await mw(_request(Member("u2")), _Continuation(), "admin")
        assert granted.status == 200
        assert denied.status == 403

    async def test_resolver_replaces_user_fields(self) -> None:
        mw = RoleMiddleware(RoleConfig(resolver=lambda user: None))
        response = await mw(_request(Member("1", "admin")), _Continuation(), "admin")
        assert response.status == 403

    async def test_custom_statuses_and_messages(self) -> None:
        config = RoleConfig(
            forbidden_status=404,
            forbidden_message="Not Found",
            unauthenticated_status=401,
            unauthenticated_message="Log in first",
        )
        mw = RoleMiddleware(config)
        forbidden = await mw(_request(Member("1", "editor")), _Continuation(), "admin")
        anonymous = await mw(_request(ANONYMOUS), _Continuation(), "admin")
        assert (forbidden.status, forbidden.text) == (404, "Not Found")
        assert (anonymous.status, anonymous.text) == (401, "Log in first")

    def test_validate_params_requires_a_role(self) -> None:
        with pytest.raises(ConfigurationError, match="at least one role"):
            RoleMiddleware().validate_params(())
        RoleMiddleware().validate_params(("admin",))


class TestRoleDenialReporting:
    async def test_denial_logged_as_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="turnstile.security"):
            await RoleMiddleware()(_request(Member("7", "editor")), _Continuation(), "admin")
        assert "User 7 denied GET /admin: needs role admin, has editor" in caplog.text

    async def test_denial_emits_audit_event(self) -> None:
        events: list[SecurityEvent] = []
        set_security_event_sink(events.append)
        try:
            await RoleMiddleware()(_request(Member("7", "editor")), _Continuation(), "admin")
            await RoleMiddleware()(_request(ANONYMOUS), _Continuation(), "admin")
        finally:
            set_security_event_sink(None)

        assert [e.name for e in events] == ["authz.role.denied", "auth.require.unauthenticated"]
        assert events[0].user_id == "7"
        assert events[0].details == {"required": ["admin"], "held": ["editor"]}
        assert events[0].path == "/admin"


@dataclass
class _Directory:
    users: dict[str, Member] = field(default_factory=dict)


def _role_app() -> App:
    directory = _Directory(
        {"t-admin": Member("1", "admin"), "t-editor": Member("2", "editor")}
    )
    app = App()

    async def bearer(request, next):
        token = request.headers.get("x-token")
        user = directory.users.get(token or "", ANONYMOUS)
        return await next(request.with_user(user))

    app.add_middleware(bearer, name="bearer")
    app.middleware("role", RoleMiddleware())

    @app.route("/admin", middleware=["role:admin"])
    def admin_panel():
        return "admin area"

    @app.route("/edit", middleware=["role:admin,editor"])
    def edit():
        return "editing"

    return app


class TestRoleMiddlewareInApp:
    async def test_admin_reaches_handler(self) -> None:
        async with TestClient(_role_app()) as client:
            response = await client.get("/admin", headers={"X-Token": "t-admin"})
        assert response.status == 200
        assert response.text == "admin area"

    async def test_editor_denied_admin_area(self) -> None:
        async with TestClient(_role_app()) as client:
            response = await client.get("/admin", headers={"X-Token": "t-editor"})
        assert response.status == 403

    async def test_anonymous_denied(self) -> None:
        async with TestClient(_role_app()) as client:
            response = await client.get("/admin")
        assert response.status == 403
        assert response.text == "Unauthenticated"

    async def test_any_of_roles_on_route(self) -> None:
        async with TestClient(_role_app()) as client:
            editor = await client.get("/edit", headers={"X-Token": "t-editor"})
            admin = await client.get("/edit", headers={"X-Token": "t-admin"})
        assert editor.status == 200
        assert admin.status == 200

    async def test_denial_event_names_the_failing_reference(self) -> None:
        events: list[SecurityEvent] = []
        set_security_event_sink(events.append)
        try:
            async with TestClient(_role_app()) as client:
                await client.get("/admin", headers={"X-Token": "t-editor"})
                await client.get("/edit")
        finally:
            set_security_event_sink(None)

        assert [(e.name, e.middleware) for e in events] == [
            ("authz.role.denied", "role:admin"),
            ("auth.require.unauthenticated", "role:admin,editor"),
        ]
