"""
Dispatch tests run against every driver: direct dispatch and WSGI.
"""

import time

from pydantic import BaseModel

from routemachine import Response, Router, csrf_field
from tests.framework import HttpRequest, MultiDriverTestBase, only_drivers


class User(BaseModel):
    id: int
    name: str


class TestRouteMatching(MultiDriverTestBase):
    """Matching, method checks and handler result conversion."""

    def create_app(self) -> Router:
        router = Router()

        router.add_route("GET", r"/users/[id:(\d+)]", "callback", lambda id: f"user {id}")
        router.add_route("GET", "/users/new", "callback", lambda: "new user form")

        router.add_route("GET", "/items", "callback", lambda: "all items")
        router.add_route("POST", "/items", "callback", lambda: Response(201, "created"))

        router.add_route("GET", "/things/[id]", "callback", lambda id: f"thing {id}")
        router.add_route(["PUT", "DELETE"], r"/things/[id:(\d+)]", "callback", lambda id: f"changed {id}")

        router.add_route("*", "/ping", "callback", lambda request: f"pong {request.method.value}")
        router.add_route("GET", "/search", "callback", lambda request: request.query_params.get("q", ""))

        router.add_route("GET", "/empty", "callback", lambda: None)
        router.add_route("GET", "/json", "callback", lambda: {"items": [1, 2]})
        router.add_route("GET", "/model", "callback", lambda: User(id=1, name="Ada"))
        router.add_route("GET", "/bytes", "callback", lambda: b"\x00\x01")

        def boom():
            raise RuntimeError("handler bug")

        def needs_unknown(missing):
            return missing

        router.add_route("GET", "/boom", "callback", boom)
        router.add_route("GET", "/needs", "callback", needs_unknown)
        return router

    def test_constrained_parameter_binds_digits(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/users/42")
        assert api_client.expect_successful_retrieval(response) == "user 42"

    def test_constraint_rejection_falls_through_to_later_route(self, api):
        api_client, driver_name = api
        assert api_client.fetch("/users/new").get_text_body() == "new user form"

    def test_unregistered_path_is_404(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/users/abc")
        api_client.expect_not_found(response)
        assert response.get_text_body() == "404 Not Found"

    def test_method_not_allowed_lists_methods(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.delete("/items"))
        api_client.expect_method_not_allowed(response, ["GET", "POST"])
        assert response.get_text_body() == "405 Method Not Allowed"

    def test_allowed_methods_union_across_routes(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.patch("/things/5"))
        api_client.expect_method_not_allowed(response, ["DELETE", "GET", "PUT"])

    def test_method_selects_route(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.post("/items"))
        assert response.status_code == 201
        assert response.get_text_body() == "created"

    def test_any_method_route(self, api):
        api_client, driver_name = api
        for build in (api_client.get, api_client.put, api_client.options):
            response = api_client.execute(build("/ping"))
            assert response.status_code == 200
        assert api_client.execute(api_client.options("/ping")).get_text_body() == "pong OPTIONS"

    def test_query_string_is_ignored_for_matching(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.get("/search").with_query(q="router"))
        assert api_client.expect_successful_retrieval(response) == "router"

    def test_none_result_is_no_content(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/empty")
        api_client.expect_no_content(response)
        assert not response.has_header("Content-Length")

    def test_text_result(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/items")
        assert response.get_header("Content-Type") == "text/plain"
        assert response.get_header("Content-Length") == str(len("all items"))

    def test_dict_result_is_json(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/json")
        assert response.get_header("Content-Type") == "application/json"
        assert response.get_json_body() == {"items": [1, 2]}

    def test_model_result_is_json(self, api):
        api_client, driver_name = api
        assert api_client.fetch("/model").get_json_body() == {"id": 1, "name": "Ada"}

    def test_bytes_result(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/bytes")
        assert response.get_header("Content-Type") == "application/octet-stream"
        assert response.body == b"\x00\x01"

    def test_handler_exception_is_500(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/boom")
        assert response.status_code == 500
        assert response.get_text_body() == "500 Internal Server Error"

    def test_unresolvable_parameter_is_500(self, api):
        api_client, driver_name = api
        assert api_client.fetch("/needs").status_code == 500

    @only_drivers('wsgi')
    def test_unknown_method_is_not_implemented(self, api):
        api_client, driver_name = api
        response = api_client.execute(HttpRequest(method="BREW", path="/items"))
        assert response.status_code == 501


class TestGroupsAndMiddlewares(MultiDriverTestBase):
    """Prefixes and middleware chains seen from the outside."""

    def create_app(self) -> Router:
        router = Router()

        def require_token(request):
            if request.get_header("X-Token") != "secret":
                return Response(401)
            return None

        def tag(request):
            request.session["tagged"] = True

        router.add_middleware("auth", require_token)
        router.add_middleware("tag", tag)
        router.add_middleware("never", lambda: Response(403))
        router.add_middleware_group("api", ["auth", "tag"])

        def api_routes():
            def v1_routes():
                router.add_route("GET", "/me", "callback", lambda request: f"tagged={request.session.get('tagged')}")
            router.add_group([], v1_routes, prefix="/v1")

        router.add_group(["api"], api_routes, prefix="/api")
        router.add_route("GET", "/public", "callback", lambda: "public")
        return router

    def test_group_middleware_rejects(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/api/v1/me")
        assert response.status_code == 401
        assert response.get_text_body() == "401 Unauthorized"

    def test_group_middlewares_run_in_order(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.get("/api/v1/me").with_header("X-Token", "secret"))
        assert api_client.expect_successful_retrieval(response) == "tagged=True"

    def test_routes_outside_group_have_no_middlewares(self, api):
        api_client, driver_name = api
        assert api_client.expect_successful_retrieval(api_client.fetch("/public")) == "public"


class TestCustomErrorHandlers(MultiDriverTestBase):
    """Registered error handlers through every driver."""

    def create_app(self) -> Router:
        router = Router()
        router.add_route("GET", "/only-get", "callback", lambda: "ok")

        @router.handles_error(404)
        def not_found(request):
            return {"error": "not_found", "path": request.route_path}

        @router.handles_error(405)
        def not_allowed(allowed_methods):
            return f"try {' or '.join(allowed_methods)}"

        return router

    def test_custom_404(self, api):
        api_client, driver_name = api
        response = api_client.fetch("/missing")
        assert response.status_code == 404
        assert response.get_json_body() == {"error": "not_found", "path": "/missing"}

    def test_custom_405_keeps_allow_header(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.post("/only-get"))
        assert response.status_code == 405
        assert response.get_text_body() == "try GET"
        assert response.get_header("Allow") == "GET"


class TestCsrfProtection(MultiDriverTestBase):
    """The CSRF token lifecycle end to end."""

    def create_app(self) -> Router:
        router = Router({"csrfAllowedReferers": ["example.com"], "csrfTokenExpireTime": 600})

        def show_form(request):
            state, cookie = router.csrf.issue(request)
            response = Response(200, f"<form>{csrf_field(state.token)}</form>", content_type="text/html")
            response.set_cookie(cookie)
            return response

        router.add_route("GET", "/form", "callback", show_form)
        router.add_route("POST", "/submit", "callback", lambda: "accepted", csrf_protected=True)
        router.add_route("POST", "/open", "callback", lambda: "open")
        router.add_route("POST", "/broken", "callback", self._broken, csrf_protected=True)
        router.add_error_handler(436, lambda: "cookie mismatch")
        return router

    @staticmethod
    def _broken():
        raise RuntimeError("handler bug")

    @staticmethod
    def session(token="tok", expires_in=600):
        return {"csrf_token": token, "csrf_token_expiration": time.time() + expires_in}

    def test_valid_submission(self, api):
        api_client, driver_name = api
        session = self.session()
        response = api_client.submit_form("/submit", session, "tok", referer="https://example.com/form")

        assert api_client.expect_successful_retrieval(response) == "accepted"
        assert session["csrf_token"] != "tok"
        assert response.get_cookie("csrf_token") == session["csrf_token"]

    def test_invalid_token(self, api):
        api_client, driver_name = api
        session = self.session()
        response = api_client.submit_form("/submit", session, "forged", referer="https://example.com/form")

        api_client.expect_csrf_rejection(response, 434)
        assert response.get_text_body() == "434 CSRF Token Invalid"
        assert session["csrf_token"] == "tok"
        assert response.set_cookies == []

    def test_missing_token(self, api):
        api_client, driver_name = api
        response = api_client.submit_form("/submit", self.session(), None, referer="https://example.com/form")
        api_client.expect_csrf_rejection(response, 434)

    def test_expired_token(self, api):
        api_client, driver_name = api
        session = self.session(expires_in=-5)
        response = api_client.submit_form("/submit", session, "tok", referer="https://example.com/form")

        api_client.expect_csrf_rejection(response, 435)
        assert response.get_text_body() == "435 CSRF Token Expired"
        assert session["csrf_token"] != "tok"
        assert response.get_cookie("csrf_token") == session["csrf_token"]

    def test_cookie_mismatch_uses_custom_handler(self, api):
        api_client, driver_name = api
        session = self.session()
        response = api_client.submit_form(
            "/submit", session, "tok", cookie="stale", referer="https://example.com/form"
        )

        api_client.expect_csrf_rejection(response, 436)
        assert response.get_text_body() == "cookie mismatch"
        assert response.get_cookie("csrf_token") == session["csrf_token"]

    def test_referer_not_allowed(self, api):
        api_client, driver_name = api
        session = self.session()
        response = api_client.submit_form("/submit", session, "tok", referer="https://evil.test/form")

        api_client.expect_csrf_rejection(response, 437)
        assert response.get_text_body() == "437 CSRF Token Referer Invalid"
        assert session["csrf_token"] != "tok"

    def test_token_cannot_be_replayed(self, api):
        api_client, driver_name = api
        session = self.session()
        first = api_client.submit_form("/submit", session, "tok", referer="https://example.com/form")
        second = api_client.submit_form("/submit", session, "tok", referer="https://example.com/form")

        assert first.status_code == 200
        api_client.expect_csrf_rejection(second, 434)

    def test_form_then_submit(self, api):
        api_client, driver_name = api
        session = {}
        form = api_client.execute(api_client.get("/form").with_session(session))
        token = form.get_cookie("csrf_token")

        assert token == session["csrf_token"]
        assert csrf_field(token) in form.get_text_body()

        response = api_client.submit_form("/submit", session, token, referer="https://example.com/form")
        assert api_client.expect_successful_retrieval(response) == "accepted"

    def test_unprotected_route_skips_validation(self, api):
        api_client, driver_name = api
        response = api_client.execute(api_client.post("/open").with_session({}))
        assert api_client.expect_successful_retrieval(response) == "open"

    def test_rotation_cookie_survives_handler_failure(self, api):
        api_client, driver_name = api
        session = self.session()
        response = api_client.submit_form("/broken", session, "tok", referer="https://example.com/form")

        assert response.status_code == 500
        assert response.get_cookie("csrf_token") == session["csrf_token"]

    def test_set_cookie_attributes(self, api):
        api_client, driver_name = api
        response = api_client.submit_form("/submit", self.session(), "tok", referer="https://example.com/form")
        header = response.get_set_cookie_header("csrf_token")

        assert "HttpOnly" in header
        assert "Secure" in header
        assert "Path=/" in header
