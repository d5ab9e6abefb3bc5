"""
Basic usage example for routemachine.

This example demonstrates:
- Route registration with constrained placeholders
- Route groups with a prefix and middlewares
- A CSRF protected form
- Custom error handlers
- Serving the router with wsgiref

Run it and open http://localhost:8000/users/1 or http://localhost:8000/contact.
"""

import logging
from wsgiref.simple_server import make_server

from pydantic import BaseModel
from routemachine import HTTPMethod, Request, Response, Router, WsgiDriver, csrf_field


class User(BaseModel):
    id: int
    name: str
    email: str


# In-memory data store for this example
users_db = {
    1: User(id=1, name="Alice", email="alice@example.com"),
    2: User(id=2, name="Bob", email="bob@example.com"),
}

# Sessions normally come from a session middleware in front of the WSGI app
sessions = {}


def create_router() -> Router:
    router = Router({"csrfAllowedReferers": ["localhost"], "csrfCookieSecure": False})

    @router.middleware("api_key")
    def require_api_key(request):
        if request.get_header("X-Api-Key") != "demo":
            return Response(401)
        return None

    @router.get(r"/users/[id:(\d+)]", name="user")
    def show_user(id):
        user = users_db.get(int(id))
        if user is None:
            return Response(404)
        return user

    with router.group(["api_key"], prefix="/admin"):

        @router.get("/users")
        def list_users():
            return [user.model_dump() for user in users_db.values()]

    @router.get("/contact")
    def contact_form(request):
        state, cookie = router.csrf.issue(request)
        response = Response(
            200,
            f"<form method='post'>{csrf_field(state.token)}<button>Send</button></form>",
            content_type="text/html",
        )
        response.set_cookie(cookie)
        return response

    @router.post("/contact", csrf_protected=True)
    def send_contact():
        return "Thanks!"

    @router.handles_error(404)
    def not_found(request):
        return {"error": "not_found", "path": request.route_path}

    @router.handles_error(401)
    def unauthorized():
        return {"error": "missing or wrong X-Api-Key"}

    return router


def with_session(app):
    """Minimal single-user session middleware for the demo."""
    def wrapped(environ, start_response):
        environ["routemachine.session"] = sessions
        return app(environ, start_response)
    return wrapped


def main():
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    router = create_router()

    response = router.dispatch(Request(method=HTTPMethod.GET, path="/users/1"))
    print(f"GET /users/1: {response.status_code}")
    print(f"Response: {response.body}")
    print(f"URL of user 2: {router.get_url('user', {'id': 2})}")
    print()

    with make_server("", 8000, with_session(WsgiDriver(router))) as server:
        print("Serving on http://localhost:8000")
        server.serve_forever()


if __name__ == "__main__":
    main()
