"""
Route registry and the public Router facade.

Example::

    router = Router({"csrfAllowedReferers": ["example.com"]})
    router.add_middleware("auth", require_login)

    def admin_routes():
        router.add_route("GET", "/users/[id:(\\d+)]", "callback", show_user, name="user")
        router.add_route("POST", "/users", "controller", "Users@create", csrf_protected=True)

    router.add_group(["auth"], admin_routes, prefix="/admin")

    response = router.dispatch(Request(HTTPMethod.GET, "/admin/users/5"))
    router.get_url("user", {"id": 5})  # "/admin/users/5"
"""

import logging
import os
import time
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .config import RouterOptions
from .csrf import CsrfValidator
from .errors import ErrorDispatcher
from .exceptions import InvalidMethodError, RouterFrozenError
from .groups import GroupContext, GroupContextStack, normalize_path
from .handlers import ControllerRegistry, HandlerType, resolve_handler
from .middleware import MiddlewareRegistry
from .models import HTTPMethod, Request, Response, Route
from .patterns import RoutePattern
from .state_machine import DispatchStateMachine

logger = logging.getLogger(__name__)

ANY_METHOD_TOKENS = frozenset({"*", "ANY"})

Methods = Union[str, HTTPMethod, Iterable[Union[str, HTTPMethod]]]
Middlewares = Union[str, Iterable[str]]


def parse_methods(methods: Methods) -> Tuple[FrozenSet[HTTPMethod], bool]:
    """Normalize a method specification.

    Returns:
        Tuple of (methods, any_method). ``"*"`` or ``"ANY"`` selects every method.

    Raises:
        InvalidMethodError: For unknown or missing methods
    """
    if isinstance(methods, (str, HTTPMethod)):
        methods = [methods]

    parsed = set()
    any_method = False
    for method in methods:
        if isinstance(method, HTTPMethod):
            parsed.add(method)
            continue
        token = str(method).strip().upper()
        if token in ANY_METHOD_TOKENS:
            any_method = True
            continue
        try:
            parsed.add(HTTPMethod(token))
        except ValueError:
            raise InvalidMethodError(f"Unknown HTTP method '{method}'") from None

    if any_method:
        return frozenset(HTTPMethod), True
    if not parsed:
        raise InvalidMethodError("A route needs at least one HTTP method")
    return frozenset(parsed), False


class Router:
    """Pattern based HTTP router with groups, middlewares and CSRF protection.

    Routes are tried in registration order. Registration must be complete
    before the first dispatch; the router freezes itself then.
    """

    def __init__(
        self,
        options: Optional[Union[RouterOptions, Mapping[str, Any]]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.options = RouterOptions.from_value(options)
        self.middlewares = MiddlewareRegistry()
        self.controllers = ControllerRegistry()
        self.errors = ErrorDispatcher()
        self.csrf = CsrfValidator(self.options, clock=clock)
        self._groups = GroupContextStack()
        self._routes: List[Route] = []
        self._named_routes: Dict[str, RoutePattern] = {}
        self._frozen = False
        self._state_machine = DispatchStateMachine(self)

    @property
    def routes(self) -> Tuple[Route, ...]:
        return tuple(self._routes)

    @property
    def named_routes(self) -> Mapping[str, str]:
        """Route name to full (prefixed) pattern text."""
        return MappingProxyType({name: pattern.text for name, pattern in self._named_routes.items()})

    @property
    def group_context(self) -> GroupContext:
        return self._groups.current

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the registry read-only."""
        if not self._frozen:
            self._frozen = True
            logger.debug(f"Router frozen with {len(self._routes)} routes")

    def _check_not_frozen(self, action: str) -> None:
        if self._frozen:
            raise RouterFrozenError(f"Cannot {action} after the router started dispatching")

    # Registration

    def add_route(
        self,
        methods: Methods,
        uri_pattern: str,
        handler_type: Union[str, HandlerType],
        handler: Any,
        middlewares: Middlewares = (),
        name: Optional[str] = None,
        csrf_protected: bool = False,
    ) -> Route:
        """Register a route inside the current group context.

        Args:
            methods: Method name(s); ``"*"`` or ``"ANY"`` for every method
            uri_pattern: Pattern relative to the enclosing group prefix
            handler_type: ``"callback"``, ``"controller"`` or ``"file"``
            handler: Callable, ``"Controller@method"`` reference or file path
            middlewares: Middleware or middleware group names for this route
            name: Name used by ``get_url``
            csrf_protected: Validate the CSRF token before calling the handler

        Returns:
            The registered Route

        Raises:
            RouterError: If any part of the route is invalid
        """
        self._check_not_frozen("add routes")
        method_set, any_method = parse_methods(methods)
        resolved = resolve_handler(handler_type, handler, self.controllers)

        context = self._groups.current
        pattern = RoutePattern(normalize_path(context.prefix, uri_pattern))
        names, chain = self.middlewares.resolve(middlewares, context.middleware_names)

        route = Route(
            methods=method_set,
            pattern=pattern,
            handler=resolved,
            middlewares=chain,
            middleware_names=names,
            csrf_protected=bool(csrf_protected),
            name=name,
            any_method=any_method,
        )
        if name:
            self._named_routes[name] = pattern
        self._routes.append(route)

        method_label = "*" if any_method else ",".join(sorted(m.value for m in method_set))
        logger.debug(f"Registered route {method_label} {pattern.text} -> {resolved.name} (middlewares: {list(names)})")
        return route

    @contextmanager
    def group(self, middlewares: Middlewares = (), prefix: str = "") -> Iterator[GroupContext]:
        """Context manager form of ``add_group``::

            with router.group(["auth"], prefix="/admin"):
                router.add_route("GET", "/", "callback", dashboard)
        """
        self._check_not_frozen("add route groups")
        with self._groups.nested(prefix, self.middlewares.expand(middlewares)) as context:
            yield context

    def add_group(self, middlewares: Middlewares, callback: Callable[[], Any], prefix: str = "") -> None:
        """Register the routes added by ``callback`` under a prefix and middleware stack.

        The enclosing context is restored when ``callback`` returns or raises.
        """
        with self.group(middlewares, prefix):
            callback()

    def add_redirect(self, methods: Methods, from_uri: str, to_uri: str, status_code: int = 302) -> Route:
        """Register a route answering with a redirect to ``to_uri``."""

        def redirect() -> Response:
            return Response(status_code, headers={"Location": to_uri})

        redirect.__name__ = f"redirect_to_{to_uri}"
        return self.add_route(methods, from_uri, HandlerType.CALLBACK, redirect)

    def add_middleware(self, name: str, func: Callable) -> None:
        self._check_not_frozen("add middlewares")
        self.middlewares.add_middleware(name, func)

    def add_middleware_group(self, name: str, names: Middlewares) -> None:
        self._check_not_frozen("add middleware groups")
        self.middlewares.add_group(name, names)

    def add_controller(self, identifier: str, factory: Callable[[], Any]) -> None:
        self._check_not_frozen("add controllers")
        self.controllers.register(identifier, factory)

    def add_error_handler(self, status_code: int, handler: Union[Callable, str, os.PathLike]) -> None:
        self._check_not_frozen("add error handlers")
        self.errors.add_error_handler(status_code, handler)

    # Decorators

    def route(
        self,
        methods: Methods,
        path: str,
        middlewares: Middlewares = (),
        name: Optional[str] = None,
        csrf_protected: bool = False,
    ):
        """Decorator to register a callback route."""
        def decorator(func: Callable):
            self.add_route(methods, path, HandlerType.CALLBACK, func, middlewares, name, csrf_protected)
            return func
        return decorator

    def get(self, path: str, **kwargs):
        """Decorator to register a GET route handler."""
        return self.route(HTTPMethod.GET, path, **kwargs)

    def post(self, path: str, **kwargs):
        """Decorator to register a POST route handler."""
        return self.route(HTTPMethod.POST, path, **kwargs)

    def put(self, path: str, **kwargs):
        """Decorator to register a PUT route handler."""
        return self.route(HTTPMethod.PUT, path, **kwargs)

    def patch(self, path: str, **kwargs):
        """Decorator to register a PATCH route handler."""
        return self.route(HTTPMethod.PATCH, path, **kwargs)

    def delete(self, path: str, **kwargs):
        """Decorator to register a DELETE route handler."""
        return self.route(HTTPMethod.DELETE, path, **kwargs)

    def any(self, path: str, **kwargs):
        """Decorator to register a route handler for every method."""
        return self.route("*", path, **kwargs)

    def middleware(self, name: str):
        """Decorator to register a named middleware."""
        def decorator(func: Callable):
            self.add_middleware(name, func)
            return func
        return decorator

    def controller(self, identifier: Optional[str] = None):
        """Class decorator registering a controller under ``identifier``.

        The class name is used when no identifier is given.
        """
        def decorator(cls):
            self.add_controller(identifier or cls.__name__, cls)
            return cls
        return decorator

    def handles_error(self, status_code: int):
        """Decorator to register a custom error handler.

        Example::

            @router.handles_error(404)
            def not_found(request):
                return {"error": f"Nothing at {request.path}"}
        """
        def decorator(func: Callable):
            self.add_error_handler(status_code, func)
            return func
        return decorator

    # Lookup and dispatch

    def get_url(self, name: str, params: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """Build the path of a named route, or None if no route has that name."""
        pattern = self._named_routes.get(name)
        if pattern is None:
            return None
        return pattern.build(params or {})

    def dispatch(self, request: Request) -> Response:
        """Route a request and return the response. Freezes the router."""
        self.freeze()
        return self._state_machine.process_request(request)

