"""
Webmachine-style state machine for dispatching a request to its route.

Each state decides one thing and returns either the next state or a terminal
Response::

    SearchRoutes -> RunMiddlewares -> CheckCsrf -> InvokeHandler
         |               |              |              |
         +---------------+--------------+--------------+--> ErrorStatus
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Mapping, Optional, Set, Union

from .dependencies import call_with_injection
from .errors import RECOGNIZED_STATUS_CODES
from .handlers import to_response
from .models import Cookie, HTTPMethod, Request, Response, Route

if TYPE_CHECKING:
    from .router import Router

logger = logging.getLogger(__name__)

MAX_STATES = 20


@dataclass
class DispatchContext:
    """Per-request state shared by all states of one dispatch."""

    router: "Router"
    request: Request
    path: str
    route: Optional[Route] = None
    params: Mapping[str, str] = field(default_factory=dict)
    allowed_methods: Set[HTTPMethod] = field(default_factory=set)
    cookies: List[Cookie] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)

    def sorted_allowed_methods(self) -> List[str]:
        return sorted(method.value for method in self.allowed_methods)


class State(ABC):
    """A decision point in request dispatch."""

    @abstractmethod
    def execute(self, ctx: DispatchContext) -> Union["State", Response]:
        """Run this state and return the next state or a terminal response."""
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


def _is_error_status(response: Response) -> bool:
    return response.status_code in RECOGNIZED_STATUS_CODES


class SearchRoutesState(State):
    """Find the first route matching both path and method.

    Transitions:
    - no path match -> ErrorStatusState(404)
    - path matches, method never allowed -> ErrorStatusState(405)
    - match -> RunMiddlewaresState
    """

    def execute(self, ctx: DispatchContext) -> Union[State, Response]:
        method = ctx.request.method
        path_matched = False

        for route in ctx.router.routes:
            result = route.match(ctx.path)
            if not result:
                continue
            path_matched = True
            if route.allows(method):
                ctx.route = route
                ctx.params = result.parameters
                logger.debug(f"Matched {method.value} {ctx.path} to {route.uri_pattern} ({route.handler.name})")
                return RunMiddlewaresState()
            ctx.allowed_methods.update(route.methods)

        if path_matched:
            logger.debug(f"{method.value} not allowed for {ctx.path}; allowed: {ctx.sorted_allowed_methods()}")
            return ErrorStatusState(405)

        logger.debug(f"No route matches {ctx.path}")
        return ErrorStatusState(404)


class RunMiddlewaresState(State):
    """Run the route's middleware chain in order.

    A middleware returning anything but None ends the request with that result.
    """

    def execute(self, ctx: DispatchContext) -> Union[State, Response]:
        for name, middleware in zip(ctx.route.middleware_names, ctx.route.middlewares):
            result = call_with_injection(middleware, ctx.request, ctx.params)
            if result is not None:
                logger.debug(f"Middleware '{name}' short-circuited {ctx.path}")
                response = to_response(result)
                if _is_error_status(response):
                    return ErrorStatusState(response.status_code, response)
                return response

        if ctx.route.csrf_protected:
            return CheckCsrfState()
        return InvokeHandlerState()


class CheckCsrfState(State):
    """Validate the CSRF token of a protected route."""

    def execute(self, ctx: DispatchContext) -> Union[State, Response]:
        check = ctx.router.csrf.validate(ctx.request)
        if check.cookie is not None:
            ctx.cookies.append(check.cookie)
        if not check.passed:
            return ErrorStatusState(check.status)
        return InvokeHandlerState()


class InvokeHandlerState(State):
    """Call the route handler and convert its result."""

    def execute(self, ctx: DispatchContext) -> Union[State, Response]:
        result = ctx.route.handler(ctx.request, ctx.params)
        response = to_response(result)
        if _is_error_status(response):
            return ErrorStatusState(response.status_code, response)
        return response


class ErrorStatusState(State):
    """Hand a failing status code to the error dispatcher.

    When the status came from a handler or middleware response, that
    response's headers and cookies are carried over to the error response;
    the error response's own headers win.
    """

    def __init__(self, status_code: int, original: Optional[Response] = None):
        self.status_code = status_code
        self.original = original

    @property
    def name(self) -> str:
        return f"{self.__class__.__name__}({self.status_code})"

    def execute(self, ctx: DispatchContext) -> Response:
        response = ctx.router.errors.handle(
            self.status_code,
            ctx.request,
            ctx.params,
            allowed_methods=tuple(ctx.sorted_allowed_methods()),
        )
        if self.original is not None and self.original is not response:
            _carry_over(self.original, response)
        return response


# Body headers always come from the error response
_BODY_HEADERS = frozenset({"content-type", "content-length"})


def _carry_over(source: Response, target: Response) -> None:
    present = {name.lower() for name in target.headers}
    for name, value in (source.headers or {}).items():
        if name.lower() not in _BODY_HEADERS and name.lower() not in present:
            target.headers[name] = value
    for cookie in source.cookies:
        target.set_cookie(cookie)


class DispatchStateMachine:
    """Runs dispatch states until one of them returns a Response."""

    def __init__(self, router: "Router"):
        self.router = router

    def process_request(self, request: Request) -> Response:
        """Process a request through the state machine.

        Args:
            request: The HTTP request to dispatch

        Returns:
            The final response, with the Allow header on 405 and any CSRF
            rotation cookie attached.
        """
        ctx = DispatchContext(router=self.router, request=request, path=request.route_path)
        logger.debug(f"Dispatching {request.method.value} {request.path}")

        current: Union[State, Response] = SearchRoutesState()
        while not isinstance(current, Response):
            if len(ctx.trace) >= MAX_STATES:
                logger.error(f"Dispatch exceeded max states ({MAX_STATES}): {' -> '.join(ctx.trace)}")
                current = ErrorStatusState(500).execute(ctx)
                break

            state_name = current.name
            ctx.trace.append(state_name)
            logger.debug(f"  [{len(ctx.trace)}] -> {state_name}")

            try:
                current = current.execute(ctx)
            except Exception as e:
                logger.error(f"Error in state {state_name} for {request.method.value} {request.path}: {e}", exc_info=True)
                current = ErrorStatusState(500).execute(ctx)
                break

        return self._finish(ctx, current)

    def _finish(self, ctx: DispatchContext, response: Response) -> Response:
        if response.status_code == 405 and ctx.allowed_methods:
            response.headers.setdefault("Allow", ", ".join(ctx.sorted_allowed_methods()))
        for cookie in ctx.cookies:
            response.set_cookie(cookie)
        logger.debug(f"Dispatch complete in {len(ctx.trace)} states: {response.status_code}")
        return response
