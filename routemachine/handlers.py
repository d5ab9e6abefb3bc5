"""
Route handler types.

A route handler is one of:

- ``callback``: any callable, called with injected arguments
- ``controller``: a ``"Identifier@method"`` reference into a ControllerRegistry;
  a fresh controller instance is created for every request
- ``file``: a path whose contents are served as the response body
"""

import inspect
import json
import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from .dependencies import call_with_injection
from .exceptions import HandlerNotFoundError, InvalidHandlerTypeError
from .models import Request, Response

logger = logging.getLogger(__name__)


class HandlerType(str, Enum):
    """Supported route handler types."""

    CONTROLLER = "controller"
    FILE = "file"
    CALLBACK = "callback"


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_response(result: Any, status_code: int = 200) -> Response:
    """Convert a handler's return value into a Response.

    Args:
        result: Whatever the handler returned
        status_code: Status used for anything that is not already a Response

    Returns:
        ``result`` itself for a Response, an empty 204 for None, ``text/plain``
        for strings, ``application/octet-stream`` for bytes and JSON for
        pydantic models, dicts and lists.
    """
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(204)
    if isinstance(result, str):
        return Response(status_code, result, content_type="text/plain")
    if isinstance(result, bytes):
        return Response(status_code, result, content_type="application/octet-stream")
    if isinstance(result, BaseModel):
        return Response(status_code, result.model_dump_json(), content_type="application/json")
    if isinstance(result, (dict, list, tuple)):
        return Response(status_code, json.dumps(result, default=_json_default), content_type="application/json")
    return Response(status_code, str(result), content_type="text/plain")


def file_response(path: Path, status_code: int = 200, reason: Optional[str] = None) -> Response:
    """Serve a file's contents with a content type guessed from its name."""
    content_type, _ = mimetypes.guess_type(path.name)
    return Response(
        status_code,
        path.read_bytes(),
        content_type=content_type or "application/octet-stream",
        reason=reason,
    )


class Handler(ABC):
    """Base class for resolved route handlers."""

    @abstractmethod
    def __call__(self, request: Request, params: Mapping[str, str]) -> Any:
        """Run the handler and return its raw result."""
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class CallbackHandler(Handler):
    """Handler wrapping a plain callable."""

    def __init__(self, func: Callable):
        self.func = func

    def __call__(self, request: Request, params: Mapping[str, str]) -> Any:
        return call_with_injection(self.func, request, params)

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", repr(self.func))


class ControllerHandler(Handler):
    """Handler calling a method on a freshly built controller instance."""

    def __init__(self, identifier: str, factory: Callable[[], Any], method_name: str):
        self.identifier = identifier
        self.factory = factory
        self.method_name = method_name

    def __call__(self, request: Request, params: Mapping[str, str]) -> Any:
        instance = self.factory()
        method = getattr(instance, self.method_name, None)
        if not callable(method):
            raise HandlerNotFoundError(
                f"Controller '{self.identifier}' has no callable method '{self.method_name}'"
            )
        return call_with_injection(method, request, params)

    @property
    def name(self) -> str:
        return f"{self.identifier}@{self.method_name}"


class FileHandler(Handler):
    """Handler serving a file's contents."""

    def __init__(self, path: Path):
        self.path = path

    def __call__(self, request: Request, params: Mapping[str, str]) -> Response:
        return file_response(self.path)

    @property
    def name(self) -> str:
        return str(self.path)


class ControllerRegistry:
    """Explicit mapping of controller identifiers to factories.

    Factories are usually controller classes; any zero-argument callable that
    returns an object works.
    """

    def __init__(self):
        self._factories: Dict[str, Callable[[], Any]] = {}

    @property
    def factories(self) -> Mapping[str, Callable[[], Any]]:
        return MappingProxyType(self._factories)

    def register(self, identifier: str, factory: Callable[[], Any]) -> None:
        if not callable(factory):
            raise TypeError(f"Controller factory for '{identifier}' must be callable")
        self._factories[identifier] = factory

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._factories

    def resolve(self, reference: str) -> ControllerHandler:
        """Resolve an ``"Identifier@method"`` reference.

        Raises:
            HandlerNotFoundError: If the reference is malformed, the identifier is
                not registered, or a controller class lacks the method
        """
        if not isinstance(reference, str) or reference.count("@") != 1:
            raise HandlerNotFoundError(
                f"Controller handler '{reference}' must look like 'Controller@method'"
            )

        identifier, method_name = reference.split("@")
        factory = self._factories.get(identifier)
        if factory is None:
            raise HandlerNotFoundError(f"Controller '{identifier}' is not registered")

        # Classes can be checked up front; other factories are checked per call
        if inspect.isclass(factory) and not callable(getattr(factory, method_name, None)):
            raise HandlerNotFoundError(
                f"Controller '{identifier}' has no callable method '{method_name}'"
            )

        return ControllerHandler(identifier, factory, method_name)


def resolve_handler(
    handler_type: Union[str, HandlerType],
    handler: Any,
    controllers: ControllerRegistry,
) -> Handler:
    """Turn a handler reference into a Handler, failing fast on bad input."""
    if not handler_type:
        raise InvalidHandlerTypeError("Handler type is empty")
    try:
        handler_type = HandlerType(handler_type)
    except ValueError:
        raise InvalidHandlerTypeError(f"Invalid handler type '{handler_type}'") from None

    if handler_type is HandlerType.CALLBACK:
        if not callable(handler):
            raise HandlerNotFoundError(f"Callback handler {handler!r} is not callable")
        return CallbackHandler(handler)

    if handler_type is HandlerType.CONTROLLER:
        return controllers.resolve(handler)

    if not isinstance(handler, (str, os.PathLike)):
        raise HandlerNotFoundError(f"File handler must be a path, got {type(handler).__name__}")
    path = Path(handler)
    if not path.is_file():
        raise HandlerNotFoundError(f"Handler file '{path}' not found")
    logger.debug(f"Registered file handler {path}")
    return FileHandler(path)
