"""Errors and warnings raised while wrapping a test with a context."""

from __future__ import annotations

import inspect
from typing import Any, Callable


class TestContextError(Exception):
    """Base class for every decoration-time failure."""

    __test__ = False


class DeclarationError(TestContextError, SyntaxError):
    """The arguments given to ``with_context(...)`` are malformed."""


class SignatureError(TestContextError, TypeError):
    """The decorated function does not declare exactly one context parameter."""


class MissingContextError(SignatureError):
    """No parameter is annotated with the requested context type."""


class AmbiguousContextError(SignatureError):
    """More than one parameter is annotated with the requested context type."""


class ConfigurationError(TestContextError, TypeError):
    """The declaration cannot be honoured for this function and context type."""


class TestContextWarning(UserWarning):
    """Non-fatal problems spotted while wrapping a test."""

    __test__ = False


def describe_function(func: Callable[..., Any]) -> str:
    """Render ``func`` as ``qualname (path:line)`` for error messages."""

    func = inspect.unwrap(func)
    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", repr(func))
    code = getattr(func, "__code__", None)
    if code is None:
        try:
            path = inspect.getsourcefile(func)
        except TypeError:
            path = None
        return f"{name} ({path})" if path else name
    return f"{name} ({code.co_filename}:{code.co_firstlineno})"
