"""Capture a test body's result so teardown can run before it is re-raised."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

# Cancellation and generator shutdown are not captured: they propagate
# immediately and teardown does not run.
_UNCAPTURED = (asyncio.CancelledError, GeneratorExit)


@dataclass(frozen=True)
class Success:
    """The body returned normally."""

    value: Any

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Failure:
    """The body raised; ``error`` is the exact exception object."""

    error: BaseException

    def unwrap(self) -> Any:
        raise self.error


Outcome = Success | Failure


def capture(call: Callable[..., Any], *args: Any, **kwargs: Any) -> Outcome:
    """Run ``call`` and return its result or exception as an :data:`Outcome`."""

    try:
        return Success(call(*args, **kwargs))
    except _UNCAPTURED:
        raise
    except BaseException as exc:
        return Failure(exc)


async def capture_async(call: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Outcome:
    """Await ``call`` and return its result or exception as an :data:`Outcome`."""

    try:
        return Success(await call(*args, **kwargs))
    except _UNCAPTURED:
        raise
    except BaseException as exc:
        return Failure(exc)


def release(teardown: Callable[[Any], None], context: Any, outcome: Outcome) -> None:
    """Run ``teardown(context)``.

    A teardown failure replaces the body's outcome. When the body had failed
    too, its exception becomes the teardown exception's ``__context__`` so the
    traceback shows both.
    """
    try:
        teardown(context)
    except BaseException as exc:
        _chain(exc, outcome)
        raise


async def release_async(
    teardown: Callable[[Any], Awaitable[None]], context: Any, outcome: Outcome
) -> None:
    """Async counterpart of :func:`release`."""

    try:
        await teardown(context)
    except BaseException as exc:
        _chain(exc, outcome)
        raise


def _chain(exc: BaseException, outcome: Outcome) -> None:
    if isinstance(outcome, Failure) and exc is not outcome.error and exc.__context__ is None:
        exc.__context__ = outcome.error
