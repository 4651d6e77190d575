"""Build the wrapper that gives a test its context.

Every wrapper follows the same steps:

1. construct the context (awaited for ``async def`` tests),
2. bind it to the test's context parameter,
3. run the original test, capturing any exception,
4. tear the context down unless ``skip_teardown`` was declared,
5. return the test's value, or re-raise its exception unchanged.

Steps 1, 3 and 4 depend only on ``(is_async, skip_teardown)``, so there is
one body per cell of that 2x2 table. Step 2 depends only on the binding
mode. The two are composed rather than written out per combination.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable

from ._declaration import ContextDeclaration
from ._lifecycle import async_lifecycle, sync_lifecycle
from ._outcome import capture, capture_async, release, release_async
from ._signature import ContextBindingMode, SignatureAnalysis, analyze_signature
from .bridge import is_bridged
from .errors import ConfigurationError, describe_function

logger = logging.getLogger(__name__)

DECLARATIONS_ATTR = "__testctx_declarations__"

Slot = list  # one-element holder; the wrapper owns the context while it holds it
Binding = Callable[[Slot], Any]


def _move(slot: Slot) -> Any:
    # The body now owns the context; the wrapper can no longer reach it.
    return slot.pop()


def _lend(slot: Slot) -> Any:
    return slot[0]


_BINDINGS: dict[ContextBindingMode, Binding] = {
    ContextBindingMode.OWNED: _move,
    ContextBindingMode.OWNED_MUTABLE: _move,
    ContextBindingMode.REFERENCE: _lend,
    ContextBindingMode.MUTABLE_REFERENCE: _lend,
}


class _Invocation:
    """Calls the original test with the residual arguments plus the context."""

    def __init__(self, func: Callable[..., Any], analysis: SignatureAnalysis) -> None:
        super().__init__()
        self.func = func
        self.original = analysis.original
        self.residual = analysis.residual
        self.context_name = analysis.parameter.name

    def prepare(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
        """Bind the caller's arguments against the residual signature."""
        bound = self.residual.bind(*args, **kwargs)
        bound.apply_defaults()
        return dict(bound.arguments)

    def __call__(self, arguments: dict[str, Any], context: Any) -> Any:
        values = {
            name: context if name == self.context_name else arguments[name]
            for name in self.original.parameters
        }
        call = inspect.BoundArguments(self.original, values)  # type: ignore[arg-type]
        return self.func(*call.args, **call.kwargs)


def _sync_with_teardown(lifecycle: Any, bind: Binding, invoke: _Invocation) -> Callable[..., Any]:
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = invoke.prepare(args, kwargs)
        slot = [lifecycle.setup()]
        outcome = capture(invoke, arguments, bind(slot))
        release(lifecycle.teardown, slot[0], outcome)
        return outcome.unwrap()

    return wrapper


def _sync_skip_teardown(lifecycle: Any, bind: Binding, invoke: _Invocation) -> Callable[..., Any]:
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = invoke.prepare(args, kwargs)
        slot = [lifecycle.setup()]
        outcome = capture(invoke, arguments, bind(slot))
        logger.debug("teardown skipped for %s", invoke.func.__qualname__)
        return outcome.unwrap()

    return wrapper


def _async_with_teardown(lifecycle: Any, bind: Binding, invoke: _Invocation) -> Callable[..., Any]:
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = invoke.prepare(args, kwargs)
        slot = [await lifecycle.setup()]
        outcome = await capture_async(invoke, arguments, bind(slot))
        await release_async(lifecycle.teardown, slot[0], outcome)
        return outcome.unwrap()

    return wrapper


def _async_skip_teardown(lifecycle: Any, bind: Binding, invoke: _Invocation) -> Callable[..., Any]:
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        arguments = invoke.prepare(args, kwargs)
        slot = [await lifecycle.setup()]
        outcome = await capture_async(invoke, arguments, bind(slot))
        logger.debug("teardown skipped for %s", invoke.func.__qualname__)
        return outcome.unwrap()

    return wrapper


# keyed on (is_async, skip_teardown)
_BODIES = {
    (False, False): _sync_with_teardown,
    (False, True): _sync_skip_teardown,
    (True, False): _async_with_teardown,
    (True, True): _async_skip_teardown,
}


def synthesize(func: Callable[..., Any], declaration: ContextDeclaration) -> Callable[..., Any]:
    """Return ``func`` wrapped with the lifecycle of ``declaration.context_type``.

    Raises:
        SignatureError: ``func`` does not declare exactly one context parameter.
        ConfigurationError: The binding mode needs ``skip_teardown``, or the
            context type lacks the contract the test needs.
    """
    is_async = inspect.iscoroutinefunction(func)
    analysis = analyze_signature(func, declaration.context_type)
    parameter = analysis.parameter

    if parameter.mode.takes_ownership and not declaration.skip_teardown:
        msg = (
            f"context parameter {parameter.name!r} of {describe_function(func)} takes "
            "ownership of the context, so it cannot be torn down afterwards; "
            "annotate it with Ref[...] or MutRef[...], or pass skip_teardown"
        )
        raise ConfigurationError(msg)

    if is_async:
        lifecycle: Any = async_lifecycle(declaration.context_type)
    else:
        lifecycle = sync_lifecycle(
            declaration.context_type, skip_teardown=declaration.skip_teardown
        )

    logger.debug(
        "wrapping %s: context=%r mode=%s async=%s skip_teardown=%s bridged=%s",
        func.__qualname__,
        declaration.context_type,
        parameter.mode.value,
        is_async,
        declaration.skip_teardown,
        is_bridged(lifecycle),
    )

    make_body = _BODIES[(is_async, declaration.skip_teardown)]
    body = make_body(lifecycle, _BINDINGS[parameter.mode], _Invocation(func, analysis))
    return _finish(body, func, analysis, declaration)


def _finish(
    wrapper: Callable[..., Any],
    func: Callable[..., Any],
    analysis: SignatureAnalysis,
    declaration: ContextDeclaration,
) -> Callable[..., Any]:
    wrapper = functools.wraps(func)(wrapper)

    annotations = dict(getattr(func, "__annotations__", None) or {})
    annotations.pop(analysis.parameter.name, None)
    wrapper.__annotations__ = annotations
    wrapper.__signature__ = analysis.residual  # type: ignore[attr-defined]

    previous = getattr(func, DECLARATIONS_ATTR, ())
    setattr(wrapper, DECLARATIONS_ATTR, (*previous, declaration))
    return wrapper
