"""Pick the setup/teardown calls a wrapped test uses for its context type."""

from __future__ import annotations

import inspect
from typing import Any, get_origin

from .bridge import BlockingContext
from .contexts import AsyncTestContext, TestContext
from .errors import ConfigurationError


class SyncLifecycle:
    """Calls a ``TestContext`` implementation directly."""

    def __init__(self, context_type: type[TestContext]) -> None:
        super().__init__()
        self.context_type = context_type

    def setup(self) -> Any:
        return self.context_type.setup()

    def teardown(self, context: Any) -> None:
        context.teardown()

    def __repr__(self) -> str:
        return f"SyncLifecycle({self.context_type.__qualname__})"


class AsyncLifecycle:
    """Awaits an ``AsyncTestContext`` implementation."""

    def __init__(self, context_type: type[AsyncTestContext]) -> None:
        super().__init__()
        self.context_type = context_type

    async def setup(self) -> Any:
        return await self.context_type.setup()

    async def teardown(self, context: Any) -> None:
        await context.teardown()

    def __repr__(self) -> str:
        return f"AsyncLifecycle({self.context_type.__qualname__})"


def context_class(context_type: Any) -> type:
    """Return the class behind ``context_type``, unwrapping generic aliases."""

    origin = get_origin(context_type)
    cls = origin if origin is not None else context_type
    if not inspect.isclass(cls):
        msg = f"{context_type!r} is not a class and cannot be set up"
        raise ConfigurationError(msg)
    return cls


def sync_lifecycle(
    context_type: Any, *, skip_teardown: bool = False
) -> SyncLifecycle | BlockingContext[Any]:
    """Lifecycle for a synchronous test.

    ``TestContext`` implementations are used directly; types that only
    implement ``AsyncTestContext`` are driven through the blocking bridge.
    With ``skip_teardown`` the bridge has no teardown to run, so it does not
    keep an event loop open after setup.
    """
    cls = context_class(context_type)
    if issubclass(cls, TestContext):
        return SyncLifecycle(cls)
    if issubclass(cls, AsyncTestContext):
        return BlockingContext(cls, keep_loop=not skip_teardown)
    msg = f"{cls.__qualname__} implements neither TestContext nor AsyncTestContext"
    raise ConfigurationError(msg)


def async_lifecycle(context_type: Any) -> AsyncLifecycle:
    """Lifecycle for an ``async def`` test; requires ``AsyncTestContext``."""

    cls = context_class(context_type)
    if issubclass(cls, AsyncTestContext):
        return AsyncLifecycle(cls)
    if issubclass(cls, TestContext):
        msg = (
            f"{cls.__qualname__} only implements TestContext; "
            "async tests need an AsyncTestContext"
        )
        raise ConfigurationError(msg)
    msg = f"{cls.__qualname__} implements neither TestContext nor AsyncTestContext"
    raise ConfigurationError(msg)
