"""Run asynchronous contexts from synchronous tests.

Any type implementing :class:`~testctx.contexts.AsyncTestContext` can be used
by a plain ``def`` test. Instead of every context implementing both contracts,
:class:`BlockingContext` wraps the asynchronous one and drives it to
completion from synchronous code.

:func:`block_on` is the single-call executor: it owns a fresh event loop for
exactly one awaitable. :class:`BlockingContext` keeps one loop per context
instance from setup until teardown, so tasks and loop-bound resources created
by ``setup()`` are still usable when ``teardown()`` runs. The loop only runs
while setup or teardown is being awaited; tasks do not make progress while the
synchronous test body runs.

Closing a loop mirrors :func:`asyncio.run`: tasks still pending are cancelled
and awaited, then async generators are finalized.

If the calling thread is already running an event loop (for instance a sync
helper called from inside an async test), the loop is driven from a dedicated
one-worker thread so the running loop is never re-entered.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Generic, TypeVar

from .contexts import AsyncTestContext

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=AsyncTestContext)
T = TypeVar("T")


def block_on(awaitable: Awaitable[T]) -> T:
    """Run ``awaitable`` to completion and return its result.

    Exceptions raised by the awaitable propagate unchanged. Tasks it leaves
    behind are cancelled before the loop is closed.
    """
    return _outside_running_loop(_run_on_fresh_loop, awaitable)


def _outside_running_loop(func: Callable[..., T], *args: Any) -> T:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return func(*args)

    logger.debug("event loop already running in this thread; blocking on a worker thread")
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="testctx-block-on") as pool:
        return pool.submit(func, *args).result()


def _run_on_fresh_loop(awaitable: Awaitable[T]) -> T:
    loop = asyncio.new_event_loop()
    try:
        return _run_on(loop, awaitable)
    finally:
        _close_loop(loop)


def _run_on(loop: asyncio.AbstractEventLoop, awaitable: Awaitable[T]) -> T:
    return loop.run_until_complete(_await(awaitable))


def _close_loop(loop: asyncio.AbstractEventLoop) -> None:
    try:
        _cancel_pending(loop)
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        loop.close()


def _cancel_pending(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    if not pending:
        return

    logger.debug("cancelling %d task(s) left on the event loop", len(pending))
    for task in pending:
        task.cancel()
    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


class BlockingContext(Generic[C]):
    """Synchronous lifecycle for a type that only implements ``AsyncTestContext``.

    With ``keep_loop`` (the default) the loop that ran ``setup()`` stays open
    until ``teardown()`` of the same context has run on it. Without it every
    call goes through :func:`block_on`, which suits contexts that are never
    torn down.
    """

    def __init__(self, context_type: type[C], *, keep_loop: bool = True) -> None:
        super().__init__()
        self.context_type = context_type
        self.keep_loop = keep_loop
        self._loops: dict[int, asyncio.AbstractEventLoop] = {}
        self._lock = threading.Lock()

    def setup(self) -> C:
        if not self.keep_loop:
            return block_on(self.context_type.setup())

        loop = asyncio.new_event_loop()
        try:
            context = _outside_running_loop(_run_on, loop, self.context_type.setup())
        except BaseException:
            _outside_running_loop(_close_loop, loop)
            raise

        with self._lock:
            self._loops[id(context)] = loop
        return context

    def teardown(self, context: C) -> None:
        with self._lock:
            loop = self._loops.pop(id(context), None)
        if loop is None:
            block_on(context.teardown())
            return

        try:
            _outside_running_loop(_run_on, loop, context.teardown())
        finally:
            _outside_running_loop(_close_loop, loop)

    def open_loops(self) -> int:
        """Number of contexts set up on this adapter and not yet torn down."""

        with self._lock:
            return len(self._loops)

    def __repr__(self) -> str:
        return f"BlockingContext({self.context_type.__qualname__})"


def is_bridged(lifecycle: Any) -> bool:
    """Return ``True`` when ``lifecycle`` blocks on an asynchronous context."""

    return isinstance(lifecycle, BlockingContext)
