from __future__ import annotations

import asyncio
import threading

import pytest

from testctx import BlockingContext, Ref, block_on, skip_teardown, with_context
from testctx._lifecycle import AsyncLifecycle, SyncLifecycle, async_lifecycle, sync_lifecycle
from testctx.bridge import is_bridged
from testctx.errors import ConfigurationError

from .helpers import EVENTS, AsyncCounter, Box, Counter, Heartbeat, Plain, run


class TestBlockOn:
    def test_returns_result(self) -> None:
        """The awaitable's result is returned to the synchronous caller."""

        async def answer() -> int:
            await asyncio.sleep(0)
            return 42

        assert block_on(answer()) == 42

    def test_propagates_exception(self) -> None:
        """Exceptions raised by the awaitable propagate unchanged."""

        async def broken() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            block_on(broken())

    def test_uses_fresh_loop_each_call(self) -> None:
        """Every call gets its own loop, closed afterwards."""
        loops: list[asyncio.AbstractEventLoop] = []

        async def record() -> None:
            loops.append(asyncio.get_running_loop())

        block_on(record())
        block_on(record())
        assert loops[0] is not loops[1]
        assert all(loop.is_closed() for loop in loops)

    def test_cancels_leftover_tasks(self) -> None:
        """Tasks the awaitable leaves behind are cancelled before the loop closes."""
        tasks: list[asyncio.Task[None]] = []

        async def spawn() -> None:
            tasks.append(asyncio.ensure_future(asyncio.sleep(3600)))

        block_on(spawn())
        assert tasks[0].cancelled()

    def test_inside_running_loop_uses_worker_thread(self) -> None:
        """A running loop in the caller's thread is never re-entered."""
        threads: list[str] = []

        async def inner() -> str:
            threads.append(threading.current_thread().name)
            return "done"

        async def outer() -> str:
            return block_on(inner())

        assert run(outer()) == "done"
        assert threads[0].startswith("testctx-block-on")


class TestBlockingContext:
    def test_setup_and_teardown(self) -> None:
        """Both halves of the async lifecycle run from synchronous code."""
        bridge = BlockingContext(AsyncCounter)
        context = bridge.setup()
        assert isinstance(context, AsyncCounter)
        assert context.n == 1
        bridge.teardown(context)
        assert EVENTS == ["setup", "teardown"]

    def test_teardown_failure_propagates(self) -> None:
        """A failing async teardown raises and still releases the loop."""
        bridge = BlockingContext(AsyncCounter)
        context = bridge.setup()
        context.n = 2
        with pytest.raises(RuntimeError, match="Number changed"):
            bridge.teardown(context)
        assert bridge.open_loops() == 0

    def test_setup_and_teardown_share_a_loop(self) -> None:
        """A task started in setup can still be awaited by teardown."""
        bridge = BlockingContext(Heartbeat)
        context = bridge.setup()
        assert not context.task.done()
        assert bridge.open_loops() == 1

        bridge.teardown(context)
        assert context.task.cancelled()
        assert bridge.open_loops() == 0
        assert EVENTS == ["setup", "teardown"]

    def test_without_kept_loop_tasks_end_after_setup(self) -> None:
        """Without a kept loop, setup's leftover tasks are cancelled at once."""
        bridge = BlockingContext(Heartbeat, keep_loop=False)
        context = bridge.setup()
        assert context.task.cancelled()
        assert bridge.open_loops() == 0

    def test_inside_running_loop(self) -> None:
        """The kept loop is driven from a worker thread when a loop is running."""

        async def outer() -> None:
            bridge = BlockingContext(Heartbeat)
            bridge.teardown(bridge.setup())

        run(outer())
        assert EVENTS == ["setup", "teardown"]

    def test_sync_test_with_task_spawning_context(self) -> None:
        """A sync test can use a context whose teardown awaits setup's task."""
        seen: list[bool] = []

        @with_context(Heartbeat)
        def body(beat: Ref[Heartbeat]) -> None:
            seen.append(beat.task.done())

        body()
        assert seen == [False]
        assert EVENTS == ["setup", "teardown"]

    def test_sync_test_skipping_teardown(self) -> None:
        """With skip_teardown the loop is closed straight after setup."""

        @with_context(Heartbeat, skip_teardown)
        def body(beat: Heartbeat) -> bool:
            return beat.task.cancelled()

        assert body() is True
        assert EVENTS == ["setup"]

    def test_repr(self) -> None:
        assert repr(BlockingContext(AsyncCounter)) == "BlockingContext(AsyncCounter)"


class TestLifecycleResolution:
    def test_sync_context_used_directly(self) -> None:
        """TestContext implementations are not bridged."""
        lifecycle = sync_lifecycle(Counter)
        assert isinstance(lifecycle, SyncLifecycle)
        assert not is_bridged(lifecycle)

    def test_async_context_bridged_for_sync_tests(self) -> None:
        assert is_bridged(sync_lifecycle(AsyncCounter))

    def test_skip_teardown_does_not_keep_loop(self) -> None:
        lifecycle = sync_lifecycle(AsyncCounter, skip_teardown=True)
        assert isinstance(lifecycle, BlockingContext)
        assert lifecycle.keep_loop is False

    def test_async_context_for_async_tests(self) -> None:
        assert isinstance(async_lifecycle(AsyncCounter), AsyncLifecycle)

    def test_sync_only_context_rejected_for_async_tests(self) -> None:
        """Only async-to-sync is bridged, never the other way round."""
        with pytest.raises(ConfigurationError, match="only implements TestContext"):
            async_lifecycle(Counter)

    def test_plain_class_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="neither"):
            sync_lifecycle(Plain)
        with pytest.raises(ConfigurationError, match="neither"):
            async_lifecycle(Plain)

    def test_generic_alias_uses_origin(self) -> None:
        """``Box[int]`` is set up through ``Box``."""
        lifecycle = sync_lifecycle(Box[int])
        assert isinstance(lifecycle, SyncLifecycle)
        assert lifecycle.context_type is Box

    def test_virtual_subclass(self) -> None:
        """Classes registered with ``TestContext.register`` are honoured."""
        from testctx import TestContext

        class Registered:
            @classmethod
            def setup(cls) -> Registered:
                return cls()

            def teardown(self) -> None:
                EVENTS.append("teardown")

        TestContext.register(Registered)
        lifecycle = sync_lifecycle(Registered)
        lifecycle.teardown(lifecycle.setup())
        assert EVENTS == ["teardown"]
