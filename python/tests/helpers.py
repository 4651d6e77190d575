"""Context types shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from testctx import AsyncTestContext, TestContext

T = TypeVar("T")

# Lifecycle events recorded by the contexts below, reset before every test.
EVENTS: list[str] = []


class Counter(TestContext):
    def __init__(self, n: int) -> None:
        self.n = n

    @classmethod
    def setup(cls) -> Counter:
        EVENTS.append("setup")
        return cls(1)

    def teardown(self) -> None:
        EVENTS.append("teardown")
        if self.n != 1:
            raise RuntimeError("Number changed")


class AsyncCounter(AsyncTestContext):
    def __init__(self, n: int) -> None:
        self.n = n

    @classmethod
    async def setup(cls) -> AsyncCounter:
        await asyncio.sleep(0)
        EVENTS.append("setup")
        return cls(1)

    async def teardown(self) -> None:
        await asyncio.sleep(0)
        EVENTS.append("teardown")
        if self.n != 1:
            raise RuntimeError("Number changed")


class Heartbeat(AsyncTestContext):
    """Starts a background task in setup and stops it in teardown."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self.task = task

    @classmethod
    async def setup(cls) -> Heartbeat:
        EVENTS.append("setup")
        return cls(asyncio.ensure_future(asyncio.sleep(3600)))

    async def teardown(self) -> None:
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            EVENTS.append("teardown")


class TeardownPanics(TestContext):
    @classmethod
    def setup(cls) -> TeardownPanics:
        EVENTS.append("setup")
        return cls()

    def teardown(self) -> None:
        EVENTS.append("teardown")
        raise RuntimeError("boom!")


class AsyncTeardownPanics(AsyncTestContext):
    @classmethod
    async def setup(cls) -> AsyncTeardownPanics:
        EVENTS.append("setup")
        return cls()

    async def teardown(self) -> None:
        EVENTS.append("teardown")
        raise RuntimeError("boom!")


class NoTeardown(TestContext):
    value = "Hello, world!"

    @classmethod
    def setup(cls) -> NoTeardown:
        return cls()


class Box(TestContext, Generic[T]):
    def __init__(self, contents: object) -> None:
        self.contents = contents

    @classmethod
    def setup(cls) -> Box[T]:
        return cls(1)


class FailingSetup(TestContext):
    @classmethod
    def setup(cls) -> FailingSetup:
        EVENTS.append("setup")
        raise ConnectionError("database unreachable")

    def teardown(self) -> None:
        EVENTS.append("teardown")


class Plain:
    """Implements neither context contract."""


def run(coro):  # type: ignore[no-untyped-def]
    return asyncio.run(coro)
