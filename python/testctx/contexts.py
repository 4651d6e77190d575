"""Lifecycle contracts a type implements to be usable as a test context.

Implement :class:`TestContext` for contexts built synchronously and
:class:`AsyncTestContext` for contexts that need to await during setup or
teardown. Only ``setup`` is required; ``teardown`` defaults to doing nothing.

Example:
    class Database(TestContext):
        def __init__(self, conn):
            self.conn = conn

        @classmethod
        def setup(cls):
            return cls(connect())

        def teardown(self):
            self.conn.close()

A type that only implements :class:`AsyncTestContext` can still be used by
synchronous tests; see :mod:`testctx.bridge`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TypeVar

C = TypeVar("C")


class TestContext(ABC):
    """Synchronous setup/teardown contract."""

    __test__ = False

    @classmethod
    @abstractmethod
    def setup(cls: type[C]) -> C:
        """Create the context. Runs once before every test that uses it."""

    def teardown(self) -> None:
        """Release anything ``setup`` acquired. Runs once after the test."""

        return None


class AsyncTestContext(ABC):
    """Asynchronous setup/teardown contract."""

    __test__ = False

    @classmethod
    @abstractmethod
    async def setup(cls: type[C]) -> C:
        """Create the context. Runs once before every test that uses it."""

    async def teardown(self) -> None:
        """Release anything ``setup`` acquired. Runs once after the test."""

        return None
