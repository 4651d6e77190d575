"""User facing decorator that attaches a context to a test."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from ._declaration import parse_declaration
from ._synthesis import synthesize

F = TypeVar("F", bound=Callable[..., object])


def with_context(*arguments: Any) -> Callable[[F], F]:
    """Set up a context before the test and tear it down afterwards.

    Usage::

        @with_context(Database)
        def test_insert(db: MutRef[Database]) -> None:
            ...

        @with_context(Database, skip_teardown)
        async def test_close(db: Database) -> None:
            await db.close()

    The context parameter is removed from the test's visible signature, so
    the remaining parameters stay available to the runner (fixtures,
    parametrization). Apply ``with_context`` first, i.e. place it below any
    decorator that registers the test from its signature.
    """

    declaration = parse_declaration(arguments)

    def decorator(func: F) -> F:
        return synthesize(func, declaration)  # type: ignore[return-value]

    return decorator
