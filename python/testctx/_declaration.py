"""Parse the arguments given to ``with_context(...)``."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, get_origin

from .errors import DeclarationError


class _SkipTeardown:
    """Marker passed to ``with_context`` to skip the teardown step."""

    def __repr__(self) -> str:
        return "skip_teardown"


skip_teardown = _SkipTeardown()

_SKIP_TEARDOWN_SPELLINGS = ("skip_teardown",)


@dataclass(frozen=True)
class ContextDeclaration:
    """What a ``with_context(...)`` call asked for."""

    context_type: Any
    skip_teardown: bool = False


def parse_declaration(arguments: tuple[Any, ...]) -> ContextDeclaration:
    """Turn ``with_context`` arguments into a :class:`ContextDeclaration`.

    Accepts exactly one context type and at most one ``skip_teardown`` marker,
    in any order.
    """
    context_type: Any = None
    found_type = False
    skip = False

    for position, argument in enumerate(arguments):
        if _is_skip_teardown(argument):
            if skip:
                msg = "expected only a single `skip_teardown` argument"
                raise DeclarationError(msg)
            skip = True
        elif _is_type_expression(argument):
            if found_type:
                msg = "expected only a single context type"
                raise DeclarationError(msg)
            context_type = argument
            found_type = True
        elif callable(argument) and position == 0 and len(arguments) == 1:
            msg = "with_context must be called with a context type, e.g. @with_context(MyContext)"
            raise DeclarationError(msg)
        else:
            msg = f"unexpected argument {argument!r}: expected a context type or `skip_teardown`"
            raise DeclarationError(msg)

    if not found_type:
        msg = "expected at least one context type"
        raise DeclarationError(msg)

    return ContextDeclaration(context_type=context_type, skip_teardown=skip)


def _is_skip_teardown(argument: Any) -> bool:
    if argument is skip_teardown:
        return True
    return isinstance(argument, str) and argument in _SKIP_TEARDOWN_SPELLINGS


def _is_type_expression(argument: Any) -> bool:
    if inspect.isclass(argument):
        return True
    origin = get_origin(argument)
    return origin is not None and inspect.isclass(origin)
