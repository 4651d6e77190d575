"""Find and classify the context parameter of a decorated test.

A test declares how it wants to receive its context through the parameter
annotation:

==========================  ===========================
annotation                  binding mode
==========================  ===========================
``Counter``                 ``ContextBindingMode.OWNED``
``Mut[Counter]``            ``ContextBindingMode.OWNED_MUTABLE``
``Ref[Counter]``            ``ContextBindingMode.REFERENCE``
``MutRef[Counter]``         ``ContextBindingMode.MUTABLE_REFERENCE``
==========================  ===========================

``Mut``, ``Ref`` and ``MutRef`` are ``typing.Annotated`` aliases, so type
checkers see the plain context type. Annotations are never evaluated: string
annotations (``from __future__ import annotations``) are parsed with
:mod:`ast` and compared by name, and so are the ``typing.ForwardRef`` objects
left by quoted names inside evaluated annotations such as ``Ref["Counter"]``.

Types are compared by their final name plus any generic arguments, so
``models.Counter``, ``"Counter"`` and ``Counter`` all match each other. Two
unrelated classes that share a name also match; keep context class names
unique within a test module.

String annotations are only recognised in the spellings above: the marker
must be written as ``Mut``, ``Ref`` or ``MutRef`` (optionally module
qualified), so ``from testctx import MutRef as MR`` followed by
``"MR[Counter]"`` is not seen as a marker, and ``"Annotated[Counter, ...]"``
is compared as an ``Annotated`` type rather than unwrapped. Evaluated
annotations do not have these limits.
"""

from __future__ import annotations

import ast
import inspect
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Callable, ForwardRef, NamedTuple, TypeVar, get_args, get_origin

from .errors import (
    AmbiguousContextError,
    MissingContextError,
    TestContextWarning,
    describe_function,
)

T = TypeVar("T")


class ContextBindingMode(Enum):
    """How the test body receives its context."""

    OWNED = "owned"
    OWNED_MUTABLE = "owned_mutable"
    REFERENCE = "reference"
    MUTABLE_REFERENCE = "mutable_reference"

    @property
    def takes_ownership(self) -> bool:
        """``True`` when the body keeps the context and teardown is impossible."""
        return self in (ContextBindingMode.OWNED, ContextBindingMode.OWNED_MUTABLE)


class _BindingMarker:
    def __init__(self, mode: ContextBindingMode, alias: str) -> None:
        self.mode = mode
        self.alias = alias

    def __repr__(self) -> str:
        return f"<testctx.{self.alias}>"


_MUT = _BindingMarker(ContextBindingMode.OWNED_MUTABLE, "Mut")
_REF = _BindingMarker(ContextBindingMode.REFERENCE, "Ref")
_MUT_REF = _BindingMarker(ContextBindingMode.MUTABLE_REFERENCE, "MutRef")

Mut = Annotated[T, _MUT]
Ref = Annotated[T, _REF]
MutRef = Annotated[T, _MUT_REF]

_MARKERS_BY_ALIAS = {marker.alias: marker for marker in (_MUT, _REF, _MUT_REF)}


class TypeKey(NamedTuple):
    """Name-based identity of a type expression."""

    name: str
    args: tuple["TypeKey", ...] = ()

    def __str__(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name}[{', '.join(str(arg) for arg in self.args)}]"


@dataclass(frozen=True)
class ContextParameter:
    """The parameter that receives the context."""

    name: str
    mode: ContextBindingMode


@dataclass(frozen=True)
class SignatureAnalysis:
    """Result of :func:`analyze_signature`."""

    parameter: ContextParameter
    original: inspect.Signature
    residual: inspect.Signature


_CANDIDATE_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.KEYWORD_ONLY,
)


def analyze_signature(func: Callable[..., Any], context_type: Any) -> SignatureAnalysis:
    """Locate the one parameter annotated with ``context_type``.

    Raises:
        MissingContextError: No parameter matches.
        AmbiguousContextError: Several parameters match.
    """
    original = inspect.signature(func)
    expected = type_key(context_type)

    matches: list[ContextParameter] = []
    for param in original.parameters.values():
        if param.kind not in _CANDIDATE_KINDS or param.annotation is inspect.Parameter.empty:
            continue
        mode = classify(param.annotation, expected)
        if mode is not None:
            matches.append(ContextParameter(name=param.name, mode=mode))

    if not matches:
        msg = f"{describe_function(func)} has no parameter annotated with {expected}"
        raise MissingContextError(msg)
    if len(matches) > 1:
        names = ", ".join(match.name for match in matches)
        msg = f"{describe_function(func)} has several parameters annotated with {expected}: {names}"
        raise AmbiguousContextError(msg)

    found = matches[0]
    if original.parameters[found.name].default is not inspect.Parameter.empty:
        warnings.warn(
            f"default value of context parameter {found.name!r} in "
            f"{describe_function(func)} is ignored",
            TestContextWarning,
            stacklevel=4,
        )

    residual = original.replace(
        parameters=[p for p in original.parameters.values() if p.name != found.name]
    )
    return SignatureAnalysis(parameter=found, original=original, residual=residual)


def classify(annotation: Any, expected: TypeKey) -> ContextBindingMode | None:
    """Return the binding mode if ``annotation`` names ``expected``, else ``None``."""

    if isinstance(annotation, str):
        return _classify_source(annotation, expected)
    if isinstance(annotation, ForwardRef):
        return _classify_source(annotation.__forward_arg__, expected)

    markers: tuple[_BindingMarker, ...] = ()
    inner = annotation
    if get_origin(annotation) is Annotated:
        inner = get_args(annotation)[0]
        markers = tuple(m for m in annotation.__metadata__ if isinstance(m, _BindingMarker))
    if len(markers) > 1:
        return None
    if type_key(inner) != expected:
        return None
    return markers[0].mode if markers else ContextBindingMode.OWNED


def _classify_source(source: str, expected: TypeKey) -> ContextBindingMode | None:
    node = _parse_expression(source)
    if node is None:
        return None

    mode = ContextBindingMode.OWNED
    if isinstance(node, ast.Subscript):
        marker = _MARKERS_BY_ALIAS.get(_final_name(node.value) or "")
        if marker is not None:
            mode = marker.mode
            node = node.slice
            # Only one layer of Ref/MutRef/Mut is stripped.
            if isinstance(node, ast.Subscript) and _final_name(node.value) in _MARKERS_BY_ALIAS:
                return None

    return mode if _key_from_node(node) == expected else None


def type_key(obj: Any) -> TypeKey:
    """Normalize a type object, generic alias or source string to a :class:`TypeKey`."""

    if isinstance(obj, str):
        node = _parse_expression(obj)
        return _key_from_node(node) if node is not None else TypeKey(obj.strip())
    if isinstance(obj, ForwardRef):
        return type_key(obj.__forward_arg__)
    if obj is None or obj is type(None):
        return TypeKey("None")
    if isinstance(obj, (list, tuple)):
        return TypeKey("", tuple(type_key(arg) for arg in obj))

    origin = get_origin(obj)
    if origin is Annotated:
        return type_key(get_args(obj)[0])
    if origin is not None:
        return TypeKey(_object_name(origin), tuple(type_key(arg) for arg in get_args(obj)))
    return TypeKey(_object_name(obj))


def _object_name(obj: Any) -> str:
    name = getattr(obj, "__name__", None)
    if isinstance(name, str):
        return name
    # typing special forms (Union, Literal values, ...) fall back to their repr
    return repr(obj).rsplit(".", 1)[-1]


def _parse_expression(source: str) -> ast.expr | None:
    try:
        return ast.parse(source.strip(), mode="eval").body
    except SyntaxError:
        return None


def _final_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _key_from_node(node: ast.expr) -> TypeKey:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, str):
            inner = _parse_expression(node.value)
            return _key_from_node(inner) if inner is not None else TypeKey(node.value)
        return TypeKey(repr(node.value))
    if isinstance(node, ast.Subscript):
        base = _key_from_node(node.value)
        elements = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
        return TypeKey(base.name, tuple(_key_from_node(element) for element in elements))
    if isinstance(node, (ast.Tuple, ast.List)):
        return TypeKey("", tuple(_key_from_node(element) for element in node.elts))
    name = _final_name(node)
    if name is not None:
        return TypeKey(name)
    return TypeKey(ast.unparse(node))
