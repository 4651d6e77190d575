"""Public Python API for testctx."""

from __future__ import annotations

from . import errors
from ._declaration import ContextDeclaration, skip_teardown
from ._decorators import with_context
from ._signature import ContextBindingMode, ContextParameter, Mut, MutRef, Ref
from .bridge import BlockingContext, block_on
from .contexts import AsyncTestContext, TestContext

AmbiguousContextError = errors.AmbiguousContextError
ConfigurationError = errors.ConfigurationError
DeclarationError = errors.DeclarationError
MissingContextError = errors.MissingContextError
SignatureError = errors.SignatureError
TestContextError = errors.TestContextError
TestContextWarning = errors.TestContextWarning

__all__ = [
    "AmbiguousContextError",
    "AsyncTestContext",
    "BlockingContext",
    "ConfigurationError",
    "ContextBindingMode",
    "ContextDeclaration",
    "ContextParameter",
    "DeclarationError",
    "MissingContextError",
    "Mut",
    "MutRef",
    "Ref",
    "SignatureError",
    "TestContext",
    "TestContextError",
    "TestContextWarning",
    "block_on",
    "skip_teardown",
    "with_context",
]
