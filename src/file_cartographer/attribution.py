"""Decide which registered category is responsible for the current read.

Two strategies are available and both are pure functions of the active call
chain:

``ScopeResolver``
    Decoders announce the code unit they belong to with :func:`scope` or the
    :func:`attributed` decorator.  The innermost registered scope wins.

``CallStackResolver``
    Walks the interpreter frames outward from the read site and matches each
    frame's defining class or module against the registry, so decoders need no
    changes at all.
"""

# mypy: ignore-errors

from __future__ import annotations

import collections.abc as cabc
import contextlib
import functools
import inspect
import logging
from contextvars import ContextVar
from types import FrameType
from typing import Protocol, TypeVar

from .categories import DEFAULT_CATEGORY_ID, CategoryRegistry

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=cabc.Callable[..., object])

_ACTIVE_SCOPES: ContextVar[tuple[str, ...]] = ContextVar(
    "file_cartographer_scopes", default=()
)

# Frames from these modules belong to the instrumentation, never to a decoder.
INTERNAL_MODULES = frozenset({__name__, "file_cartographer.reader"})


class Resolver(Protocol):
    """Anything that maps the current call chain to a category id."""

    def resolve(self, registry: CategoryRegistry) -> int:
        """Return the id of the category responsible for the current read."""


@contextlib.contextmanager
def scope(owner_key: str) -> cabc.Iterator[None]:
    """Attribute every read issued inside the block to ``owner_key``."""
    token = _ACTIVE_SCOPES.set(_ACTIVE_SCOPES.get() + (owner_key,))
    try:
        yield
    finally:
        _ACTIVE_SCOPES.reset(token)


def attributed(owner_key: str) -> cabc.Callable[[F], F]:
    """Decorator form of :func:`scope` for decoder entry points."""

    def decorate(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: object, **kwargs: object) -> object:
            with scope(owner_key):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorate


def active_scopes() -> tuple[str, ...]:
    """Return the scope stack, innermost last."""
    return _ACTIVE_SCOPES.get()


class ScopeResolver:
    """Resolve against the explicit :func:`scope` stack."""

    def resolve(self, registry: CategoryRegistry) -> int:
        for owner_key in reversed(_ACTIVE_SCOPES.get()):
            category_id = registry.lookup(owner_key)
            if category_id is not None:
                return category_id
        return DEFAULT_CATEGORY_ID


def code_units(frame: FrameType) -> tuple[str, ...]:
    """Return the identifiers of the code unit that owns ``frame``.

    Methods yield ``"<module>.<Class>"`` followed by ``"<module>"``; plain and
    nested functions only yield the module name.
    """
    module = frame.f_globals.get("__name__", "")
    owner, _, _ = frame.f_code.co_qualname.rpartition(".")
    if owner and not owner.endswith("<locals>"):
        return (f"{module}.{owner}", module)
    return (module,)


class CallStackResolver:
    """Resolve by walking interpreter frames from the read site outward."""

    def __init__(self, skip_modules: cabc.Iterable[str] = ()) -> None:
        self.skip_modules = INTERNAL_MODULES | frozenset(skip_modules)

    def resolve(self, registry: CategoryRegistry) -> int:
        frame = inspect.currentframe()
        try:
            while frame is not None:
                if frame.f_globals.get("__name__") not in self.skip_modules:
                    for unit in code_units(frame):
                        category_id = registry.lookup(unit)
                        if category_id is not None:
                            return category_id
                frame = frame.f_back
        finally:
            del frame
        return DEFAULT_CATEGORY_ID


RESOLVERS: dict[str, type[ScopeResolver] | type[CallStackResolver]] = {
    "scope": ScopeResolver,
    "stack": CallStackResolver,
}
