"""Chained binding environments.

A Scope is opened on entry to every block (the script body, each ``chat`` and ``gen``
block, and each ``each`` iteration) and discarded when the block exits. Writes always land
in the innermost scope; lookups fall back through the parent chain.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from .exceptions import ScopeLookupError

logger = logging.getLogger(__name__)


class _Unbound:
    """Marker for a name with no binding anywhere in the chain."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNBOUND"

    def __bool__(self):
        return False


UNBOUND: Any = _Unbound()


class Scope:
    """A binding environment with an optional enclosing scope.

    The parent is only referenced, never modified; a child never outlives the block that
    created it, so the parent is always alive while the child is in use.

    Examples
    --------
    >>> outer = Scope()
    >>> outer.bind("topic", "tides")
    >>> inner = outer.child()
    >>> inner.lookup("topic")
    'tides'
    >>> inner.bind("topic", "moons")
    >>> outer.lookup("topic")
    'tides'
    """

    def __init__(self, parent: Scope | None = None, bindings: dict[str, Any] | None = None):
        self.parent = parent
        self.bindings: dict[str, Any] = dict(bindings or {})

    def __repr__(self):
        return f"Scope(depth={self.depth}, bindings={list(self.bindings)})"

    @property
    def depth(self) -> int:
        """Number of enclosing scopes."""
        return 0 if self.parent is None else self.parent.depth + 1

    def child(self, bindings: dict[str, Any] | None = None) -> Scope:
        """Open a nested scope, optionally seeded with bindings."""
        return Scope(parent=self, bindings=bindings)

    def bind(self, name: str, value: Any) -> None:
        self.bindings[name] = value

    def lookup(self, name: str) -> Any:
        """Return the innermost binding for ``name``, or UNBOUND."""
        scope: Scope | None = self
        while scope is not None:
            if name in scope.bindings:
                return scope.bindings[name]
            scope = scope.parent
        return UNBOUND

    def require(self, name: str) -> Any:
        """Return the binding for ``name``; raise ScopeLookupError when unbound."""
        value = self.lookup(name)
        if value is UNBOUND:
            raise ScopeLookupError(name)
        return value

    def chain(self) -> Iterator[Scope]:
        """Iterate from this scope outward to the root."""
        scope: Scope | None = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def flatten(self) -> dict[str, Any]:
        """Merged view of every visible binding; inner scopes shadow outer ones."""
        merged: dict[str, Any] = {}
        for scope in reversed(list(self.chain())):
            merged.update(scope.bindings)
        return merged


def bind(scope: Scope, name: str, value: Any) -> None:
    scope.bind(name, value)


def lookup(scope: Scope, name: str) -> Any:
    return scope.lookup(name)


def child_scope(parent: Scope) -> Scope:
    return parent.child()
