"""Components for composable prompting.

The base unit is a Message(role, content), which has generally been accepted by all LLM chat APIs.

Script text is compiled once into fragments (see ``expression.parse``); a MessageTemplate keeps
those fragments with the role they render to. Rendering happens against a Scope at the moment a
statement runs, so a message sees exactly the bindings made before it.

References that cannot be resolved are emitted verbatim. This keeps literal ``$`` text intact
(prices, shell snippets) instead of failing the whole script.

Filters (``{{ name | upper }}``) are looked up in a jinja2 Environment, so every jinja2 builtin
filter is available. Calls (``{{ range 3 }}``) resolve to a callable bound in scope first,
then to a jinja2 global.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from jinja2 import Environment, StrictUndefined, Undefined
from jinja2.exceptions import UndefinedError
from pydantic import BaseModel

from .exceptions import ConfigurationError
from .expression import (
    Call,
    Constant,
    ExprFragment,
    FieldSegment,
    FilterPipeline,
    Fragment,
    IndexSegment,
    KeywordArg,
    Path,
    TextFragment,
    parse,
)
from .scope import UNBOUND, Scope
from ..types_.core import Message, Role

logger = logging.getLogger(__name__)

environment = Environment(undefined=StrictUndefined)  # NOQA: S701


def stringify(value: Any) -> str:
    """Convert a bound value to message text."""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (Mapping, list, tuple, bool)) or value is None:
        return json.dumps(value, default=str)
    return str(value)


def resolve_path(path: Path, scope: Scope) -> Any:
    """Resolve a path through the scope chain and then into the bound value."""
    value = scope.lookup(path.root)
    for segment in path.segments[1:]:
        if value is UNBOUND:
            break
        value = _step(value, segment)
    return value


def _step(value: Any, segment: FieldSegment | IndexSegment) -> Any:
    if isinstance(segment, IndexSegment):
        if isinstance(value, Sequence) and not isinstance(value, str):
            try:
                return value[segment.index]
            except IndexError:
                return UNBOUND
        return UNBOUND

    if isinstance(value, Mapping):
        return value.get(segment.field, UNBOUND)
    if isinstance(value, BaseModel):
        return getattr(value, segment.field, UNBOUND)
    return UNBOUND


def _arguments(
    args: Sequence[Any], kwargs: Sequence[KeywordArg], scope: Scope
) -> tuple[list[Any], dict[str, Any]]:
    positional = [evaluate_expression(arg, scope) for arg in args]
    # duplicate keywords: the last occurrence wins
    keywords = {kwarg.name: evaluate_expression(kwarg.value, scope) for kwarg in kwargs}
    return positional, keywords


def evaluate_expression(expr: Any, scope: Scope) -> Any:
    """Evaluate an expression AST against a scope.

    Returns UNBOUND when any path the value depends on is unbound.

    Raises
    ------
    ConfigurationError
        If a pipeline names a filter that does not exist.
    """
    if isinstance(expr, Constant):
        return expr.value

    if isinstance(expr, Path):
        return resolve_path(expr, scope)

    if isinstance(expr, Call):
        args, kwargs = _arguments(expr.args, expr.kwargs, scope)
        if UNBOUND in args or UNBOUND in kwargs.values():
            return UNBOUND
        func = scope.lookup(expr.name)
        if not callable(func):
            func = environment.globals.get(expr.name, UNBOUND)
        if not callable(func):
            return UNBOUND
        return func(*args, **kwargs)

    if isinstance(expr, FilterPipeline):
        value = evaluate_expression(expr.base, scope)
        if value is UNBOUND:
            value = environment.undefined(name=getattr(expr.base, "root", None))
        for filter_call in expr.filters:
            if filter_call.name not in environment.filters:
                raise ConfigurationError(f"No filter named '{filter_call.name}'")
            args, kwargs = _arguments(filter_call.args, filter_call.kwargs, scope)
            if UNBOUND in args or UNBOUND in kwargs.values():
                return UNBOUND
            try:
                value = environment.call_filter(filter_call.name, value, args=args, kwargs=kwargs)
            except UndefinedError:
                return UNBOUND
        if isinstance(value, Undefined):
            return UNBOUND
        return value

    raise TypeError(f"Unsupported expression type: {type(expr)}")


def render(fragments: Sequence[TextFragment | ExprFragment], scope: Scope) -> str:
    """Render compiled fragments against a scope."""
    parts = []
    for fragment in fragments:
        if isinstance(fragment, TextFragment):
            parts.append(fragment.text)
            continue
        value = evaluate_expression(fragment.expr, scope)
        if value is UNBOUND:
            logger.debug(f"Leaving unresolved reference {fragment.source!r} in place")
            parts.append(fragment.source)
        else:
            parts.append(stringify(value))
    return "".join(parts)


def interpolate(text: str, scope: Scope) -> str:
    """Replace every reference in ``text`` with its stringified binding.

    Examples
    --------
    >>> scope = Scope(bindings={"name": "Ada"})
    >>> interpolate("Hello $name, you owe $5 to $creditor", scope)
    'Hello Ada, you owe $5 to $creditor'
    """
    return render(parse(text), scope)


class MessageTemplate(BaseModel):
    """A message whose content is rendered from compiled template text.

    Attributes
    ----------
        role: The role (system/user) for rendered messages
        fragments: Compiled template text
    """

    role: Role
    fragments: list[Fragment]

    @classmethod
    def from_text(cls, role: Role, text: str) -> MessageTemplate:
        return cls(role=role, fragments=parse(text))

    def render(self, scope: Scope) -> Message:
        """Render the message."""
        return Message(role=self.role, content=render(self.fragments, scope))
