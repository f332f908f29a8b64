"""Execution context shared by the evaluator and the conversation loop.

The context bundles the collaborators a script needs from its host:

- an OpenAI-compatible client (``client.chat.completions.create``), e.g. an aisuite Client
- a dispatch table mapping tool names to handlers
- a human-input function and a display function for human-in-the-loop review

Handlers return a LoopAction telling the conversation loop what to do next:

- Loop: send ``content`` back as the tool result and run another round
- Feedback: show ``content`` to a reviewer; blank input accepts, anything else is a revision
- NoOp: nothing further is required for this call

Any action may carry a Commit, an explicit instruction to store a value in a scope or a record.
The loop applies it immediately for Loop/NoOp and only on acceptance for Feedback.
"""

from __future__ import annotations

from collections.abc import MutableMapping
import copy
import logging
from typing import Annotated, Any, Callable, Literal, Protocol, Union, cast

import click
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing_extensions import runtime_checkable

from .scope import Scope
from .tool import ToolDeclaration
from ..types_.base import JSON, json_adapter
from ..types_.core import Message
from ..types_.openai_compat import ChatCompletion, CompletionUsage, convert_response

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai:gpt-3.5-turbo-1106"


class Commit(BaseModel):
    """Store ``value`` under ``key`` in a Scope or a mutable record."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    target: Any = Field(description="A Scope or a mutable mapping; records are updated in place.")
    key: str
    value: Any = None
    applied: bool = False

    def apply(self) -> None:
        if isinstance(self.target, Scope):
            self.target.bind(self.key, self.value)
        elif isinstance(self.target, MutableMapping):
            self.target[self.key] = self.value
        else:
            raise TypeError(f"Cannot commit into {type(self.target).__name__}")
        self.applied = True
        logger.debug(f"Committed '{self.key}'")


class _Action(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: Any = None
    commit: Commit | None = None


class Loop(_Action):
    action: Literal["loop"] = "loop"


class Feedback(_Action):
    action: Literal["feedback"] = "feedback"
    on_accept: Callable[[], Any] | None = Field(default=None, description="Called when the reviewer accepts.")
    on_reject: Callable[[str], Any] | None = Field(default=None, description="Called with the revision text.")


class NoOp(_Action):
    action: Literal["noop"] = "noop"


LoopAction = Annotated[Union[Loop, Feedback, NoOp], Field(discriminator="action")]
_loop_action_adapter: TypeAdapter[Loop | Feedback | NoOp] = TypeAdapter(LoopAction)


def coerce_action(result: Any) -> Loop | Feedback | NoOp:
    """Accept a LoopAction model or a mapping like ``{"action": "loop", "content": ...}``."""
    if isinstance(result, (Loop, Feedback, NoOp)):
        return result
    return _loop_action_adapter.validate_python(result)


@runtime_checkable
class ToolCallHandler(Protocol):
    """Handle one tool call requested by the model."""

    def __call__(self, arguments: Any, context: ExecutionContext) -> Loop | Feedback | NoOp | dict[str, Any]: ...


def console_input(prompt: str) -> str:
    """Ask the human at the terminal; an empty answer is allowed."""
    return click.prompt(prompt, default="", show_default=False)


class ExecutionContext:
    """Collaborators and settings for one script evaluation."""

    def __init__(
        self,
        client: Any,
        handlers: dict[str, ToolCallHandler] | None = None,
        model: str = DEFAULT_MODEL,
        input: Callable[[str], str] = console_input,  # NOQA: A002
        display: Callable[[str], None] = click.echo,
        request_params: dict[str, JSON] | None = None,
    ):
        """Initialize an ExecutionContext.

        Parameters
        ----------
        client : Any
            OpenAI-compatible API client (e.g. ``aisuite.Client``)
        handlers : dict[str, ToolCallHandler] | None, optional
            Dispatch table from tool name to handler, by default None
        model : str, optional
            Model identifier in 'provider:identifier' format, by default DEFAULT_MODEL
        input : Callable[[str], str], optional
            Human-input collaborator, by default prompts at the terminal
        display : Callable[[str], None], optional
            Shows content to a human reviewer, by default echoes to the terminal
        request_params : dict[str, JSON] | None, optional
            Additional API parameters used for every request, by default None
        """
        self.client = client
        self.handlers: dict[str, ToolCallHandler] = dict(handlers or {})
        self.model = model
        self.input = input
        self.display = display
        self.request_params = request_params
        self.usage: list[CompletionUsage] = []

    @property
    def model(self) -> str:
        """Get the model identifier in 'provider:name' format."""
        return self._model

    @model.setter
    def model(self, model: str):
        if not model or not isinstance(model, str):
            raise ValueError("Model must be a non-empty string")
        if ":" not in model:
            raise ValueError(
                "Model must be in format 'provider:identifier' (e.g., 'openai:gpt-4o' or 'anthropic:claude-3-5-haiku-latest')"
            )
        self._model = model

    @property
    def request_params(self) -> dict[str, JSON]:
        """Request parameters used for every execution."""
        return self._request_params

    @request_params.setter
    def request_params(self, request_params: dict[str, JSON] | None):
        params = json_adapter.validate_python(dict(request_params or {}))
        if "model" in params:
            raise ValueError("'model' should be set separately")
        self._request_params = params

    def with_handlers(self, handlers: dict[str, ToolCallHandler]) -> ExecutionContext:
        """Derive a context whose dispatch table is extended (and overridden) by ``handlers``."""
        derived = copy.copy(self)
        derived.handlers = {**self.handlers, **handlers}
        return derived

    def _make_tool_params(
        self, tools: list[ToolDeclaration], tool_choice: str | None, model: str
    ) -> dict[str, JSON]:
        """Generate provider-specific tool configuration parameters."""
        wire_tools = cast(JSON, [t.to_wire() for t in tools])
        provider = model.split(":")[0]
        if provider == "anthropic":
            choice = {"type": "tool", "name": tool_choice} if tool_choice else {"type": "auto"}
        else:
            choice = {"type": "function", "function": {"name": tool_choice}} if tool_choice else "auto"
        return {"tools": wire_tools, "tool_choice": cast(JSON, choice)}

    def complete(
        self,
        messages: list[Message],
        tools: list[ToolDeclaration] | None = None,
        tool_choice: str | None = None,
        model: str | None = None,
    ) -> ChatCompletion:
        """Call the LLM chat endpoint and convert its response.

        Parameters
        ----------
        messages : list[Message]
            The full conversation so far.
        tools : list[ToolDeclaration] | None, optional
            Tools the model may call, by default None
        tool_choice : str | None, optional
            Name of a tool the model must call, by default the model chooses
        model : str | None, optional
            Overrides the context's model for this call, by default None
        """
        model = model or self.model
        params = dict(self.request_params)
        if tools:
            params |= self._make_tool_params(tools, tool_choice, model)

        response = self.client.chat.completions.create(
            model=model,
            messages=[message.to_wire() for message in messages],
            **params,
        )
        completion = convert_response(response)
        if completion.usage is not None:
            self.usage.append(completion.usage)
        logger.debug(
            f"Completion created={completion.created} model={completion.model} usage={completion.usage}"
        )
        return completion
