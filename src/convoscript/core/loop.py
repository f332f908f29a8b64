"""The round-trip loop between LLM replies and tool-call dispatch.

Each round sends the whole message list (plus tool declarations) to the LLM and appends the
reply. Every tool call in the reply is dispatched, in order, to its handler, and one tool-result
message is appended per call, so an assistant turn is always followed by its results.

A round ends the loop unless some call in it demanded continuation: a ``loop`` action, or a
``feedback`` action the reviewer answered with a revision. The only repetition is driven by
handlers and reviewers; an unknown tool name aborts immediately.
"""

from __future__ import annotations

import logging
from typing import Any

import json_repair

from .context import ExecutionContext, Feedback, Loop, NoOp, coerce_action
from .exceptions import UnknownToolError
from .tool import ToolDeclaration, respond_as_tool
from ..types_.core import AssistantMessage, Message
from ..types_.openai_compat import ChatCompletionMessageToolCall
from ..utilities import format_json

logger = logging.getLogger(__name__)

REVIEW_PROMPT = "Review the output and see if it matches your expectations. Enter your feedback, or skip to accept."
ACCEPTED = "Accepted"


def _parse_arguments(arguments: str) -> Any:
    if not arguments:
        return {}
    return json_repair.loads(arguments)


def _review(action: Feedback, context: ExecutionContext) -> str | None:
    """Show feedback content to the reviewer; return the revision, or None when accepted."""
    content = action.content if isinstance(action.content, str) else format_json(action.content)
    context.display(content)
    answer = context.input(REVIEW_PROMPT)
    if answer is None or not answer.strip():
        return None
    return answer


def _dispatch(call: ChatCompletionMessageToolCall, messages: list[Message], context: ExecutionContext) -> bool:
    """Run one tool call and append its result; return True when another round is required."""
    name = call.function.name
    handler = context.handlers.get(name)
    if handler is None:
        messages.append(respond_as_tool(call.id, f"Unknown tool: {name}", name=name))
        raise UnknownToolError(name)

    arguments = _parse_arguments(call.function.arguments)
    logger.debug(f"Dispatching {name} ({call.id}) with arguments: {arguments}")
    action = coerce_action(handler(arguments, context))

    if isinstance(action, Loop):
        if action.commit is not None:
            action.commit.apply()
        messages.append(respond_as_tool(call.id, action.content, name=name))
        return True

    if isinstance(action, Feedback):
        revision = _review(action, context)
        if revision is None:
            messages.append(respond_as_tool(call.id, ACCEPTED, name=name))
            if action.commit is not None:
                action.commit.apply()
            if action.on_accept is not None:
                action.on_accept()
            return False

        logger.debug(f"Reviewer requested a revision of {name}")
        messages.append(respond_as_tool(call.id, revision, name=name))
        if action.on_reject is not None:
            action.on_reject(revision)
        return True

    if isinstance(action, NoOp):
        if action.commit is not None:
            action.commit.apply()
        messages.append(respond_as_tool(call.id, action.content, name=name))
        return False

    raise TypeError(f"Unsupported action type: {type(action)}")


def run_conversation(
    messages: list[Message],
    tools: list[ToolDeclaration] | None,
    context: ExecutionContext,
    model: str | None = None,
    tool_choice: str | None = None,
) -> int:
    """Drive LLM rounds until tool-call activity converges.

    Parameters
    ----------
    messages : list[Message]
        Conversation so far; replies and tool results are appended in place.
    tools : list[ToolDeclaration] | None
        Tools the model may call.
    context : ExecutionContext
        LLM client, dispatch table and human-input collaborators.
    model : str | None, optional
        Overrides the context's model, by default None
    tool_choice : str | None, optional
        Name of a tool the model is required to call, by default None

    Returns
    -------
    int
        The number of rounds performed.

    Raises
    ------
    UnknownToolError
        If the model requests a tool missing from the dispatch table.
    """
    rounds = 0
    while True:
        rounds += 1
        logger.debug(f"Conversation round {rounds} with {len(messages)} messages")
        response = context.complete(messages, tools=tools, tool_choice=tool_choice, model=model)
        reply = response.choices[0].message
        tool_calls = reply.tool_calls or []

        messages.append(AssistantMessage(content=reply.content, tool_calls=tool_calls or None))
        if not tool_calls:
            return rounds

        proceed = False
        for call in tool_calls:
            # every call is dispatched, even once continuation is already required
            proceed = _dispatch(call, messages, context) or proceed
        if not proceed:
            return rounds
