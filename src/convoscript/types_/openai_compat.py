from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel

from aisuite.framework import ChatCompletionResponse as AISuiteChatCompletion
from openai.types.chat import ChatCompletion as OpenAIChatCompletion

logger = logging.getLogger(__name__)


# OpenAI compatibility
class ChatCompletionMessageToolCallFunction(BaseModel, extra="ignore"):
    name: str
    arguments: str


class ChatCompletionMessageToolCall(BaseModel, extra="ignore"):
    id: str
    function: ChatCompletionMessageToolCallFunction
    type: Literal["function"] = "function"


class ChatCompletionMessage(BaseModel, extra="ignore"):
    role: Literal["assistant", "system", "tool", "user"] = "assistant"
    content: str | None = None
    tool_calls: list[ChatCompletionMessageToolCall] | None = None
    refusal: str | None = None


class ChatCompletionChoice(BaseModel, extra="ignore"):
    finish_reason: Literal["stop", "length", "tool_calls", "content_filter", "function_call"] | None = None
    message: ChatCompletionMessage


class CompletionUsage(BaseModel, extra="ignore"):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ChatCompletion(BaseModel, extra="ignore"):
    id: int | str | None = None
    created: int | None = None
    model: str | None = None
    usage: CompletionUsage | None = None
    choices: list[ChatCompletionChoice]


def _usage(response: Any) -> CompletionUsage | None:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    if isinstance(usage, BaseModel):
        usage = usage.model_dump()
    elif not isinstance(usage, dict):
        usage = vars(usage)
    return CompletionUsage(**usage)


def convert_response(response: ChatCompletion | OpenAIChatCompletion | AISuiteChatCompletion) -> ChatCompletion:
    """Unify aisuite response object types."""
    if isinstance(response, ChatCompletion):
        return response
    elif isinstance(response, OpenAIChatCompletion):
        return ChatCompletion(**response.model_dump())
    else:
        choices = []
        for choice in response.choices:
            message = ChatCompletionMessage(**choice.message.model_dump())

            choices.append(
                ChatCompletionChoice(
                    message=message,
                    finish_reason=choice.finish_reason if hasattr(choice, "finish_reason") else None,
                )
            )

        completion_response = ChatCompletion(
            id=response.id if hasattr(response, "id") else None,
            created=getattr(response, "created", None),
            model=getattr(response, "model", None),
            usage=_usage(response),
            choices=choices,
        )
        return completion_response
