from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .openai_compat import ChatCompletionMessageToolCall
from ..utilities import format_json

Role = Literal["assistant", "system", "tool", "user"]


class Message(BaseModel):
    role: Role = Field(description="The role of the message author.", min_length=1)
    content: str = Field(description="The contents of the message.")

    def __repr__(self):
        return format_json(self.model_dump(exclude_none=True))

    def to_wire(self) -> dict:
        """Serialize for the chat completions API."""
        return self.model_dump(exclude_none=True)


# These messages are for composing Conversations (i.e., inputs to the LLM)
class SystemMessage(Message):
    role: Literal["system"] = "system"


class UserMessage(Message):
    role: Literal["user"] = "user"


class AssistantMessage(Message):
    role: Literal["assistant"] = "assistant"
    # assistant turns that request tools may carry no text
    content: str | None = Field(default=None, description="The contents of the message.")
    tool_calls: list[ChatCompletionMessageToolCall] | None = Field(
        default=None, description="Tool invocations requested by the model."
    )


class ToolResultMessage(Message):
    role: Literal["tool"] = "tool"
    content: str = Field(description="The result of the tool call.")
    tool_call_id: str = Field(description="The tool_call.id that requested this response")
    name: str | None = Field(default=None, description="The name of the tool that was called")
