"""Tool declarations and tool results.

A ToolDeclaration is the boundary between the markup-derived ParameterSchema and the
function-calling wire format sent to the LLM. Chat APIs require object parameters, so a
declaration whose schema is an array or scalar is wrapped in a single required ``input``
property; ``unwrap`` reverses this on the arguments the model sends back.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from .schema import ParameterSchema
from ..types_.base import JSON
from ..types_.core import ToolResultMessage

logger = logging.getLogger(__name__)

WRAPPED_INPUT = "input"


class ToolDeclaration(BaseModel):
    """A named, schema-described function the LLM may request."""

    name: str = Field(description="Tool name; also the key into the handler dispatch table.")
    description: str | None = None
    parameters: ParameterSchema = Field(default_factory=lambda: ParameterSchema(kind="object", properties={}))
    action: str | None = Field(default=None, description="Handler that serves this tool, if not named after it.")

    @property
    def wrapped(self) -> bool:
        """Whether the parameters are wrapped in a single 'input' property."""
        return self.parameters.kind != "object"

    def parameters_schema(self) -> dict[str, Any]:
        if self.wrapped:
            return {
                "type": "object",
                "properties": {WRAPPED_INPUT: self.parameters.to_json_schema()},
                "required": [WRAPPED_INPUT],
            }
        return self.parameters.to_json_schema()

    def to_wire(self) -> dict[str, Any]:
        """Render the OpenAI-compatible function tool descriptor."""
        function: dict[str, Any] = {"name": self.name, "parameters": self.parameters_schema()}
        if self.description is not None:
            function["description"] = self.description
        return {"type": "function", "function": function}

    def unwrap(self, arguments: Any) -> Any:
        """Return the value the declared schema describes."""
        if self.wrapped and isinstance(arguments, dict) and WRAPPED_INPUT in arguments:
            return arguments[WRAPPED_INPUT]
        return arguments


def respond_as_tool(tool_call_id: str, response: str | JSON | BaseModel | None, name: str | None = None) -> ToolResultMessage:
    """Convert a response into a ToolResultMessage for tool output.

    Serializes the response into a JSON string if needed, ensuring it can be consumed as a tool result.
    """
    if tool_call_id is None:
        raise ValueError("tool_call_id is required")

    if response is None:
        responsestr = ""
    elif isinstance(response, str):
        responsestr = response
    elif isinstance(response, BaseModel):
        responsestr = response.model_dump_json()
    else:
        try:
            responsestr = json.dumps(response)
        except (TypeError, ValueError) as e:
            logger.debug(f"Could not serialize result as json string: {e}")
            responsestr = str(response)

    return ToolResultMessage(tool_call_id=tool_call_id, content=responsestr, name=name)
