import json
from unittest.mock import Mock

import pytest

from convoscript.core.context import ExecutionContext
from convoscript.types_.openai_compat import (
    ChatCompletion,
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionMessageToolCall,
    ChatCompletionMessageToolCallFunction,
)


def text_completion(content: str) -> ChatCompletion:
    return ChatCompletion(
        choices=[
            ChatCompletionChoice(finish_reason="stop", message=ChatCompletionMessage(role="assistant", content=content))
        ]
    )


def tool_completion(*calls: tuple[str, str, dict]) -> ChatCompletion:
    """Build a completion requesting tool calls given as (id, name, arguments)."""
    return ChatCompletion(
        choices=[
            ChatCompletionChoice(
                finish_reason="tool_calls",
                message=ChatCompletionMessage(
                    role="assistant",
                    tool_calls=[
                        ChatCompletionMessageToolCall(
                            id=call_id,
                            function=ChatCompletionMessageToolCallFunction(name=name, arguments=json.dumps(arguments)),
                        )
                        for call_id, name, arguments in calls
                    ],
                ),
            )
        ]
    )


@pytest.fixture
def mock_client():
    """Mock API client; set ``chat.completions.create.side_effect`` per test"""
    return Mock()


@pytest.fixture
def answers():
    """Scripted human input, consumed in order"""
    return []


@pytest.fixture
def prompts():
    """Prompts shown to the human, in order"""
    return []


@pytest.fixture
def context(mock_client, answers, prompts):
    def fake_input(prompt: str) -> str:
        prompts.append(prompt)
        return answers.pop(0)

    return ExecutionContext(client=mock_client, input=fake_input, display=lambda _content: None)


@pytest.fixture
def make_text_completion():
    return text_completion


@pytest.fixture
def make_tool_completion():
    return tool_completion
