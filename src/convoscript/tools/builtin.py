"""Tool handlers available to every script run from the command line.

- ask: the model asks the human a question; the answer goes back to the model.
- code: the model submits code; once it marks the submission complete, a reviewer must accept it.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.context import ExecutionContext, Feedback, Loop, NoOp

logger = logging.getLogger(__name__)


def ask(arguments: Any, context: ExecutionContext) -> Loop:
    """Relay the model's question to the human and return the answer."""
    question = arguments.get("input") if isinstance(arguments, dict) else arguments
    if not question:
        return Loop(content="The 'ask' tool requires an 'input' question.")
    return Loop(content=context.input(str(question)))


def code(arguments: Any, context: ExecutionContext) -> NoOp | Feedback:
    """Accept a code submission; complete submissions need a reviewer's approval."""
    if isinstance(arguments, dict) and arguments.get("complete"):
        return Feedback(content=arguments)
    return NoOp(content=arguments)


BUILTIN_HANDLERS = {
    "ask": ask,
    "code": code,
}
