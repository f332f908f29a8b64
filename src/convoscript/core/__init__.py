"""Core components for scripted LLM conversations.

This module provides the script language (markup, expressions, scopes, statements),
the parameter schema builder for tool declarations, and the conversation loop that
dispatches tool calls to handlers with human-in-the-loop review.
"""

from .context import Commit, ExecutionContext, Feedback, Loop, LoopAction, NoOp, ToolCallHandler
from .evaluator import Evaluator, evaluate
from .exceptions import ConfigurationError, ParseError, ScopeLookupError, ScriptError, UnknownToolError
from .expression import parse
from .loop import run_conversation
from .markup import dump_markup, parse_markup
from .schema import ParameterSchema, parse_param
from .scope import UNBOUND, Scope
from .statements import Script, compile_script, load_script
from .template import interpolate
from .tool import ToolDeclaration

__all__ = [
    # Language
    "parse",
    "parse_markup",
    "dump_markup",
    "interpolate",
    "Scope",
    "UNBOUND",
    "Script",
    "compile_script",
    "load_script",
    # Tools
    "ParameterSchema",
    "parse_param",
    "ToolDeclaration",
    # Execution
    "ExecutionContext",
    "ToolCallHandler",
    "LoopAction",
    "Loop",
    "Feedback",
    "NoOp",
    "Commit",
    "Evaluator",
    "evaluate",
    "run_conversation",
    # Exceptions
    "ScriptError",
    "ParseError",
    "ScopeLookupError",
    "UnknownToolError",
    "ConfigurationError",
]
