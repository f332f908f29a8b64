"""Tree-walking evaluation of compiled scripts.

Statements run strictly in document order. Each block gets its own Scope: the script body,
every ``chat`` and ``gen`` block, and every ``each`` iteration. Failures propagate unchanged;
bindings and messages committed before a failure are not rolled back.
"""

from __future__ import annotations

from collections.abc import MutableMapping, Sequence
import logging
from pathlib import Path
from typing import Any, Callable

from .context import Commit, ExecutionContext, Feedback, NoOp, ToolCallHandler
from .exceptions import ScopeLookupError
from .loop import run_conversation
from .scope import UNBOUND, Scope
from .statements import (
    ChatStatement,
    EachStatement,
    GenStatement,
    MessageStatement,
    PromptStatement,
    ResponseStatement,
    Script,
    ToolStatement,
    Unknown,
    compile_script,
    load_script,
)
from .template import render
from .tool import ToolDeclaration
from ..types_.core import Message

logger = logging.getLogger(__name__)


class GenerationHandler:
    """Turns the single tool call of a generation into a commit instruction.

    The value lands in ``target`` (a Scope or a record) under ``key``; with ``feedback`` the
    commit waits for the reviewer to accept it.
    """

    def __init__(self, declaration: ToolDeclaration, target: Scope | MutableMapping, key: str, feedback: bool):
        self.declaration = declaration
        self.target = target
        self.key = key
        self.feedback = feedback
        self.commits: list[Commit] = []

    def __call__(self, arguments: Any, context: ExecutionContext) -> Feedback | NoOp:
        value = self.declaration.unwrap(arguments)
        commit = Commit(target=self.target, key=self.key, value=value)
        self.commits.append(commit)
        if self.feedback:
            return Feedback(content=value, commit=commit)
        return NoOp(content=value, commit=commit)

    @property
    def committed(self) -> bool:
        """Whether any value produced by this handler was stored."""
        return any(commit.applied for commit in self.commits)


class _Chat:
    """Mutable state of one ``chat`` block."""

    def __init__(self, scope: Scope):
        self.scope = scope
        self.messages: list[Message] = []
        self.tools: list[ToolDeclaration] = []
        self.routes: dict[str, ToolCallHandler] = {}


class Evaluator:
    """Evaluate compiled scripts against an ExecutionContext."""

    def __init__(self, context: ExecutionContext):
        self.context = context
        self._statements: dict[type, Callable[[Any, Scope], None]] = {
            PromptStatement: self.execute_prompt,
            ChatStatement: self.execute_chat,
            GenStatement: self.execute_gen,
            EachStatement: self.execute_each,
            Unknown: self.skip,
        }
        self._chat_items: dict[type, Callable[[Any, _Chat], None]] = {
            MessageStatement: self._chat_message,
            PromptStatement: lambda statement, chat: self.execute_prompt(statement, chat.scope),
            ToolStatement: self._chat_tool,
            ResponseStatement: self._chat_response,
            Unknown: lambda statement, chat: self.skip(statement, chat.scope),
        }

    def run(self, script: Script, scope: Scope | None = None) -> Scope:
        """Evaluate a script; return the scope holding its top-level bindings."""
        body_scope = (scope or Scope()).child()
        for statement in script.body:
            self.execute(statement, body_scope)
        return body_scope

    def execute(self, statement: Any, scope: Scope) -> None:
        execute = self._statements.get(type(statement))
        if execute is None:
            raise TypeError(f"Unsupported statement type: {type(statement)}")
        execute(statement, scope)

    def skip(self, statement: Unknown, scope: Scope) -> None:
        logger.debug(f"Skipping unrecognized statement <{statement.tag}>")

    def execute_prompt(self, statement: PromptStatement, scope: Scope) -> None:
        answer = self.context.input(render(statement.prompt, scope))
        scope.bind(statement.store, answer)

    # --- chat ---
    def execute_chat(self, statement: ChatStatement, scope: Scope) -> None:
        chat = _Chat(scope.child())
        for item in statement.body:
            execute = self._chat_items.get(type(item))
            if execute is None:
                raise TypeError(f"Unsupported chat statement type: {type(item)}")
            execute(item, chat)

    def _chat_message(self, statement: MessageStatement, chat: _Chat) -> None:
        chat.messages.append(statement.template.render(chat.scope))

    def _chat_tool(self, statement: ToolStatement, chat: _Chat) -> None:
        declaration = statement.declaration
        chat.tools.append(declaration)
        if declaration.action is None:
            return
        handler = self.context.handlers.get(declaration.action)
        if handler is None:
            logger.warning(f"Tool '{declaration.name}' routes to missing handler '{declaration.action}'")
        else:
            chat.routes[declaration.name] = handler

    def _chat_response(self, statement: ResponseStatement, chat: _Chat) -> None:
        context = self.context.with_handlers(chat.routes) if chat.routes else self.context
        rounds = run_conversation(chat.messages, chat.tools, context)
        logger.debug(f"Chat response finished after {rounds} round(s)")

    # --- generation ---
    def generate(self, statement: GenStatement, scope: Scope, target: Scope | MutableMapping) -> None:
        """Run one generation in ``scope`` and commit the produced value into ``target``."""
        declaration = statement.declaration
        messages: list[Message] = [template.render(scope) for template in statement.messages]
        handler = GenerationHandler(declaration, target, statement.store, statement.feedback)
        context = self.context.with_handlers({declaration.name: handler})
        run_conversation(messages, [declaration], context, tool_choice=declaration.name)
        if not handler.committed:
            logger.warning(f"Generation '{statement.store}' finished without producing a value")

    def execute_gen(self, statement: GenStatement, scope: Scope) -> None:
        self.generate(statement, scope.child(), target=scope)

    def execute_each(self, statement: EachStatement, scope: Scope) -> None:
        records = scope.lookup(statement.source)
        if records is UNBOUND:
            raise ScopeLookupError(statement.source)
        if (
            isinstance(records, (str, bytes))
            or not isinstance(records, Sequence)
            or not all(isinstance(record, MutableMapping) for record in records)
        ):
            raise ScopeLookupError(statement.source, "expected a sequence of records")

        for index, record in enumerate(records):
            logger.debug(f"Generating '{statement.store}' for record {index} of '{statement.source}'")
            self.generate(statement, scope.child(dict(record)), target=record)


def evaluate(script: str | Path | Script, context: ExecutionContext, scope: Scope | None = None) -> Scope:
    """Compile (if needed) and evaluate a script.

    Parameters
    ----------
    script : str | Path | Script
        Script markup, a path to a script file, or a compiled Script.
    context : ExecutionContext
        Collaborators for the evaluation.
    scope : Scope | None, optional
        Enclosing scope providing initial bindings, by default None

    Returns
    -------
    Scope
        The scope holding the script's top-level bindings.
    """
    if isinstance(script, Path):
        script = load_script(script)
    elif isinstance(script, str):
        script = compile_script(script)
    return Evaluator(context).run(script, scope)
