"""Compile script markup into statements.

A script is compiled completely before anything runs: every message template is parsed and
every required attribute is checked here, so malformed scripts fail before the first prompt
or LLM call. Example::

    <script>
        <p user="Which topic?" store="topic"/>
        <gen store="ideas" array="object" d="Ideas worth writing about">
            <system>You are an editor.</system>
            <user>Suggest three article ideas about $topic.</user>
            <p name="title" d="Working title"/>
            <opt name="angle"/>
            <feedback/>
        </gen>
        <each store="outline" from="ideas">
            <user>Outline an article titled "$title".</user>
            <p name="sections" array="string" minItems="3"/>
        </each>
        <chat>
            <system>You are a helpful assistant.</system>
            <user>Summarize the outlines: {{ ideas | tojson }}</user>
            <tool name="ask" d="Ask the user a clarifying question"/>
            <response/>
        </chat>
    </script>

Tags that are not recognized where they appear compile to ``Unknown`` and are skipped at run
time, so newer scripts still run on older interpreters.
"""

from __future__ import annotations

import logging
from pathlib import Path
import textwrap
from typing import Annotated, Callable, Literal, Union

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError
from .expression import Fragment, parse
from .markup import Element, parse_markup
from .schema import parse_param
from .template import MessageTemplate
from .tool import ToolDeclaration

logger = logging.getLogger(__name__)


class MessageStatement(BaseModel):
    kind: Literal["message"] = "message"
    template: MessageTemplate


class PromptStatement(BaseModel):
    kind: Literal["prompt"] = "prompt"
    prompt: list[Fragment]
    store: str


class ToolStatement(BaseModel):
    kind: Literal["tool"] = "tool"
    declaration: ToolDeclaration


class ResponseStatement(BaseModel):
    kind: Literal["response"] = "response"


class Unknown(BaseModel):
    kind: Literal["unknown"] = "unknown"
    tag: str


ChatItem = Annotated[
    Union[MessageStatement, PromptStatement, ToolStatement, ResponseStatement, Unknown],
    Field(discriminator="kind"),
]


class ChatStatement(BaseModel):
    kind: Literal["chat"] = "chat"
    body: list[ChatItem]


class GenStatement(BaseModel):
    kind: Literal["gen"] = "gen"
    store: str = Field(description="Binding that receives the generated value.")
    declaration: ToolDeclaration
    messages: list[MessageTemplate]
    feedback: bool = Field(default=False, description="Whether a reviewer must accept the value.")


class EachStatement(GenStatement):
    kind: Literal["each"] = "each"  # type: ignore[assignment]
    source: str = Field(description="Binding holding the records to iterate over.")


Statement = Annotated[
    Union[PromptStatement, ChatStatement, GenStatement, EachStatement, Unknown],
    Field(discriminator="kind"),
]


class Script(BaseModel):
    tag: str
    body: list[Statement]


def _require(node: Element, attr: str) -> str:
    value = node.attributes.get(attr)
    if not value:
        raise ConfigurationError(f"<{node.tag}> requires a '{attr}' attribute")
    return value


def _message(node: Element) -> MessageStatement:
    text = textwrap.dedent(node.text).strip()
    if not text:
        raise ConfigurationError(f"<{node.tag}> message must not be empty")
    return MessageStatement(template=MessageTemplate.from_text(node.tag, text))


def _prompt(node: Element) -> PromptStatement:
    store = _require(node, "store")
    return PromptStatement(prompt=parse(node.attributes.get("user", store)), store=store)


def _tool(node: Element) -> ToolStatement:
    name = _require(node, "name")
    declaration = ToolDeclaration(
        name=name,
        description=node.attributes.get("d", node.attributes.get("description")),
        parameters=parse_param(node),
        action=node.attributes.get("action"),
    )
    return ToolStatement(declaration=declaration)


def _chat(node: Element) -> ChatStatement:
    return ChatStatement(body=[_compile(child, CHAT_STATEMENTS) for child in node.elements])


def _generation_parts(node: Element, store: str) -> dict:
    messages = [_message(child).template for child in node.elements if child.tag in ("system", "user")]
    if not messages:
        raise ConfigurationError(f"<{node.tag} store='{store}'> needs at least one system or user message")
    declaration = ToolDeclaration(
        name=store,
        description=node.attributes.get("d", node.attributes.get("description")),
        parameters=parse_param(node),
    )
    feedback = any(child.tag == "feedback" for child in node.elements)
    return {"store": store, "declaration": declaration, "messages": messages, "feedback": feedback}


def _gen(node: Element) -> GenStatement:
    return GenStatement(**_generation_parts(node, _require(node, "store")))


def _each(node: Element) -> EachStatement:
    store = _require(node, "store")
    source = _require(node, "from")
    return EachStatement(source=source, **_generation_parts(node, store))


BLOCK_STATEMENTS: dict[str, Callable[[Element], BaseModel]] = {
    "p": _prompt,
    "chat": _chat,
    "gen": _gen,
    "each": _each,
}
CHAT_STATEMENTS: dict[str, Callable[[Element], BaseModel]] = {
    "system": _message,
    "user": _message,
    "p": _prompt,
    "tool": _tool,
    "response": lambda _node: ResponseStatement(),
}


def _compile(node: Element, statements: dict[str, Callable[[Element], BaseModel]]) -> BaseModel:
    compiler = statements.get(node.tag)
    if compiler is None:
        return Unknown(tag=node.tag)
    return compiler(node)


def compile_script(source: str | Element) -> Script:
    """Compile script markup (or an already-read Node tree) into a Script.

    Raises
    ------
    ParseError
        If the markup or any embedded expression is malformed.
    ConfigurationError
        If a statement is missing a required attribute.
    """
    root = parse_markup(source) if isinstance(source, str) else source
    body = [_compile(child, BLOCK_STATEMENTS) for child in root.elements]
    logger.debug(f"Compiled <{root.tag}> with {len(body)} statements")
    return Script(tag=root.tag, body=body)


def load_script(path: str | Path) -> Script:
    """Read and compile a script file."""
    with open(path, "r", encoding="utf-8") as f:
        return compile_script(f.read())
