"""Markup reading for conversation scripts.

Scripts are XML-like documents. They are read once into an immutable tree of Nodes:

- Text: character data between elements
- Element: a tag with ordered attributes and ordered children
- Comment: a markup comment, kept so the tree re-serializes faithfully
"""

from __future__ import annotations

import logging
from typing import Annotated, Iterator, Literal, Union
from xml.etree import ElementTree
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ParseError

logger = logging.getLogger(__name__)


class Text(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    value: str


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["comment"] = "comment"
    value: str


class Element(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["element"] = "element"
    tag: str
    attributes: dict[str, str] = Field(default_factory=dict)
    children: tuple[Node, ...] = ()

    @property
    def elements(self) -> Iterator[Element]:
        """Child elements, skipping text and comments."""
        return (child for child in self.children if isinstance(child, Element))

    @property
    def text(self) -> str:
        """Concatenated character data of the direct Text children."""
        return "".join(child.value for child in self.children if isinstance(child, Text))

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attributes.get(name, default)


Node = Annotated[Union[Text, Element, Comment], Field(discriminator="type")]
Element.model_rebuild()


def _convert(element: ElementTree.Element) -> Element | Comment:
    if element.tag is ElementTree.Comment:
        return Comment(value=element.text or "")

    children: list[Text | Element | Comment] = []
    if element.text:
        children.append(Text(value=element.text))
    for child in element:
        children.append(_convert(child))
        if child.tail:
            children.append(Text(value=child.tail))

    return Element(tag=element.tag, attributes=dict(element.attrib), children=tuple(children))


def parse_markup(source: str) -> Element:
    """Read script markup into a Node tree rooted at the document element.

    Raises
    ------
    ParseError
        If the markup is not well formed.
    """
    parser = ElementTree.XMLParser(target=ElementTree.TreeBuilder(insert_comments=True))
    try:
        parser.feed(source)
        root = parser.close()
    except ElementTree.ParseError as e:
        line, column = e.position
        raise ParseError(f"Malformed markup: {e}", line=line, column=column + 1) from e

    logger.debug(f"Read markup document <{root.tag}>")
    return _convert(root)


def dump_markup(node: Text | Element | Comment) -> str:
    """Serialize a Node tree back to markup."""
    if isinstance(node, Text):
        return escape(node.value)
    if isinstance(node, Comment):
        return f"<!--{node.value}-->"

    attrs = "".join(f" {name}={quoteattr(value)}" for name, value in node.attributes.items())
    if not node.children:
        return f"<{node.tag}{attrs}/>"
    inner = "".join(dump_markup(child) for child in node.children)
    return f"<{node.tag}{attrs}>{inner}</{node.tag}>"
