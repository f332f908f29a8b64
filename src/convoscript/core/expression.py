"""Parser for the template micro-language embedded in script text.

Text is split into literal runs and expressions. Expressions appear either as bare
path references (``$topic``, ``$idea.title``, ``$items[0]``) or as interpolation regions:

    {{ name }}
    {{ $record.tags[1] | join ', ' }}
    {{ var | filter 1, 2, c=3, c=4 }}
    {{ call a, b=c }}
    {{ 'yes' }}

Grammar inside ``{{ }}``::

    expr       := pipeline
    pipeline   := primary ('|' filterCall)*
    filterCall := ident arg*
    arg        := value | ident '=' value
    primary    := path | literal | call
    call       := ident arg+
    path       := '$'? ident ('.' ident | '[' (ident | int) ']')*
    value      := literal | path

Keyword arguments are kept in source order and never deduplicated; whoever applies them
decides precedence.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Literal, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ParseError

logger = logging.getLogger(__name__)

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_INT = re.compile(r"-?[0-9]+")
_BARE_INDEX = re.compile(r"\[(-?[0-9]+|[A-Za-z_][A-Za-z0-9_]*)\]")


# --- AST ---
class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class FieldSegment(_Node):
    kind: Literal["field"] = "field"
    field: str


class IndexSegment(_Node):
    kind: Literal["index"] = "index"
    index: int


Segment = Annotated[Union[FieldSegment, IndexSegment], Field(discriminator="kind")]


class Constant(_Node):
    kind: Literal["constant"] = "constant"
    value: int | str


class Path(_Node):
    kind: Literal["path"] = "path"
    segments: tuple[Segment, ...]

    @property
    def root(self) -> str:
        return self.segments[0].field


class KeywordArg(_Node):
    name: str
    value: Expression


class Call(_Node):
    kind: Literal["call"] = "call"
    name: str
    args: tuple[Expression, ...] = ()
    kwargs: tuple[KeywordArg, ...] = ()


class FilterCall(_Node):
    name: str
    args: tuple[Expression, ...] = ()
    kwargs: tuple[KeywordArg, ...] = ()


class FilterPipeline(_Node):
    kind: Literal["pipeline"] = "pipeline"
    base: Expression
    filters: tuple[FilterCall, ...]


Expression = Annotated[Union[Constant, Path, Call, FilterPipeline], Field(discriminator="kind")]

KeywordArg.model_rebuild()
Call.model_rebuild()
FilterCall.model_rebuild()
FilterPipeline.model_rebuild()


class TextFragment(_Node):
    type: Literal["text"] = "text"
    text: str


class ExprFragment(_Node):
    type: Literal["expr"] = "expr"
    expr: Expression
    source: str = Field(description="Exact source text of the reference, emitted verbatim when unresolved.")
    position: int


Fragment = Annotated[Union[TextFragment, ExprFragment], Field(discriminator="type")]


# --- Lexer ---
class Token(NamedTuple):
    kind: str
    value: str | int
    position: int


_PUNCTUATION = {
    "$": "DOLLAR",
    ".": "DOT",
    "[": "LBRACKET",
    "]": "RBRACKET",
    "|": "PIPE",
    ",": "COMMA",
    "=": "EQUALS",
}
_ARG_START = {"IDENT", "INT", "STRING", "DOLLAR"}


def _read_string(source: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at ``start``; return its value and the index after it."""
    quote = source[start]
    chars = []
    i = start + 1
    while i < len(source):
        char = source[i]
        if char == "\\" and i + 1 < len(source):
            escaped = source[i + 1]
            chars.append({"n": "\n", "t": "\t"}.get(escaped, escaped))
            i += 2
        elif char == quote:
            return "".join(chars), i + 1
        else:
            chars.append(char)
            i += 1
    raise ParseError("Unterminated string literal", position=start)


def tokenize_interpolation(source: str, start: int) -> tuple[list[Token], int]:
    """Tokenize from just inside ``{{`` up to and including the closing ``}}``.

    Returns the tokens (ending with an END token) and the index just past ``}}``.
    """
    tokens: list[Token] = []
    i = start
    while i < len(source):
        char = source[i]
        if char.isspace():
            i += 1
        elif source.startswith("}}", i):
            tokens.append(Token("END", "}}", i))
            return tokens, i + 2
        elif char in "'\"":
            value, end = _read_string(source, i)
            tokens.append(Token("STRING", value, i))
            i = end
        elif (match := _INT.match(source, i)) is not None:
            tokens.append(Token("INT", int(match.group()), i))
            i = match.end()
        elif (match := _IDENT.match(source, i)) is not None:
            tokens.append(Token("IDENT", match.group(), i))
            i = match.end()
        elif char in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[char], char, i))
            i += 1
        else:
            raise ParseError(f"Unrecognized character {char!r}", position=i)
    raise ParseError("Unterminated interpolation", position=start - 2)


# --- Parser ---
class _ExpressionParser:
    """Recursive-descent parser over the tokens of a single interpolation region."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.current()
        if tok.kind != "END":
            self.pos += 1
        return tok

    def match(self, kind: str) -> Token | None:
        if self.current().kind == kind:
            return self.advance()
        return None

    def expect(self, kind: str) -> Token:
        tok = self.current()
        if tok.kind != kind:
            raise ParseError(f"Expected {kind} but found {tok.kind} ({tok.value!r})", position=tok.position)
        return self.advance()

    def parse(self) -> Expression:
        if self.current().kind == "END":
            raise ParseError("Empty interpolation", position=self.current().position)
        expr = self.parse_pipeline()
        self.expect("END")
        return expr

    def parse_pipeline(self) -> Expression:
        base = self.parse_primary()
        filters = []
        while self.match("PIPE"):
            name = self.expect("IDENT").value
            args, kwargs = self.parse_args()
            filters.append(FilterCall(name=name, args=args, kwargs=kwargs))
        if not filters:
            return base
        return FilterPipeline(base=base, filters=tuple(filters))

    def parse_primary(self) -> Expression:
        tok = self.current()
        if tok.kind in ("INT", "STRING"):
            self.advance()
            return Constant(value=tok.value)
        if tok.kind == "DOLLAR":
            return self.parse_path()
        if tok.kind == "IDENT":
            path = self.parse_path()
            if len(path.segments) == 1 and self.current().kind in _ARG_START:
                args, kwargs = self.parse_args()
                return Call(name=tok.value, args=args, kwargs=kwargs)
            return path
        raise ParseError(f"Unexpected {tok.kind} ({tok.value!r})", position=tok.position)

    def parse_args(self) -> tuple[tuple[Expression, ...], tuple[KeywordArg, ...]]:
        args: list[Expression] = []
        kwargs: list[KeywordArg] = []
        while self.current().kind in _ARG_START:
            if self.current().kind == "IDENT" and self.peek().kind == "EQUALS":
                name = self.advance().value
                self.advance()
                kwargs.append(KeywordArg(name=name, value=self.parse_value()))
            else:
                args.append(self.parse_value())
            self.match("COMMA")
        return tuple(args), tuple(kwargs)

    def parse_value(self) -> Expression:
        tok = self.current()
        if tok.kind in ("INT", "STRING"):
            self.advance()
            return Constant(value=tok.value)
        if tok.kind in ("IDENT", "DOLLAR"):
            return self.parse_path()
        raise ParseError(f"Expected a value but found {tok.kind} ({tok.value!r})", position=tok.position)

    def parse_path(self) -> Path:
        self.match("DOLLAR")
        segments: list[FieldSegment | IndexSegment] = [FieldSegment(field=self.expect("IDENT").value)]
        while True:
            if self.match("DOT"):
                segments.append(FieldSegment(field=self.expect("IDENT").value))
            elif self.match("LBRACKET"):
                tok = self.current()
                if tok.kind == "INT":
                    segments.append(IndexSegment(index=tok.value))
                elif tok.kind == "IDENT":
                    segments.append(FieldSegment(field=tok.value))
                else:
                    raise ParseError(f"Invalid index {tok.value!r}", position=tok.position)
                self.advance()
                self.expect("RBRACKET")
            else:
                return Path(segments=tuple(segments))


def _scan_bare_path(source: str, start: int) -> tuple[Path, int]:
    """Read ``$name(.name|[index])*`` with no interior whitespace, starting at the ``$``."""
    match = _IDENT.match(source, start + 1)
    segments: list[FieldSegment | IndexSegment] = [FieldSegment(field=match.group())]
    i = match.end()
    while i < len(source):
        if source[i] == "." and (field := _IDENT.match(source, i + 1)) is not None:
            segments.append(FieldSegment(field=field.group()))
            i = field.end()
        elif source[i] == "[" and (index := _BARE_INDEX.match(source, i)) is not None:
            value = index.group(1)
            if _INT.fullmatch(value):
                segments.append(IndexSegment(index=int(value)))
            else:
                segments.append(FieldSegment(field=value))
            i = index.end()
        else:
            break
    return Path(segments=tuple(segments)), i


def parse_expression(source: str) -> Expression:
    """Parse the inside of a single interpolation region, without the braces."""
    tokens, _ = tokenize_interpolation(source + "}}", 0)
    return _ExpressionParser(tokens).parse()


def parse(source: str) -> list[TextFragment | ExprFragment]:
    """Split template text into literal text and expression fragments.

    Raises
    ------
    ParseError
        On an unterminated ``{{`` region or an unrecognized token inside one.
    """
    fragments: list[TextFragment | ExprFragment] = []
    buffer: list[str] = []

    def flush():
        if buffer:
            fragments.append(TextFragment(text="".join(buffer)))
            buffer.clear()

    i = 0
    while i < len(source):
        if source.startswith("{{", i):
            flush()
            try:
                tokens, end = tokenize_interpolation(source, i + 2)
                expr = _ExpressionParser(tokens).parse()
            except ParseError as e:
                line, column = locate(source, e.position)
                raise ParseError(e.message, position=e.position, line=line, column=column) from None
            fragments.append(ExprFragment(expr=expr, source=source[i:end], position=i))
            i = end
        elif source[i] == "$" and _IDENT.match(source, i + 1) is not None:
            flush()
            path, end = _scan_bare_path(source, i)
            fragments.append(ExprFragment(expr=path, source=source[i:end], position=i))
            i = end
        else:
            buffer.append(source[i])
            i += 1
    flush()
    return fragments


def locate(source: str, position: int) -> tuple[int, int]:
    """Convert a character offset into a 1-based (line, column) pair."""
    line = source.count("\n", 0, position) + 1
    column = position - (source.rfind("\n", 0, position) + 1) + 1
    return line, column
