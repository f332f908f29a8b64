"""Build tool parameter schemas from script markup.

Tool parameters are declared with nested elements::

    <tool name="plan" d="Propose a plan">
        <p name="title" d="Short title" maxLength="80"/>
        <p name="steps" array="string" minItems="1"/>
        <opt name="priority">
            <opt value="low"/>
            <opt value="high"/>
        </opt>
    </tool>

- ``<p name=...>`` declares a required property, ``<opt name=...>`` an optional one.
- ``<opt value=...>`` (no name) lists an allowed value for the enclosing leaf.
- ``array="<type>"`` makes the node an array whose items have that type.
- ``d`` / ``description`` becomes the description; ``type`` selects the kind (default ``string``).
- Numeric constraints are parsed as integers; any other attribute passes through verbatim.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .exceptions import ConfigurationError
from .markup import Element

logger = logging.getLogger(__name__)

REQUIRED_TAG = "p"
OPTIONAL_TAG = "opt"
NUMERIC_CONSTRAINTS = ("minItems", "maxItems", "minLength", "maxLength", "minimum", "maximum")
ARRAY_CONSTRAINTS = ("minItems", "maxItems")
STRUCTURAL_ATTRIBUTES = ("action", "array", "name", "store", "from")
DESCRIPTION_ATTRIBUTES = ("d", "description")


class ParameterSchema(BaseModel):
    """A JSON-schema-like description of a tool parameter."""

    kind: str = Field(default="string", description="The JSON schema type.")
    description: str | None = None
    properties: dict[str, ParameterSchema] | None = None
    required: list[str] | None = None
    items: ParameterSchema | None = None
    enum_values: list[str] | None = None
    constraints: dict[str, int] = Field(default_factory=dict, description="Numeric constraints.")
    extra: dict[str, str] = Field(default_factory=dict, description="Attributes passed through verbatim.")

    @model_validator(mode="after")
    def _required_are_properties(self) -> ParameterSchema:
        if self.required:
            missing = set(self.required) - set(self.properties or {})
            if missing:
                raise ValueError(f"Required names {sorted(missing)} are not declared properties")
        return self

    def to_json_schema(self) -> dict[str, Any]:
        """Serialize to the wire form sent with tool declarations."""
        schema: dict[str, Any] = {"type": self.kind}
        if self.description is not None:
            schema["description"] = self.description
        if self.properties is not None:
            schema["properties"] = {name: prop.to_json_schema() for name, prop in self.properties.items()}
            schema["required"] = list(self.required or [])
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        if self.enum_values is not None:
            schema["enum"] = list(self.enum_values)
        schema.update(self.extra)
        schema.update(self.constraints)
        return schema


ParameterSchema.model_rebuild()


def _is_property(node: Element) -> bool:
    return node.tag in (REQUIRED_TAG, OPTIONAL_TAG) and "name" in node.attributes


def _is_option(node: Element) -> bool:
    return node.tag == OPTIONAL_TAG and "value" in node.attributes and "name" not in node.attributes


def _constraint(node: Element, name: str) -> int:
    value = node.attributes[name]
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"<{node.tag}> attribute {name}={value!r} must be an integer") from e


def _description(node: Element) -> str | None:
    for attr in DESCRIPTION_ATTRIBUTES:
        if attr in node.attributes:
            return node.attributes[attr]
    return None


def _build_object(node: Element, description: str | None = None) -> ParameterSchema:
    properties: dict[str, ParameterSchema] = {}
    required: list[str] = []
    for child in node.elements:
        if not _is_property(child):
            continue
        name = child.attributes["name"]
        properties[name] = parse_param(child)
        if child.tag == REQUIRED_TAG and name not in required:
            required.append(name)
    return ParameterSchema(kind="object", description=description, properties=properties, required=required)


def _build_leaf(
    node: Element, kind: str, description: str | None = None, skip: tuple[str, ...] = ()
) -> ParameterSchema:
    constraints: dict[str, int] = {}
    extra: dict[str, str] = {}
    for attr, value in node.attributes.items():
        if attr in STRUCTURAL_ATTRIBUTES or attr in DESCRIPTION_ATTRIBUTES or attr == "type" or attr in skip:
            continue
        if attr in NUMERIC_CONSTRAINTS:
            constraints[attr] = _constraint(node, attr)
        else:
            extra[attr] = value

    options = [option.attributes["value"] for option in node.elements if _is_option(option)]
    return ParameterSchema(
        kind=kind,
        description=description,
        constraints=constraints,
        extra=extra,
        enum_values=options or None,
    )


def _declares_object(node: Element, kind: str | None) -> bool:
    if kind == "object":
        return True
    return kind is None and any(_is_property(child) for child in node.elements)


def parse_param(node: Element) -> ParameterSchema:
    """Convert a parameter declaration subtree into a ParameterSchema.

    Examples
    --------
    >>> parse_param(Element(tag="p", attributes={"name": "x"})).kind
    'string'
    """
    description = _description(node)

    if "array" in node.attributes:
        item_kind = node.attributes["array"] or None
        if _declares_object(node, item_kind):
            items = _build_object(node)
        else:
            items = _build_leaf(node, item_kind or "string", skip=ARRAY_CONSTRAINTS)
        constraints = {attr: _constraint(node, attr) for attr in ARRAY_CONSTRAINTS if attr in node.attributes}
        return ParameterSchema(kind="array", description=description, items=items, constraints=constraints)

    kind = node.attributes.get("type")
    if _declares_object(node, kind):
        return _build_object(node, description=description)

    return _build_leaf(node, kind or "string", description=description)
