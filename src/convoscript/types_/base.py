"""JSON-compatible values.

Tool arguments returned by the model, generated bindings and request parameters all
travel as plain JSON, so they share one recursive type.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Union

from pydantic import TypeAdapter, ValidationError, ValidationInfo, ValidatorFunctionWrapHandler, WrapValidator
from pydantic_core import PydanticCustomError
from typing_extensions import TypeAliasType

logger = logging.getLogger(__name__)


def _collapse_union_errors(value: Any, handler: ValidatorFunctionWrapHandler, _info: ValidationInfo) -> Any:
    # one error instead of one per union member
    try:
        return handler(value)
    except ValidationError as e:
        raise PydanticCustomError("invalid_json", "Input is not valid json") from e


JSONScalar = Union[str, int, float, bool, None]
JSON = TypeAliasType(
    "JSON",
    Annotated[
        Union[dict[str, "JSON"], list["JSON"], JSONScalar],
        WrapValidator(_collapse_union_errors),
    ],
)
json_adapter: TypeAdapter[Any] = TypeAdapter(JSON)
