"""Translate a tool's declared input schema into an argument validator.

The validator enforces presence of required fields and checks the
primitive type of declared properties without coercing anything. Fields
the schema does not list are passed through untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, Strict, StrictBool, StrictFloat, StrictInt, StrictStr, create_model
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, ValidationError


logger = logging.getLogger(__name__)


_PRIMITIVES: Dict[str, Any] = {
    "string": StrictStr,
    "number": Union[StrictInt, StrictFloat],
    "integer": StrictInt,
    "boolean": StrictBool,
    # element types are not checked
    "array": Annotated[List[Any], Strict()],
    # nested objects are not checked deeply
    "object": Annotated[Dict[str, Any], Strict()],
}


class ArgumentValidator:
    """Validates call arguments for one tool.

    `validate(args)` returns the arguments unchanged or raises
    `ValidationError` listing missing and mistyped fields.
    """

    def __init__(self, model: Optional[Type[BaseModel]], required: List[str]):
        self._model = model
        self.required = list(required)

    def validate(self, args: Any) -> Dict[str, Any]:
        if not isinstance(args, Mapping):
            raise ValidationError(invalid_fields={"arguments": f"expected an object, got {type(args).__name__}"})
        if self._model is None:
            return dict(args)

        try:
            self._model.model_validate(dict(args))
        except PydanticValidationError as e:
            missing: List[str] = []
            invalid: Dict[str, str] = {}
            for err in e.errors():
                loc = err.get("loc") or ("arguments",)
                name = str(loc[0])
                if err.get("type") == "missing":
                    if name not in missing:
                        missing.append(name)
                else:
                    invalid.setdefault(name, err.get("msg", "invalid value"))
            raise ValidationError(missing_fields=missing, invalid_fields=invalid) from e
        return dict(args)

    __call__ = validate


class SchemaTranslator:
    """Builds `ArgumentValidator`s from declared input schemas.

    Declared types outside the recognized primitives are accepted as-is
    unless the translator is strict, in which case translation fails.
    """

    def __init__(self, *, strict: bool = False):
        self.strict = strict

    def translate(self, schema: Optional[Mapping[str, Any]], *, tool_name: str = "tool") -> ArgumentValidator:
        schema = schema or {}
        properties = schema.get("properties")
        if schema.get("type", "object") != "object" or not isinstance(properties, Mapping) or not properties:
            # No declared properties: any mapping is acceptable, but required names still apply
            required = [r for r in schema.get("required") or [] if isinstance(r, str)]
            if not required:
                return ArgumentValidator(None, [])
            properties = {}
        else:
            required = [r for r in schema.get("required") or [] if isinstance(r, str)]

        fields: Dict[str, Tuple[Any, Any]] = {}
        names = list(properties) + [r for r in required if r not in properties]
        for index, name in enumerate(names):
            prop = properties.get(name)
            annotation = self._annotation(prop if isinstance(prop, Mapping) else {}, tool_name, name)
            # Internal names keep arbitrary property names (dashes, leading underscores) out of the model namespace
            field_name = f"field_{index}"
            if name in required:
                fields[field_name] = (annotation, Field(..., alias=name))
            else:
                fields[field_name] = (Optional[annotation], Field(default=None, alias=name))

        model = create_model(
            f"{_model_name(tool_name)}Arguments",
            __config__=ConfigDict(extra="allow", protected_namespaces=()),
            **fields,
        )
        return ArgumentValidator(model, required)

    def _annotation(self, prop: Mapping[str, Any], tool_name: str, name: str) -> Any:
        declared = prop.get("type")
        if declared is None:
            return Any
        if isinstance(declared, list):
            # ["string", "null"] style unions: check the single non-null member
            non_null = [t for t in declared if t != "null"]
            if len(non_null) == 1 and non_null[0] in _PRIMITIVES:
                return Optional[_PRIMITIVES[non_null[0]]]
            return Any
        if declared in _PRIMITIVES:
            return _PRIMITIVES[declared]
        if self.strict:
            raise ConfigurationError(f"Tool '{tool_name}' declares unsupported type '{declared}' for '{name}'")
        logger.debug("schema.unknown_type accepted permissively", extra={"tool": tool_name, "field": name, "declared": declared})
        return Any


def _model_name(tool_name: str) -> str:
    parts = re.split(r"[^0-9a-zA-Z]+", tool_name)
    return "".join(p[:1].upper() + p[1:] for p in parts if p) or "Tool"
