from __future__ import annotations

import json
from importlib import resources
from typing import Any, Dict, List, cast

import jsonschema  # type: ignore[import-untyped]

_CACHE: Dict[str, Dict[str, Any]] = {}


def load_schema(name: str) -> Dict[str, Any]:
    """Load a bundled request schema by name (file stem under schemas/)."""
    schema = _CACHE.get(name)
    if schema is None:
        with resources.files("ethgatt").joinpath(f"schemas/{name}.json").open(
            "r", encoding="utf-8"
        ) as f:
            schema = cast(Dict[str, Any], json.load(f))
        _CACHE[name] = schema
    return schema


def validate(instance: Any, name: str) -> None:
    """
    Raises:
        jsonschema.ValidationError: If instance doesn't match the schema.
    """
    jsonschema.validate(instance=instance, schema=load_schema(name))


def errors(instance: Any, name: str) -> List[jsonschema.ValidationError]:
    """All validation errors for instance, empty when it is valid."""
    schema = load_schema(name)
    validator_cls = jsonschema.validators.validator_for(schema)
    return list(validator_cls(schema).iter_errors(instance))


def is_valid(instance: Any, name: str) -> bool:
    return not errors(instance, name)
