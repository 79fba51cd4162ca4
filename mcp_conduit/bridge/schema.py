"""Parameter schema normalisation for bridged tools."""

from typing import Any, Dict, Mapping, Optional


def empty_object_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}, "additionalProperties": False}


def normalize_parameters(schema: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return an object schema for a provider-declared *schema*.

    A missing schema becomes a closed empty object.  A present schema is kept
    as-is apart from ``type``, which defaults to ``"object"``.
    """
    if schema is None:
        return empty_object_schema()
    normalized = dict(schema)
    if not normalized.get("type"):
        normalized["type"] = "object"
    return normalized
