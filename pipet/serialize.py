"""Conversion of environment and literal values to the strings processes see."""
import json
import re
from typing import Any, Dict, Mapping

from .errors import SerializationError


def serialize_value(key: str, value: Any) -> str:
    """Convert one environment value to the string handed to processes."""
    if value is None:
        raise SerializationError(key)
    if isinstance(value, str):
        return value
    if isinstance(value, re.Pattern):
        return value.pattern
    if isinstance(value, (dict, list, tuple, bool)):
        return json.dumps(value)
    return str(value)


def serialize(env: Mapping[str, Any]) -> Dict[str, str]:
    """Serialize every value of ``env``, failing on the first ``None``."""
    return {key: serialize_value(key, value) for key, value in env.items()}
