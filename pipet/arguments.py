"""Formatting of extracted values into the next step's argument list."""
from typing import Iterable, List, Mapping, Optional

from .errors import MissingRequiredError
from .rules import ArgRule

POSITIONAL = "$"


def _is_missing(value: Optional[str]) -> bool:
    return value is None or value == ""


def build_args(
    values: Mapping[str, str],
    rules: Mapping[str, ArgRule],
    label: str,
    *,
    strict: bool = True,
    visited: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Build the argument tokens for the next step.

    Args:
        values: Values extracted for the argument rules
        rules: Ordered mapping of key -> argument rule
        label: Script that produced the values, used in error messages
        strict: Raise for required arguments without a value
        visited: Keys evaluated by the extraction pass; required rules outside
            it are not checked (``None`` checks every rule)

    Returns:
        Argument tokens in rule declaration order
    """
    checked = set(rules if visited is None else visited)
    args = []

    for key, rule in rules.items():
        value = values.get(key)

        if rule.required and strict and key in checked and _is_missing(value):
            raise MissingRequiredError(key, label, kind="arg")

        if key == POSITIONAL:
            if value is not None:
                args.append(value)
        elif rule.boolean:
            args.append(f"{rule.prefix}{key}")
        elif value is not None:
            args.append(f"{rule.prefix}{key}{rule.equality}{value}")

    return args
