"""
Run-wide environment state.

Each run owns one ``RunEnvironment``. Process steps are spawned with its
contents, extracted values are merged into it after every output chunk, and
it is never reset between steps.
"""
import logging
import os
from collections.abc import MutableMapping
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from .errors import MissingRequiredError
from .rules import ValueRule
from .serialize import serialize, serialize_value

log = logging.getLogger(__name__)


class RunEnvironment(MutableMapping):
    """Accumulated environment of a single run."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        if initial is None:
            initial = os.environ
        self._values: Dict[str, str] = serialize(initial)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = serialize_value(key, value)

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def merge(self, values: Mapping[str, Any]) -> None:
        """Overwrite keys of the environment with ``values``."""
        self._values.update(serialize(values))

    def replace(self, values: Mapping[str, Any]) -> None:
        """Swap the whole environment for ``values``."""
        self._values = serialize(values)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)


def check_required(
    label: str,
    rules: Mapping[str, ValueRule],
    values: Mapping[str, str],
    visited: Optional[Iterable[str]] = None,
) -> None:
    """Raise ``MissingRequiredError`` for the first required rule without a value."""
    checked = set(rules if visited is None else visited)
    for key, rule in rules.items():
        if rule.required and key in checked and values.get(key) in (None, ""):
            raise MissingRequiredError(key, label)


def merge_and_validate(
    values: Mapping[str, str],
    rules: Mapping[str, ValueRule],
    target: RunEnvironment,
    label: str,
    *,
    strict: bool = True,
    visited: Optional[Iterable[str]] = None,
) -> None:
    """
    Commit extracted values into ``target`` and check required keys.

    Required keys are checked against the merged environment, so a value set
    by an earlier step satisfies a required rule of a later one.
    """
    if values:
        log.debug(f"  env from {label}: {', '.join(sorted(values))}")
    target.merge(values)
    if strict:
        check_required(label, rules, target, visited)
