"""
Value extraction from step output.

``extract`` walks the rules in declaration order and turns the text a step
has written so far into a mapping of names to string values. Rules with a
literal ``value`` skip matching altogether; the others run their pattern as a
global match over the whole text. An ``abort_early`` or ``continue_early``
rule stops the pass as soon as it assigns a value.
"""
import enum
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .rules import ValueRule


class EarlyExit(enum.Enum):
    ABORT = "abort"
    CONTINUE = "continue"


@dataclass
class Extraction:
    """Result of one extraction pass."""
    values: Dict[str, str] = field(default_factory=dict)
    early_exit: Optional[EarlyExit] = None
    visited: List[str] = field(default_factory=list)


def _join_groups(match: re.Match, separator: str) -> str:
    if not match.re.groups:
        return match.group(0)
    return separator.join(group or "" for group in match.groups())


def _early_exit(rule: ValueRule) -> Optional[EarlyExit]:
    if rule.continue_early:
        return EarlyExit.CONTINUE
    if rule.abort_early:
        return EarlyExit.ABORT
    return None


def extract(text: str, rules: Mapping[str, ValueRule]) -> Extraction:
    """Extract values for ``rules`` from ``text``.

    Args:
        text: Output accumulated so far
        rules: Ordered mapping of key -> rule

    Returns:
        The extracted values, the early exit kind (if any rule asked for one)
        and the keys whose rules were evaluated before the pass stopped.
    """
    result = Extraction()
    values = result.values

    def assign(key: str, rule: ValueRule, candidate: str) -> Optional[EarlyExit]:
        if rule.array and key in values:
            values[key] += f",{candidate}"
        else:
            values[key] = candidate
        return _early_exit(rule)

    for key, rule in rules.items():
        result.visited.append(key)

        if rule.value is not None:
            result.early_exit = assign(key, rule, rule.value)
            if result.early_exit:
                return result
            continue

        if rule.match is None:
            continue

        # finditer always scans globally, the pattern's own flags are kept
        for match in rule.match.finditer(text):
            result.early_exit = assign(key, rule, _join_groups(match, rule.separator))
            if result.early_exit:
                return result

    return result
