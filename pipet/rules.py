"""
Extraction rule declarations.

A step's ``next`` descriptor holds two ordered maps of rules, one for the
arguments and one for the environment of the following step. Rules can be
written as dataclasses or as plain dicts; dicts are converted once, when the
step is declared.
"""
import re
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import ConfigurationError
from .serialize import serialize_value

# Original camelCase spellings accepted in dict declarations
_ALIASES = {
    "abortEarly": "abort_early",
    "continueEarly": "continue_early",
    "decorateEnv": "decorate_env",
}


@dataclass(frozen=True)
class ValueRule:
    """How to derive one environment value from a step's output."""
    match: Optional[Union[str, re.Pattern]] = None
    value: Optional[Any] = None
    required: bool = False
    array: bool = False
    abort_early: bool = False
    continue_early: bool = False
    separator: str = ","

    def __post_init__(self):
        if isinstance(self.match, str):
            object.__setattr__(self, "match", re.compile(self.match))
        if self.value is not None and not isinstance(self.value, str):
            object.__setattr__(self, "value", serialize_value("value", self.value))

    def validate(self, key: str) -> None:
        if self.value is None and self.match is None:
            raise ConfigurationError(f'Rule "{key}" needs either a `value` or a `match`')


@dataclass(frozen=True)
class ArgRule(ValueRule):
    """How to derive one command-line argument from a step's output."""
    prefix: str = "--"
    equality: str = "="
    boolean: bool = False

    def validate(self, key: str) -> None:
        if self.boolean and self.array:
            raise ConfigurationError(f'Arg "{key}" cannot be both `boolean` and `array`')
        # Boolean flags are emitted whether or not anything was extracted
        if self.boolean:
            return
        super().validate(key)


@dataclass(frozen=True)
class NextDef:
    """Rules applied to a step's output to prepare the next step."""
    args: Dict[str, ArgRule] = field(default_factory=dict)
    env: Dict[str, ValueRule] = field(default_factory=dict)
    decorate_env: Optional[Callable[[Dict[str, str]], Optional[Mapping[str, Any]]]] = None

    def validate(self) -> None:
        for key, rule in self.args.items():
            rule.validate(key)
        for key, rule in self.env.items():
            rule.validate(key)


def _normalize_keys(declared: Mapping[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(name, name): value for name, value in declared.items()}


def coerce_rule(cls, key: str, declared: Union[ValueRule, Mapping[str, Any]]) -> ValueRule:
    """Build a rule of type ``cls`` from a rule or a dict declaration."""
    if isinstance(declared, cls):
        return declared
    if isinstance(declared, ValueRule):
        raise ConfigurationError(f'Rule "{key}" must be a {cls.__name__}, got {type(declared).__name__}')
    if not isinstance(declared, Mapping):
        raise ConfigurationError(f'Rule "{key}" must be a mapping, got {type(declared).__name__}')

    allowed = {f.name for f in fields(cls)}
    options = _normalize_keys(declared)
    unknown = set(options) - allowed
    if unknown:
        raise ConfigurationError(f'Rule "{key}" has unknown options: {", ".join(sorted(unknown))}')
    try:
        return cls(**options)
    except re.error as e:
        raise ConfigurationError(f'Rule "{key}" has an invalid pattern: {e}') from e


def coerce_next(declared: Union[None, NextDef, Mapping[str, Any]]) -> NextDef:
    """Convert a ``next`` declaration into a validated ``NextDef``."""
    if declared is None:
        return NextDef()
    if isinstance(declared, NextDef):
        declared.validate()
        return declared
    if not isinstance(declared, Mapping):
        raise ConfigurationError(f"`next` must be a mapping, got {type(declared).__name__}")

    options = _normalize_keys(declared)
    unknown = set(options) - {"args", "env", "decorate_env"}
    if unknown:
        raise ConfigurationError(f'`next` has unknown options: {", ".join(sorted(unknown))}')

    next_def = NextDef(
        args={key: coerce_rule(ArgRule, key, rule) for key, rule in (options.get("args") or {}).items()},
        env={key: coerce_rule(ValueRule, key, rule) for key, rule in (options.get("env") or {}).items()},
        decorate_env=options.get("decorate_env"),
    )
    next_def.validate()
    return next_def
