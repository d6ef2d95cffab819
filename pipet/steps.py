"""
Step declarations.

A run is a list of steps. Process steps spawn a script or binary; inline
steps run a callback between processes or rewrite the environment or argument
list handed to the next process. Each variant carries its ``kind`` so the
runner never has to guess what a step is.
"""
import enum
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import ConfigurationError
from .rules import NextDef, coerce_next
from .serialize import serialize

INHERIT = "inherit"

StepEnv = Union[None, str, Mapping[str, Any]]


class StepKind(enum.Enum):
    PROCESS = "process"
    CALLBACK = "callback"
    INJECT_ENV = "inject_env"
    INJECT_ARGS = "inject_args"


@dataclass(frozen=True)
class ProcessStep:
    """A script run through an interpreter, or a binary run directly."""
    script: str
    env: StepEnv = None
    next: NextDef = field(default_factory=NextDef)
    direct: bool = False  # run `script` as the executable itself
    cwd: Optional[str] = None
    bin: Optional[str] = None
    bin_args: Optional[List[str]] = None
    replace_env: bool = False  # env overrides instead of merging into the run env

    kind = StepKind.PROCESS

    def __post_init__(self):
        if not isinstance(self.next, NextDef):
            object.__setattr__(self, "next", coerce_next(self.next))

    @property
    def label(self) -> str:
        return self.script

    def env_overrides(self) -> Optional[Dict[str, str]]:
        """Serialized environment overrides, or ``None`` to inherit."""
        if self.env is None or self.env == INHERIT:
            return None
        if isinstance(self.env, str):
            raise ConfigurationError(f'Step "{self.script}" has an invalid env: {self.env!r}')
        return serialize(self.env)

    def validate(self) -> None:
        if not self.script:
            raise ConfigurationError("Process step needs a script or binary")
        self.env_overrides()
        self.next.validate()


@dataclass(frozen=True)
class CallbackStep:
    """Runs ``callback`` with the outcomes recorded so far."""
    callback: Callable[[list], Any]
    label: str = "callback"

    kind = StepKind.CALLBACK

    def validate(self) -> None:
        if not callable(self.callback):
            raise ConfigurationError(f"Callback step {self.label!r} is not callable")


@dataclass(frozen=True)
class EnvInjection:
    """Replaces the run environment with what ``decorate`` returns."""
    decorate: Callable[[Dict[str, str]], Optional[Mapping[str, Any]]]
    label: str = "decorate_env"

    kind = StepKind.INJECT_ENV

    def validate(self) -> None:
        if not callable(self.decorate):
            raise ConfigurationError("decorate_env needs a callable")


@dataclass(frozen=True)
class ArgsInjection:
    """Replaces the argument list of the next process with what ``decorate`` returns."""
    decorate: Callable[[List[str]], Optional[List[str]]]
    label: str = "decorate_args"

    kind = StepKind.INJECT_ARGS

    def validate(self) -> None:
        if not callable(self.decorate):
            raise ConfigurationError("decorate_args needs a callable")


Step = Union[ProcessStep, CallbackStep, EnvInjection, ArgsInjection]


def resolve_step(step: Any) -> Step:
    """Validate a declared step; bare callables become callback steps."""
    if isinstance(step, (ProcessStep, CallbackStep, EnvInjection, ArgsInjection)):
        step.validate()
        return step
    if callable(step):
        return CallbackStep(step, label=getattr(step, "__name__", "callback"))
    raise ConfigurationError(f"Not a step: {step!r}")


class Builder:
    """Declares process steps and environment/argument injections."""

    def script(self, path: str, env: StepEnv = None, next=None, **overrides) -> ProcessStep:
        """
        Declare a script run through the default interpreter.

        Args:
            path: Script path, resolved against the working directory
            env: Environment overrides, ``None`` or ``"inherit"`` to inherit
            next: Rules extracting args/env for the following step
            **overrides: ``cwd``, ``bin``, ``bin_args`` or ``replace_env``
        """
        return ProcessStep(script=path, env=env, next=next, **overrides)

    def bin(self, name: str, env: StepEnv = None, next=None, **overrides) -> ProcessStep:
        """Declare a binary invoked directly, without an interpreter."""
        return ProcessStep(script=name, env=env, next=next, direct=True, **overrides)

    def decorate_env(self, decorate: Callable[[Dict[str, str]], Optional[Mapping[str, Any]]]) -> EnvInjection:
        """Transform the environment passed to the next script.

        ``decorate`` receives a copy of the accumulated environment. Its return
        value replaces the environment; returning ``None`` keeps the (possibly
        mutated) copy.
        """
        return EnvInjection(decorate)

    def decorate_args(self, decorate: Callable[[List[str]], Optional[List[str]]]) -> ArgsInjection:
        """Transform the arguments passed to the next script."""
        return ArgsInjection(decorate)


class Utility:
    """Inline helpers run between process steps."""

    def log(self, message: str) -> CallbackStep:
        """Print ``message`` to stdout between script runs."""
        def write(results):
            sys.stdout.write(message + "\n")
            sys.stdout.flush()

        return CallbackStep(write, label="log")

    def tap(self, callback: Callable[[list], Any]) -> CallbackStep:
        """Run ``callback`` with the outcomes recorded so far."""
        return CallbackStep(callback, label=getattr(callback, "__name__", "tap"))

    def sleep(self, seconds: float) -> CallbackStep:
        """Pause for ``seconds`` between script runs."""
        return CallbackStep(lambda results: time.sleep(seconds), label=f"sleep({seconds})")


B = Builder()
U = Utility()
