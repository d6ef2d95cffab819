"""
Exceptions raised by the pipet runner.

Every error the runner produces is a ``PipetError``. Configuration and
serialization problems are detected before any process is spawned, missing
required values abort the run, and process-level failures are captured per
step as ``StepProcessError`` instead of being raised.
"""
from typing import Optional


class PipetError(Exception):
    """Base class for all pipet errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(PipetError):
    """A step list or extraction rule is malformed."""


class SerializationError(PipetError):
    """An environment value cannot be turned into a string."""

    def __init__(self, key: str):
        super().__init__(f'Env "{key}" is `None`')
        self.key = key


class MissingRequiredError(PipetError):
    """A required environment key or argument has no value after a step."""

    def __init__(self, key: str, label: str, kind: str = "key"):
        super().__init__(f'Required {kind} "{key}" is not set after running script "{label}"')
        self.key = key
        self.label = label
        self.kind = kind


class StepProcessError(PipetError):
    """A process step failed to spawn or exited abnormally."""

    def __init__(self, message: str, label: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.label = label
        self.exit_code = exit_code
