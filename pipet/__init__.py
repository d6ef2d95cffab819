"""
Pipet - A sequential script runner that pipes each script's output into the next.

Each step's stdout is matched against extraction rules that produce the
environment variables and command-line arguments of the following step.
"""

from .errors import (
    ConfigurationError,
    MissingRequiredError,
    PipetError,
    SerializationError,
    StepProcessError,
)
from .extractor import EarlyExit, extract
from .rules import ArgRule, NextDef, ValueRule
from .runner import Pipet, RunOptions, StepOutcome
from .steps import B, Builder, StepKind, U, Utility

__version__ = "0.1.0"
__all__ = [
    "ArgRule",
    "B",
    "Builder",
    "ConfigurationError",
    "EarlyExit",
    "MissingRequiredError",
    "NextDef",
    "Pipet",
    "PipetError",
    "RunOptions",
    "SerializationError",
    "StepKind",
    "StepOutcome",
    "StepProcessError",
    "U",
    "Utility",
    "ValueRule",
    "extract",
]
