"""Contract helpers for the chtop CLI and worker."""

from .error import (
    BadInputError,
    ClickHouseError,
    EnvelopeError,
    ErrorEnvelope,
    Exit,
    InvariantError,
    IOErrorEnvelope,
    PolicyError,
    die,
    guard_cli,
)

__all__ = [
    "Exit",
    "ErrorEnvelope",
    "EnvelopeError",
    "BadInputError",
    "InvariantError",
    "PolicyError",
    "IOErrorEnvelope",
    "ClickHouseError",
    "guard_cli",
    "die",
]
