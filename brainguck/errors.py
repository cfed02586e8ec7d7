from __future__ import annotations

from typing import Optional


class BrainguckError(RuntimeError):
    """Base class for every condition that aborts an interpretation run."""

    def __init__(self, message: str, *, processed: Optional[int] = None) -> None:
        super().__init__(message)
        self.processed = processed


class InputExhausted(BrainguckError):
    """Raised when a ',' instruction finds no more bytes on the input channel."""


class LoopStackUnderflow(BrainguckError):
    """Raised when ']' is dispatched with no open loop recorded."""


class TapeOverflow(BrainguckError):
    """Raised when '>' would move the pointer past the last tape cell."""


class UnclosedLoop(BrainguckError):
    """Raised in strict mode when the program ends with loops still open."""


class StepLimitExceeded(BrainguckError):
    """Raised when execution exceeds the configured step budget."""


__all__ = [
    "BrainguckError",
    "InputExhausted",
    "LoopStackUnderflow",
    "TapeOverflow",
    "UnclosedLoop",
    "StepLimitExceeded",
]
