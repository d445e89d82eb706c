"""Core primitives for switchbot-relay."""

from .models import CommandOutcome, CommandRequest, DispatchResult
from .protocols import Clock, NonceFactory, Sleeper

__all__ = [
    "Clock",
    "CommandOutcome",
    "CommandRequest",
    "DispatchResult",
    "NonceFactory",
    "Sleeper",
]
