"""Callable contracts injected into the dispatch pipeline."""

from __future__ import annotations

from typing import Awaitable, Callable

# Awaitable pause between presses; tests substitute a recorder.
Sleeper = Callable[[float], Awaitable[None]]

# Wall-clock source in seconds, as returned by ``time.time``.
Clock = Callable[[], float]

NonceFactory = Callable[[], str]
