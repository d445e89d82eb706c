"""Domain models for relay requests and command outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_COMMAND_KEY


@dataclass(slots=True, frozen=True)
class CommandRequest:
    device_id: Optional[str] = None
    emotion: Optional[str] = None
    participant_id: Optional[str] = None
    command_key: str = DEFAULT_COMMAND_KEY
    times: int = 1


@dataclass(slots=True, frozen=True)
class CommandOutcome:
    status: int
    body: Any

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body}


@dataclass(slots=True)
class DispatchResult:
    """Ordered outcomes of a dispatch run.

    ``failed_index`` is the zero-based attempt SwitchBot rejected, or ``None``
    when every press succeeded.
    """

    device_id: str
    results: List[CommandOutcome] = field(default_factory=list)
    failed_index: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failed_index is None

    @property
    def tries(self) -> int:
        return len(self.results)
