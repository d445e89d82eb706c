"""Error taxonomy for the relay request pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from .core.models import CommandOutcome


class RelayError(RuntimeError):
    """Base class for local failures that map onto an HTTP error response."""

    code = "request_failed"
    status = 500

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    def details(self) -> Dict[str, Any]:
        """Extra fields merged into the error response body."""
        return {"message": str(self)}


class InvalidInput(RelayError):
    """Raised when the request body cannot be interpreted."""

    code = "invalid_json"
    status = 400

    def details(self) -> Dict[str, Any]:
        if self.code == "invalid_json":
            return {}
        return super().details()


class PayloadTooLarge(RelayError):
    """Raised when the request body exceeds the server's size limit."""

    code = "payload_too_large"
    status = 413


class Misconfiguration(RelayError):
    """Raised when required configuration is missing."""

    code = "missing_token"
    status = 500

    def details(self) -> Dict[str, Any]:
        return {}


class ResolutionFailure(RelayError):
    """Raised when no device id can be derived from the request."""

    code = "device_id_not_found"
    status = 400

    def __init__(
        self,
        *,
        emotion: Optional[str],
        participant_id: Optional[str],
        device_id: Optional[str],
        known_keys: Sequence[str],
    ) -> None:
        super().__init__("device id not found")
        self.emotion = emotion
        self.participant_id = participant_id
        self.device_id = device_id
        self.known_keys = list(known_keys)

    def details(self) -> Dict[str, Any]:
        return {
            "emotion": self.emotion,
            "participantId": self.participant_id,
            "deviceId": self.device_id,
            "known_keys": self.known_keys,
        }


class TransportFailure(RelayError):
    """Raised when an outbound call fails before SwitchBot could answer."""

    code = "request_failed"
    status = 500

    def __init__(
        self, message: str, *, results: Sequence[CommandOutcome] = ()
    ) -> None:
        super().__init__(message)
        self.results = list(results)

    @property
    def tries(self) -> int:
        # The failing attempt counts even though it produced no outcome.
        return len(self.results) + 1

    def details(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "tries": self.tries,
            "results": [outcome.as_dict() for outcome in self.results],
        }
