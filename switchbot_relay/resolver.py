"""Map a command request onto a concrete SwitchBot device id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

from .core.models import CommandRequest


@dataclass(slots=True, frozen=True)
class DeviceNotFound:
    emotion: Optional[str]
    participant_id: Optional[str]
    device_id: Optional[str]
    known_keys: List[str]


ResolveResult = Union[str, DeviceNotFound]


def lookup_emotion(emotion: str, emotion_map: Mapping[str, str]) -> Optional[str]:
    """Case-insensitive lookup; an exact key match wins over a folded one."""
    if emotion in emotion_map:
        return emotion_map[emotion]
    folded = emotion.casefold()
    for key, device_id in emotion_map.items():
        if key.casefold() == folded:
            return device_id
    return None


def resolve(
    request: CommandRequest,
    emotion_map: Mapping[str, str],
    participant_map: Mapping[str, str],
) -> ResolveResult:
    """Return the target device id, or :class:`DeviceNotFound`.

    Priority is explicit ``device_id``, then ``emotion``, then
    ``participant_id``. Empty fields are never looked up.
    """

    if request.device_id:
        return request.device_id

    consulted: List[Mapping[str, str]] = []

    if request.emotion:
        consulted.append(emotion_map)
        device_id = lookup_emotion(request.emotion, emotion_map)
        if device_id:
            return device_id

    if request.participant_id:
        consulted.append(participant_map)
        device_id = participant_map.get(request.participant_id)
        if device_id:
            return device_id

    if not consulted:
        consulted.append(emotion_map)

    known_keys: set[str] = set()
    for table in consulted:
        known_keys.update(table.keys())

    return DeviceNotFound(
        emotion=request.emotion,
        participant_id=request.participant_id,
        device_id=request.device_id,
        known_keys=sorted(known_keys),
    )
