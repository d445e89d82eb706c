"""Request parsing and JSON response shaping for the relay endpoint."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from aiohttp import web

from . import constants
from .core.models import CommandRequest, DispatchResult
from .errors import InvalidInput, RelayError

ALLOWED_METHODS = "POST,OPTIONS"
ALLOWED_HEADERS = "content-type,authorization"


def cors_headers(origin: str = constants.DEFAULT_CORS_ORIGIN) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def json_response(status: int, payload: Mapping[str, Any], origin: str) -> web.Response:
    return web.json_response(dict(payload), status=status, headers=cors_headers(origin))


def preflight_response(origin: str) -> web.Response:
    return web.Response(status=204, headers=cors_headers(origin))


def method_not_allowed(origin: str) -> web.Response:
    return json_response(405, {"ok": False, "error": "method_not_allowed"}, origin)


def error_response(error: RelayError, origin: str) -> web.Response:
    payload: Dict[str, Any] = {"ok": False, "error": error.code}
    payload.update(error.details())
    return json_response(error.status, payload, origin)


def dispatch_payload(result: DispatchResult) -> Dict[str, Any]:
    results = [outcome.as_dict() for outcome in result.results]
    if result.ok:
        payload: Dict[str, Any] = {
            "ok": True,
            "tries": result.tries,
            "deviceId": result.device_id,
            "results": results,
        }
    else:
        payload = {
            "ok": False,
            "error": "switchbot_error",
            "tries": result.tries,
            "results": results,
        }
    return payload


def dispatch_response(result: DispatchResult, origin: str) -> web.Response:
    """Remote rejections still answer 200 so callers handle both shapes alike."""
    return json_response(200, dispatch_payload(result), origin)


def parse_command_request(body: Any, *, max_times: int) -> CommandRequest:
    """Validate a decoded JSON body into a :class:`CommandRequest`."""

    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise InvalidInput("request body must be a JSON object")

    command_key = body.get("commandKey")
    if command_key is None or command_key == "":
        command_key = constants.DEFAULT_COMMAND_KEY
    if not isinstance(command_key, str):
        raise InvalidInput("commandKey must be a string", code="invalid_request")

    return CommandRequest(
        device_id=_optional_text(body.get("deviceId")),
        emotion=_optional_text(body.get("emotion")),
        participant_id=_optional_text(body.get("participantId")),
        command_key=command_key,
        times=_parse_times(body.get("times"), max_times=max_times),
    )


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _parse_times(value: Any, *, max_times: int) -> int:
    if value is None:
        return 1
    if isinstance(value, bool):
        raise InvalidInput("times must be a positive integer", code="invalid_request")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidInput(
                "times must be a positive integer", code="invalid_request"
            ) from None
    if not isinstance(value, int) or value < 1:
        raise InvalidInput("times must be a positive integer", code="invalid_request")
    if value > max_times:
        raise InvalidInput(
            f"times must not exceed {max_times}", code="invalid_request"
        )
    return value
