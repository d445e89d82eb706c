import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from conftest import SleepRecorder, SwitchBotStub, build_config
from switchbot_relay.server import RelayServer

EMOTIONS = {"tension": "E16-TENSION", "relax": "E16-RELAX"}
PATH = "/api/switchbot"


def _relay(config, sleep_recorder: SleepRecorder) -> RelayServer:
    return RelayServer(config, sleep=sleep_recorder)


def _assert_cors(response, origin: str = "*") -> None:
    assert response.headers["Access-Control-Allow-Origin"] == origin
    assert response.headers["Access-Control-Allow-Methods"] == "POST,OPTIONS"
    assert response.headers["Access-Control-Allow-Headers"] == "content-type,authorization"


@pytest.mark.asyncio
async def test_options_preflight_never_dispatches(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")), emotions=EMOTIONS)
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.options(PATH)
            body = await response.read()

            assert response.status == 204
            assert body == b""
            _assert_cors(response)

    assert stub.requests == []
    assert sleep_recorder.calls == []


@pytest.mark.asyncio
async def test_other_methods_are_rejected(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.get(PATH)
        payload = await response.json()

        assert response.status == 405
        assert payload == {"ok": False, "error": "method_not_allowed"}
        _assert_cors(response)


@pytest.mark.asyncio
async def test_missing_token_is_a_server_error(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(token=None, emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(PATH, json={"emotion": "tension"})
        payload = await response.json()

        assert response.status == 500
        assert payload == {"ok": False, "error": "missing_token"}


@pytest.mark.asyncio
async def test_invalid_json_body(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(
            PATH, data="{not json", headers={"Content-Type": "application/json"}
        )
        payload = await response.json()

        assert response.status == 400
        assert payload == {"ok": False, "error": "invalid_json"}
        _assert_cors(response)


@pytest.mark.asyncio
async def test_non_object_body_is_invalid_json(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(PATH, json=["tension"])
        payload = await response.json()

        assert response.status == 400
        assert payload["error"] == "invalid_json"


@pytest.mark.asyncio
@pytest.mark.parametrize("times", [0, -1, 1.5, "two", True, 11])
async def test_invalid_times_are_rejected(times, sleep_recorder: SleepRecorder):
    relay = _relay(build_config(emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(PATH, json={"emotion": "tension", "times": times})
        payload = await response.json()

        assert response.status == 400
        assert payload["ok"] is False
        assert payload["error"] == "invalid_request"
        assert "times" in payload["message"]


@pytest.mark.asyncio
async def test_unresolved_device_reports_known_keys(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")), emotions=EMOTIONS)
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"emotion": "joy"})
            payload = await response.json()

    assert response.status == 400
    assert payload == {
        "ok": False,
        "error": "device_id_not_found",
        "emotion": "joy",
        "participantId": None,
        "deviceId": None,
        "known_keys": ["relax", "tension"],
    }
    assert stub.requests == []


@pytest.mark.asyncio
async def test_double_press_success(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")), emotions=EMOTIONS)
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"emotion": "Tension", "times": 2})
            payload = await response.json()
            _assert_cors(response)

    assert response.status == 200
    assert payload["ok"] is True
    assert payload["tries"] == 2
    assert payload["deviceId"] == "E16-TENSION"
    assert [item["status"] for item in payload["results"]] == [200, 200]
    assert payload["results"][0]["body"]["statusCode"] == 100
    assert len(stub.requests) == 2
    assert sleep_recorder.calls == [0.6]


@pytest.mark.asyncio
async def test_times_accepts_numeric_strings(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")))
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"deviceId": "DIRECT-1", "times": "2"})
            payload = await response.json()

    assert payload["ok"] is True
    assert payload["tries"] == 2
    assert payload["deviceId"] == "DIRECT-1"


@pytest.mark.asyncio
async def test_remote_rejection_is_reported_with_status_200(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub(
        responses=[
            (200, {"statusCode": 100, "message": "success"}),
            (200, {"statusCode": 190, "message": "device internal error"}),
        ]
    )

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")), emotions=EMOTIONS)
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"emotion": "relax", "times": 3})
            payload = await response.json()

    assert response.status == 200
    assert payload["ok"] is False
    assert payload["error"] == "switchbot_error"
    assert payload["tries"] == 2
    assert len(payload["results"]) == 2
    assert payload["results"][1]["body"]["statusCode"] == 190
    assert len(stub.requests) == 2


@pytest.mark.asyncio
async def test_undecodable_remote_body_keeps_partial_progress(
    sleep_recorder: SleepRecorder,
):
    stub = SwitchBotStub(
        responses=[
            (200, {"statusCode": 100, "message": "success"}),
            (200, b"\xff\xfe\xfa"),
        ]
    )

    async with TestServer(stub.create_app()) as remote:
        config = build_config(base_url=str(remote.make_url("/")))
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"deviceId": "D1", "times": 2})
            payload = await response.json()

    assert response.status == 200
    assert payload["ok"] is False
    assert payload["error"] == "switchbot_error"
    assert payload["tries"] == 2
    assert payload["results"][0]["body"]["statusCode"] == 100
    assert "raw" in payload["results"][1]["body"]


@pytest.mark.asyncio
async def test_oversized_body_is_rejected_with_cors(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(emotions=EMOTIONS), sleep_recorder)
    padding = "x" * (2 * 1024 * 1024)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(
            PATH, json={"emotion": "tension", "padding": padding}
        )
        payload = await response.json()

        assert response.status == 413
        assert payload["ok"] is False
        assert payload["error"] == "payload_too_large"
        _assert_cors(response)


@pytest.mark.asyncio
async def test_transport_failure_is_a_server_error(
    unused_tcp_port, sleep_recorder: SleepRecorder
):
    config = build_config(
        base_url=f"http://127.0.0.1:{unused_tcp_port}", emotions=EMOTIONS
    )
    relay = _relay(config, sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.post(PATH, json={"emotion": "tension"})
        payload = await response.json()

    assert response.status == 500
    assert payload["ok"] is False
    assert payload["error"] == "request_failed"
    assert payload["message"]
    assert payload["tries"] == 1
    assert payload["results"] == []


@pytest.mark.asyncio
async def test_hmac_scheme_uses_v11_path(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(
            base_url=str(remote.make_url("/")), secret="sec", emotions=EMOTIONS
        )
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"emotion": "tension"})
            payload = await response.json()

    assert payload["ok"] is True
    assert stub.requests[0]["version"] == "v1.1"
    assert "sign" in stub.requests[0]["headers"]


@pytest.mark.asyncio
async def test_participant_fallback_to_emotion_table(sleep_recorder: SleepRecorder):
    stub = SwitchBotStub()

    async with TestServer(stub.create_app()) as remote:
        config = build_config(
            base_url=str(remote.make_url("/")), emotions=EMOTIONS, fallback=True
        )
        relay = _relay(config, sleep_recorder)
        async with TestClient(TestServer(relay.create_app())) as client:
            response = await client.post(PATH, json={"participantId": "relax"})
            payload = await response.json()

    assert payload["ok"] is True
    assert payload["deviceId"] == "E16-RELAX"


@pytest.mark.asyncio
async def test_configured_cors_origin(sleep_recorder: SleepRecorder):
    origin = "https://relay.example.test"
    relay = _relay(build_config(cors_origin=origin), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.options(PATH)

        assert response.status == 204
        _assert_cors(response, origin)


@pytest.mark.asyncio
async def test_health_reports_signing_scheme(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(secret="sec", emotions=EMOTIONS), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.get("/healthz")
        payload = await response.json()

    assert response.status == 200
    assert payload == {
        "status": "ok",
        "signing": "hmac",
        "emotions": ["relax", "tension"],
        "participants": [],
    }


@pytest.mark.asyncio
async def test_health_degraded_without_token(sleep_recorder: SleepRecorder):
    relay = _relay(build_config(token=None), sleep_recorder)

    async with TestClient(TestServer(relay.create_app())) as client:
        response = await client.get("/healthz")
        payload = await response.json()

    assert response.status == 503
    assert payload["status"] == "degraded"


@pytest.mark.asyncio
async def test_server_start_and_stop(unused_tcp_port, sleep_recorder: SleepRecorder):
    config = build_config(emotions=EMOTIONS)
    config.server.port = unused_tcp_port
    relay = _relay(config, sleep_recorder)
    await relay.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.options(
                f"http://127.0.0.1:{unused_tcp_port}{PATH}"
            ) as response:
                assert response.status == 204
    finally:
        await relay.stop()
