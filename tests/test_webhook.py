import asyncio
import json
import logging
import socket

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.helpers import RecordingDispatcher
from updatestream.updates.dispatch import Dispatcher
from updatestream.updates.exceptions import WebhookBindError
from updatestream.updates.state import BotState
from updatestream.updates.webhook import (
    SECRET_TOKEN_HEADER,
    WebhookUpdater,
    bind_listener,
    create_webhook_app,
)


def _message_update(update_id: int, text: str = "hello") -> dict[str, object]:
    """Build a minimal Telegram message update payload."""
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "text": text,
            "chat": {"id": 42, "type": "private"},
        },
    }


def _webhook_client(*, secret_token: str = "", last_update_id: int = 0, path: str = "/"):
    dispatcher = RecordingDispatcher()
    state = BotState(last_update_id=last_update_id)
    app = create_webhook_app(
        dispatcher=dispatcher,
        state=state,
        secret_token=secret_token,
        path=path,
    )
    return TestClient(app), dispatcher, state


def test_webhook_dispatches_new_update_and_acknowledges() -> None:
    client, dispatcher, state = _webhook_client()

    response = client.post("/", json=_message_update(1))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert dispatcher.update_ids == [1]
    assert dispatcher.updates[0].payload["message"]["text"] == "hello"
    assert state.watermark.value == 1


def test_webhook_drops_updates_at_or_below_watermark() -> None:
    """With watermark 10, ids 10 and 5 are dropped and 11 is accepted."""
    client, dispatcher, state = _webhook_client(last_update_id=10)

    for update_id in (10, 5, 11):
        response = client.post("/", json=_message_update(update_id))
        assert response.status_code == 200

    assert dispatcher.update_ids == [11]
    assert state.watermark.value == 11


def test_webhook_replayed_update_is_dispatched_once() -> None:
    client, dispatcher, _ = _webhook_client()
    payload = _message_update(2001)

    client.post("/", json=payload)
    client.post("/", json=payload)

    assert dispatcher.update_ids == [2001]


@pytest.mark.parametrize(
    "headers",
    [
        {SECRET_TOKEN_HEADER: "wrong"},
        {},
        {SECRET_TOKEN_HEADER: ""},
    ],
)
def test_webhook_ignores_requests_without_matching_secret(headers, caplog) -> None:
    client, dispatcher, state = _webhook_client(secret_token="abc")

    with caplog.at_level(logging.DEBUG, logger="updatestream.updates.webhook"):
        response = client.post("/", headers=headers, json=_message_update(1))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert dispatcher.updates == []
    assert state.watermark.value == 0
    assert [record for record in caplog.records if record.name.startswith("updatestream")] == []


def test_webhook_without_secret_warns_once_at_startup(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="updatestream.updates.webhook"):
        _webhook_client(secret_token="", path="/hook")
        _webhook_client(secret_token="abc")

    messages = [record.message for record in caplog.records]
    assert messages == ['event=updater.webhook.secret_missing fields={"path":"/hook"}']


def test_webhook_with_matching_secret_dispatches_exactly_once() -> None:
    client, dispatcher, _ = _webhook_client(secret_token="abc")

    response = client.post("/", headers={SECRET_TOKEN_HEADER: "abc"}, json=_message_update(1))

    assert response.status_code == 200
    assert dispatcher.update_ids == [1]


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        b"",
        json.dumps({"message": {"text": "missing id"}}).encode(),
        json.dumps([_message_update(3)]).encode(),
    ],
)
def test_webhook_logs_and_swallows_undecodable_body(body: bytes, caplog) -> None:
    client, dispatcher, state = _webhook_client()

    with caplog.at_level(logging.WARNING, logger="updatestream.updates.webhook"):
        response = client.post("/", content=body, headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert dispatcher.updates == []
    assert state.watermark.value == 0
    assert any("updater.webhook.decode_failed" in record.message for record in caplog.records)


def test_webhook_serves_on_configured_path_only() -> None:
    client, dispatcher, _ = _webhook_client(path="/telegram/updates")

    assert client.post("/", json=_message_update(1)).status_code == 404
    assert client.post("/telegram/updates", json=_message_update(1)).status_code == 200
    assert dispatcher.update_ids == [1]


def test_bind_failure_is_raised_from_start() -> None:
    occupied = socket.create_server(("127.0.0.1", 0))
    port = occupied.getsockname()[1]
    updater = WebhookUpdater(dispatcher=RecordingDispatcher(), state=BotState())

    try:
        with pytest.raises(WebhookBindError) as exc_info:
            asyncio.run(updater.start("127.0.0.1", port))
    finally:
        occupied.close()

    assert exc_info.value.port == port
    assert isinstance(exc_info.value.__cause__, OSError)


def test_bind_listener_returns_listening_socket() -> None:
    sock = bind_listener("127.0.0.1", 0)
    try:
        host, port = sock.getsockname()[:2]
        assert host == "127.0.0.1"
        assert port > 0
    finally:
        sock.close()


def test_webhook_updater_serves_until_stop_signal() -> None:
    listener = socket.create_server(("127.0.0.1", 0))
    port = listener.getsockname()[1]
    listener.close()

    async def scenario() -> list[int]:
        state = BotState()
        seen: list[int] = []
        handled = asyncio.Event()

        async def handler(update) -> None:
            seen.append(update.update_id)
            handled.set()

        updater = WebhookUpdater(
            dispatcher=Dispatcher(handler),
            state=state,
            secret_token="abc",
        )
        server_task = asyncio.create_task(updater.start("127.0.0.1", port))
        for _ in range(200):
            if updater.is_serving:
                break
            await asyncio.sleep(0.01)
        assert updater.is_serving

        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{port}") as client:
            response = await client.post(
                "/",
                headers={SECRET_TOKEN_HEADER: "abc"},
                json=_message_update(5),
            )
        assert response.status_code == 200
        await asyncio.wait_for(handled.wait(), timeout=2)

        state.stop()
        await asyncio.wait_for(server_task, timeout=5)
        assert not updater.is_serving
        return seen

    assert asyncio.run(scenario()) == [5]
