"""Bulk send sequencing, failure accounting and session lifecycle."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import httpx
import pytest

from kpi_dashboard.messaging import (
    ChatSessionClosed,
    ConnectionState,
    DispatcherBusy,
    MessagingDispatcher,
    NotConnected,
    SessionEvent,
    SessionTerminated,
    WhatsAppBridgeClient,
)


class FakeChatClient:
    def __init__(self, *, failing=(), closing=(), slow=(), events=None) -> None:
        self.failing = set(failing)
        self.closing = set(closing)
        self.slow = set(slow)
        self.events = events if events is not None else [SessionEvent("ready")]
        self.attempts: list[str] = []
        self.disconnected = False

    async def connect(self) -> AsyncIterator[SessionEvent]:
        for event in self.events:
            yield event
        await asyncio.Event().wait()

    async def send_one(self, recipient: str, message: str) -> None:
        self.attempts.append(recipient)
        if recipient in self.closing:
            raise ChatSessionClosed("Session closed")
        if recipient in self.slow:
            await asyncio.sleep(1)
        if recipient in self.failing:
            raise RuntimeError("invalid number")

    async def get_status(self) -> dict:
        return {"state": "ready"}

    async def disconnect(self) -> None:
        self.disconnected = True


async def _connected(client: FakeChatClient, **kwargs) -> MessagingDispatcher:
    dispatcher = MessagingDispatcher(client, send_delay_seconds=0, qr_renderer=lambda payload: f"qr:{payload}", **kwargs)
    await dispatcher.initialize()
    for _ in range(20):
        if dispatcher.is_connected:
            break
        await asyncio.sleep(0)
    return dispatcher


RECIPIENTS = ["911", "912", "913", "914", "915"]


def test_failures_are_recorded_and_every_recipient_attempted():
    async def _scenario():
        client = FakeChatClient(failing={"912", "914"})
        dispatcher = await _connected(client)
        result = await dispatcher.send_bulk(RECIPIENTS, "Hello")
        await dispatcher.shutdown()
        return client, result

    client, result = asyncio.run(_scenario())

    assert client.attempts == RECIPIENTS
    assert result.sent == 3
    assert result.failed == 2
    assert len(result.logs) == 5
    assert result.logs[0] == "Message sent to 911"
    assert result.logs[1] == "Failed to send to 912: invalid number"
    assert result.cancelled is False


@pytest.mark.asyncio
async def test_send_requires_connected_session():
    dispatcher = MessagingDispatcher(FakeChatClient(), send_delay_seconds=0)
    with pytest.raises(NotConnected):
        await dispatcher.send_bulk(RECIPIENTS, "Hello")


@pytest.mark.asyncio
async def test_slow_send_times_out_and_run_continues():
    client = FakeChatClient(slow={"913"})
    dispatcher = await _connected(client, send_timeout_seconds=0.05)
    result = await dispatcher.send_bulk(RECIPIENTS, "Hello")
    await dispatcher.shutdown()

    assert result.sent == 4
    assert result.failed == 1
    assert result.logs[2].startswith("Failed to send to 913: timed out")


def test_session_closed_mid_run_aborts_remaining_recipients():
    async def _scenario():
        client = FakeChatClient(closing={"913"})
        dispatcher = await _connected(client)
        with pytest.raises(SessionTerminated):
            await dispatcher.send_bulk(RECIPIENTS, "Hello")
        await dispatcher.shutdown()
        return client, dispatcher

    client, dispatcher = asyncio.run(_scenario())

    assert client.attempts == ["911", "912", "913"]
    assert dispatcher.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_terminated_session_can_be_initialized_again():
    client = FakeChatClient(closing={"912"})
    dispatcher = await _connected(client)
    with pytest.raises(SessionTerminated):
        await dispatcher.send_bulk(RECIPIENTS, "Hello")

    response = await dispatcher.initialize()
    assert response["message"] == "WhatsApp initialization started"
    assert dispatcher.state is ConnectionState.CONNECTING

    for _ in range(20):
        if dispatcher.is_connected:
            break
        await asyncio.sleep(0)
    client.closing.clear()
    result = await dispatcher.send_bulk(["916"], "Again")
    await dispatcher.shutdown()

    assert dispatcher.is_connected
    assert result.sent == 1


def test_cancel_stops_before_next_recipient():
    async def _scenario():
        client = FakeChatClient()
        dispatcher = MessagingDispatcher(client, send_delay_seconds=0.2)
        await dispatcher.initialize()
        while not dispatcher.is_connected:
            await asyncio.sleep(0)

        task = asyncio.create_task(dispatcher.send_bulk(RECIPIENTS, "Hello"))
        while not client.attempts:
            await asyncio.sleep(0)
        with pytest.raises(DispatcherBusy):
            await dispatcher.send_bulk(["999"], "Other")
        assert dispatcher.cancel() is True
        result = await task
        await dispatcher.shutdown()
        return result

    result = asyncio.run(_scenario())

    assert result.cancelled is True
    assert result.sent == 1
    assert result.remaining == RECIPIENTS[1:]


def test_status_exposes_rendered_qr_while_pairing():
    async def _scenario():
        client = FakeChatClient(events=[SessionEvent("qr", "pairing-code")])
        dispatcher = MessagingDispatcher(client, qr_renderer=lambda payload: f"data:{payload}")
        await dispatcher.initialize()
        for _ in range(10):
            await asyncio.sleep(0)
        status = dispatcher.status()
        await dispatcher.disconnect()
        return status, dispatcher, client

    status, dispatcher, client = asyncio.run(_scenario())

    assert status["status"] == "connecting"
    assert status["isConnected"] is False
    assert status["qrCode"] == "data:pairing-code"
    assert client.disconnected is True
    assert dispatcher.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_bridge_client_maps_gone_to_session_closed():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"path": request.url.path, "body": request.content})
        if request.url.path == "/messages":
            return httpx.Response(410, json={"error": "gone"})
        return httpx.Response(200, json={"state": "ready"})

    client = WhatsAppBridgeClient("http://bridge", token="t", transport=httpx.MockTransport(handler))

    assert await client.get_status() == {"state": "ready"}
    with pytest.raises(ChatSessionClosed):
        await client.send_one("919876543210", "Hi")
    assert b"919876543210@c.us" in seen[1]["body"]
