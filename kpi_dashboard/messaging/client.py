"""Chat-automation client interface and the HTTP bridge implementation.

The browser session that talks to WhatsApp Web lives in a separate bridge
service. This module only speaks HTTP to it, the same way the API talks to
its other sidecar services.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Protocol

import httpx

from kpi_dashboard.config import get_settings

logger = logging.getLogger(__name__)

EVENT_QR = "qr"
EVENT_READY = "ready"
EVENT_AUTH_FAILURE = "auth_failure"
EVENT_DISCONNECTED = "disconnected"


class ChatClientError(RuntimeError):
    """Raised when the chat client or its bridge rejects a request."""


class ChatSessionClosed(ChatClientError):
    """The paired session was terminated; no further sends can succeed."""


@dataclass(frozen=True)
class SessionEvent:
    kind: str
    payload: str | None = None


class ChatClient(Protocol):
    def connect(self) -> AsyncIterator[SessionEvent]:
        """Start pairing and yield QR, ready, auth-failure and disconnect events."""

    async def send_one(self, recipient: str, message: str) -> None:
        ...

    async def get_status(self) -> dict[str, Any]:
        ...

    async def disconnect(self) -> None:
        ...


def chat_id(recipient: str) -> str:
    return f"{recipient}@c.us"


class WhatsAppBridgeClient:
    """:class:`ChatClient` backed by the WhatsApp Web bridge's REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float = 15.0,
        poll_interval_seconds: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.whatsapp_bridge_url or "").rstrip("/")
        if not self._base_url:
            raise ChatClientError("WhatsApp bridge URL is not configured")
        self._token = token if token is not None else settings.whatsapp_bridge_token
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with self._http() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ChatClientError(f"Failed to reach WhatsApp bridge: {exc}") from exc

        if response.status_code == httpx.codes.GONE:
            raise ChatSessionClosed("WhatsApp session was terminated")
        if response.status_code >= 400:
            detail: Any
            try:
                payload = response.json()
                detail = payload.get("error") or payload.get("message") or payload
            except ValueError:
                detail = response.text
            raise ChatClientError(str(detail))

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ChatClientError("WhatsApp bridge returned invalid JSON payload") from exc
        return payload if isinstance(payload, dict) else {}

    async def connect(self) -> AsyncIterator[SessionEvent]:
        """Start the bridge session and poll it until it stops.

        A QR event is emitted each time the bridge rotates the pairing code.
        After ``ready`` the session keeps being polled so a later disconnect
        is still reported.
        """

        await self._request("POST", "/session/start")
        last_qr: str | None = None
        ready = False
        while True:
            status = await self.get_status()
            state = status.get("state")
            if state == EVENT_QR and not ready:
                qr = status.get("qr")
                if qr and qr != last_qr:
                    last_qr = qr
                    yield SessionEvent(EVENT_QR, qr)
            elif state == EVENT_READY and not ready:
                ready = True
                yield SessionEvent(EVENT_READY)
            elif state in (EVENT_AUTH_FAILURE, EVENT_DISCONNECTED):
                yield SessionEvent(state, status.get("reason"))
                return
            await asyncio.sleep(self._poll_interval)

    async def send_one(self, recipient: str, message: str) -> None:
        await self._request("POST", "/messages", json={"chatId": chat_id(recipient), "message": message})

    async def get_status(self) -> dict[str, Any]:
        return await self._request("GET", "/session/status")

    async def disconnect(self) -> None:
        await self._request("POST", "/session/stop")


__all__ = [
    "ChatClient",
    "ChatClientError",
    "ChatSessionClosed",
    "EVENT_AUTH_FAILURE",
    "EVENT_DISCONNECTED",
    "EVENT_QR",
    "EVENT_READY",
    "SessionEvent",
    "WhatsAppBridgeClient",
    "chat_id",
]
