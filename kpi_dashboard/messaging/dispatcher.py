"""Sequential bulk message dispatch over a single paired chat session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from fastapi import status
from opentelemetry import metrics

from kpi_dashboard.core.errors import DashboardError
from kpi_dashboard.messaging.client import (
    EVENT_AUTH_FAILURE,
    EVENT_DISCONNECTED,
    EVENT_QR,
    EVENT_READY,
    ChatClient,
    ChatClientError,
    ChatSessionClosed,
)
from kpi_dashboard.messaging.qr import render_qr_data_url

logger = logging.getLogger(__name__)

_meter = metrics.get_meter(__name__)
_message_counter = _meter.create_counter(
    "whatsapp.messages",
    unit="1",
    description="Bulk messages attempted, by outcome",
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class MessagingError(DashboardError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotConnected(MessagingError):
    status_code = status.HTTP_400_BAD_REQUEST


class DispatcherBusy(MessagingError):
    status_code = status.HTTP_409_CONFLICT


class SessionTerminated(MessagingError):
    """The session closed mid-run; recipients after the cursor were not attempted."""


@dataclass
class BulkSendResult:
    sent: int = 0
    failed: int = 0
    logs: list[str] = field(default_factory=list)
    cancelled: bool = False
    remaining: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "logs": list(self.logs),
            "cancelled": self.cancelled,
            "remaining": list(self.remaining),
        }


class BulkSendJob:
    """Progress of one bulk run; ``cursor`` is the index of the next recipient."""

    def __init__(self, recipients: Sequence[str], message: str) -> None:
        self.recipients = list(recipients)
        self.message = message
        self.cursor = 0
        self.result = BulkSendResult()
        self._cancel = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def remaining(self) -> list[str]:
        return self.recipients[self.cursor :]

    async def pause(self, seconds: float) -> None:
        """Sleep between sends, waking early if the job is cancelled."""

        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def progress(self) -> dict[str, Any]:
        return {
            "total": len(self.recipients),
            "processed": self.cursor,
            "sent": self.result.sent,
            "failed": self.result.failed,
            "cancelled": self.cancelled,
        }


class MessagingDispatcher:
    """Own the chat session and push one message to many recipients, one at a time."""

    def __init__(
        self,
        client: ChatClient,
        *,
        send_delay_seconds: float = 2.0,
        send_timeout_seconds: float = 30.0,
        qr_renderer: Callable[[str], str] = render_qr_data_url,
    ) -> None:
        self._client = client
        self._send_delay = send_delay_seconds
        self._send_timeout = send_timeout_seconds
        self._render_qr = qr_renderer
        self._state = ConnectionState.DISCONNECTED
        self._qr_code: str | None = None
        self._watcher: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._job: BulkSendJob | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def active_job(self) -> BulkSendJob | None:
        return self._job

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is not self._state:
            logger.info("WhatsApp session %s -> %s", self._state.value, new_state.value)
        self._state = new_state
        if new_state is not ConnectionState.CONNECTING:
            self._qr_code = None

    async def initialize(self) -> dict[str, Any]:
        """Begin pairing in the background and return straight away."""

        if self.is_connected:
            return {"success": True, "message": "WhatsApp already connected"}
        if self._watcher is not None and not self._watcher.done():
            return {"success": True, "message": "WhatsApp initialization already in progress"}

        self._set_state(ConnectionState.CONNECTING)
        self._qr_code = None
        self._watcher = asyncio.create_task(self._watch_session())
        return {"success": True, "message": "WhatsApp initialization started"}

    async def _watch_session(self) -> None:
        try:
            async for event in self._client.connect():
                if event.kind == EVENT_QR and event.payload:
                    self._qr_code = self._render_qr(event.payload)
                    logger.info("WhatsApp pairing code received")
                elif event.kind == EVENT_READY:
                    self._set_state(ConnectionState.CONNECTED)
                elif event.kind == EVENT_AUTH_FAILURE:
                    logger.warning("WhatsApp authentication failed: %s", event.payload)
                    self._set_state(ConnectionState.ERROR)
                    return
                elif event.kind == EVENT_DISCONNECTED:
                    logger.info("WhatsApp client disconnected: %s", event.payload)
                    self._set_state(ConnectionState.DISCONNECTED)
                    return
        except ChatClientError as exc:
            logger.error("WhatsApp session failed: %s", exc)
            self._set_state(ConnectionState.ERROR)
            return
        if self._state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.ERROR)

    def status(self) -> dict[str, Any]:
        return {
            "status": self._state.value,
            "isConnected": self.is_connected,
            "qrCode": self._qr_code,
            "job": self._job.progress() if self._job is not None else None,
        }

    async def send_bulk(self, recipients: Sequence[str], message: str) -> BulkSendResult:
        """Send ``message`` to each recipient in order.

        Individual failures and timeouts are recorded and skipped. Consecutive
        sends are separated by the configured delay whatever their outcome.
        """

        if not self.is_connected:
            raise NotConnected("WhatsApp not connected")
        if self._lock.locked():
            raise DispatcherBusy("A bulk send is already in progress")

        async with self._lock:
            job = BulkSendJob(recipients, message)
            self._job = job
            logger.info("Sending bulk message to %s recipients", len(job.recipients))
            try:
                return await self._run(job)
            finally:
                self._job = None

    async def _run(self, job: BulkSendJob) -> BulkSendResult:
        result = job.result
        for index, recipient in enumerate(job.recipients):
            if index:
                await job.pause(self._send_delay)
            if job.cancelled:
                break
            job.cursor = index
            try:
                await asyncio.wait_for(self._client.send_one(recipient, job.message), timeout=self._send_timeout)
            except ChatSessionClosed as exc:
                # A dead session's event stream never ends on its own
                await self._stop_watcher()
                self._set_state(ConnectionState.DISCONNECTED)
                logger.error("WhatsApp session closed after %s of %s recipients", index, len(job.recipients))
                raise SessionTerminated("WhatsApp session was terminated", error=str(exc)) from exc
            except asyncio.TimeoutError:
                self._record_failure(result, recipient, f"timed out after {self._send_timeout:g}s")
            except Exception as exc:  # noqa: BLE001 - one bad recipient must not stop the run
                self._record_failure(result, recipient, str(exc))
            else:
                result.sent += 1
                result.logs.append(f"Message sent to {recipient}")
                _message_counter.add(1, {"outcome": "sent"})
                logger.info("Message sent to %s", recipient)
            job.cursor = index + 1

        if job.cancelled:
            result.cancelled = True
            result.remaining = job.remaining()
            logger.info("Bulk send cancelled with %s recipients remaining", len(result.remaining))
        logger.info("Bulk send finished: %s sent, %s failed", result.sent, result.failed)
        return result

    def _record_failure(self, result: BulkSendResult, recipient: str, reason: str) -> None:
        result.failed += 1
        result.logs.append(f"Failed to send to {recipient}: {reason}")
        _message_counter.add(1, {"outcome": "failed"})
        logger.warning("Failed to send to %s: %s", recipient, reason)

    def cancel(self) -> bool:
        """Stop the running job before its next recipient; ``False`` when idle."""

        if self._job is None:
            return False
        self._job.cancel()
        return True

    async def _stop_watcher(self) -> None:
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
        self._watcher = None

    async def disconnect(self) -> None:
        self.cancel()
        await self._stop_watcher()
        try:
            await self._client.disconnect()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def shutdown(self) -> None:
        """Release background work without touching the remote session."""

        self.cancel()
        await self._stop_watcher()


__all__ = [
    "BulkSendJob",
    "BulkSendResult",
    "ConnectionState",
    "DispatcherBusy",
    "MessagingDispatcher",
    "MessagingError",
    "NotConnected",
    "SessionTerminated",
]
