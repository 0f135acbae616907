"""Bulk WhatsApp messaging: chat client, session state and dispatch."""

from .client import ChatClient, ChatClientError, ChatSessionClosed, SessionEvent, WhatsAppBridgeClient
from .dispatcher import (
    BulkSendJob,
    BulkSendResult,
    ConnectionState,
    DispatcherBusy,
    MessagingDispatcher,
    MessagingError,
    NotConnected,
    SessionTerminated,
)

__all__ = [
    "BulkSendJob",
    "BulkSendResult",
    "ChatClient",
    "ChatClientError",
    "ChatSessionClosed",
    "ConnectionState",
    "DispatcherBusy",
    "MessagingDispatcher",
    "MessagingError",
    "NotConnected",
    "SessionEvent",
    "SessionTerminated",
    "WhatsAppBridgeClient",
]
