"""Client-side connection and session state."""

from panesync.client.client import PaneSyncClient
from panesync.client.connection import ConnectionManager, ConnectionPhase, ConnectionStatus, DisconnectReason
from panesync.client.session import SessionCoordinator, SessionPhase, SessionViewState

__all__ = [
    "ConnectionManager",
    "ConnectionPhase",
    "ConnectionStatus",
    "DisconnectReason",
    "PaneSyncClient",
    "SessionCoordinator",
    "SessionPhase",
    "SessionViewState",
]
