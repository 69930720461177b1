"""Connection lifecycle state of the WhatsApp session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ConnectionState(StrEnum):
    LOADING = "loading"
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"


@dataclass
class BotStatus:
    """Current connection state plus the pending pairing payload, if any."""

    state: ConnectionState = ConnectionState.LOADING
    pairing_payload: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.READY

    def to_dict(self) -> dict[str, Any]:
        return {
            "isConnected": self.is_connected,
            "sessionStatus": self.state.value,
            "qrCode": self.pairing_payload,
        }
