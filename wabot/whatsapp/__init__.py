"""WhatsApp transport layer."""

from wabot.whatsapp.client import WhatsAppBridgeClient
from wabot.whatsapp.transport import InboundMessage, WhatsAppTransport

__all__ = [
    "InboundMessage",
    "WhatsAppBridgeClient",
    "WhatsAppTransport",
]
