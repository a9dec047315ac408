"""Update providers: long polling and webhook ingestion."""

from botapi.providers.base import UpdateProvider, UpdateSink
from botapi.providers.polling import PollingProvider
from botapi.providers.webhook import ALLOWED_PORTS, WebhookProvider

__all__ = [
    "UpdateProvider",
    "UpdateSink",
    "PollingProvider",
    "WebhookProvider",
    "ALLOWED_PORTS",
]
