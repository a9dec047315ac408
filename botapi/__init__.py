"""Async client for the Telegram Bot API with long-poll and webhook update delivery.

Usage::

    from botapi import BotClient, PollingProvider, RemoteAPIError

    bot = BotClient(token="123:abc")
    me = await bot.get_me()
"""

from botapi.client import BotClient
from botapi.exceptions import (
    BotApiError,
    ConfigurationError,
    MissingClient,
    ProviderAlreadyStarted,
    ProviderLifecycleError,
    ProviderNotStarted,
    RemoteAPIError,
    ResponseParseError,
    TransportError,
    WebhookSetFailed,
)
from botapi.models import ClientConfig, ProxySettings, Update
from botapi.providers import PollingProvider, WebhookProvider

__all__ = [
    # Client
    "BotClient",
    "ClientConfig",
    "ProxySettings",
    "Update",
    # Providers
    "PollingProvider",
    "WebhookProvider",
    # Errors
    "BotApiError",
    "ConfigurationError",
    "TransportError",
    "ResponseParseError",
    "RemoteAPIError",
    "ProviderLifecycleError",
    "ProviderAlreadyStarted",
    "ProviderNotStarted",
    "MissingClient",
    "WebhookSetFailed",
]
