"""BotClient -- facade over the transport, the method table and the update providers.

Every remote method in :data:`~botapi.methods.REMOTE_METHODS` is attached to
:class:`BotClient` as a coroutine method (``await bot.send_message(...)``).
Inbound updates arrive through an attached provider and are re-emitted as
events::

    bot = BotClient(token="123:abc")
    bot.set_message_provider(PollingProvider())

    @bot.on("message")
    async def echo(message: dict) -> None:
        await bot.send_message(chat_id=message["chat"]["id"], text=message.get("text", ""))

    await bot.start()
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from botapi.exceptions import ConfigurationError, ProviderLifecycleError
from botapi.methods import METHOD_ATTRIBUTES
from botapi.models import ClientConfig, ProxySettings
from botapi.providers.polling import PollingProvider
from botapi.providers.webhook import WebhookProvider
from botapi.transport import Transport
from botapi.core.events import EventEmitter
from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("client")

# ── Event names ──────────────────────────────────────────────────────────────

EVENT_UPDATE = "update"
EVENT_CALLBACK_QUERY = "inline.callback.query"
EVENT_EDITED_MESSAGE = "edited.message"
EVENT_INLINE_QUERY = "inline.query"
EVENT_INLINE_RESULT = "inline.result"
EVENT_MESSAGE = "message"

# Checked in this order; only the first populated field raises its event.
UPDATE_EVENTS: tuple[tuple[str, str], ...] = (
    ("callback_query", EVENT_CALLBACK_QUERY),
    ("edited_message", EVENT_EDITED_MESSAGE),
    ("inline_query", EVENT_INLINE_QUERY),
    ("chosen_inline_result", EVENT_INLINE_RESULT),
    ("message", EVENT_MESSAGE),
)

MessageProvider = Union[PollingProvider, WebhookProvider]


class BotClient(EventEmitter):
    """Client for one bot token.

    Args:
        token: Bot token issued by the remote service.  Mandatory.
        base_url: API root, e.g. a self-hosted Bot API server.
        http_proxy: Proxy settings, as :class:`~botapi.models.ProxySettings`
            or a mapping with ``host``, ``port`` and optional ``user``,
            ``password`` and ``https`` keys.
        timeout: Default per-call timeout in seconds.
        config: A ready :class:`~botapi.models.ClientConfig`; overrides the
            other arguments.

    Raises:
        ConfigurationError: The token is missing or a setting is invalid.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        http_proxy: Optional[Union[ProxySettings, Mapping[str, Any]]] = None,
        timeout: Optional[float] = None,
        *,
        config: Optional[ClientConfig] = None,
    ) -> None:
        super().__init__()
        self._config = config if config is not None else self._build_config(token, base_url, http_proxy, timeout)
        self._transport = Transport(self._config)
        self._message_provider: Optional[MessageProvider] = None
        logger.debug("Client created", extra={"base_url": self._config.base_url, "proxy": self._config.http_proxy is not None})

    @staticmethod
    def _build_config(
        token: Optional[str],
        base_url: Optional[str],
        http_proxy: Optional[Union[ProxySettings, Mapping[str, Any]]],
        timeout: Optional[float],
    ) -> ClientConfig:
        if not token:
            raise ConfigurationError("token is mandatory")
        values: Dict[str, Any] = {"token": token}
        if base_url:
            values["base_url"] = base_url
        if http_proxy is not None:
            values["http_proxy"] = http_proxy
        if timeout is not None:
            values["timeout"] = timeout
        try:
            return ClientConfig.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid client configuration: {exc}") from exc

    # ── Configuration ────────────────────────────────────────────────────

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def token(self) -> str:
        return self._config.token

    @property
    def request_base_url(self) -> str:
        """``{base_url}/bot{token}/``."""
        return self._transport.request_base_url

    @property
    def message_provider(self) -> Optional[MessageProvider]:
        return self._message_provider

    # ── Outbound calls ───────────────────────────────────────────────────

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        """Invoke any remote *method*, listed in the method table or not."""
        return await self._transport.call(method, params, timeout=timeout)

    async def close_session(self) -> None:
        """Release the HTTP connection pool."""
        self._transport.close()

    # ── Provider lifecycle ───────────────────────────────────────────────

    def set_message_provider(self, provider: MessageProvider) -> None:
        """Attach the update source used by :meth:`start`.

        Raises:
            ConfigurationError: *provider* is not a supported provider.
        """
        if not isinstance(provider, (PollingProvider, WebhookProvider)):
            raise ConfigurationError("Message provider is incorrect")
        self._message_provider = provider

    async def start(self) -> None:
        """Start receiving updates through the attached provider."""
        if self._message_provider is None:
            raise ProviderLifecycleError("Message provider is not set")
        await self._message_provider.start(self)

    async def stop(self) -> None:
        """Stop receiving updates."""
        if self._message_provider is None:
            raise ProviderLifecycleError("Message provider is not set")
        await self._message_provider.stop()

    # ── Inbound dispatch ─────────────────────────────────────────────────

    def process_update(self, update: Mapping[str, Any]) -> None:
        """Emit ``update`` and at most one specialised event for *update*.

        Precedence: callback query, edited message, inline query, chosen
        inline result, message.
        """
        self.emit(EVENT_UPDATE, update)
        if not isinstance(update, Mapping):
            logger.warning("Update is not an object", extra={"update_type": type(update).__name__})
            return

        present = [(field, event) for field, event in UPDATE_EVENTS if update.get(field)]
        if not present:
            return
        if len(present) > 1:
            logger.warning(
                "Update carries more than one payload field",
                extra={"update_id": update.get("update_id"), "fields": [field for field, _ in present]},
            )
        field, event = present[0]
        self.emit(event, update[field])


def _remote_method(name: str, attribute: str) -> Callable[..., Any]:
    """Build the coroutine method that forwards to remote *name*."""

    async def method(self: BotClient, params: Optional[Mapping[str, Any]] = None, /, **kwargs: Any) -> Any:
        merged: Dict[str, Any] = dict(params or {})
        merged.update(kwargs)
        return await self.call(name, merged)

    method.__name__ = attribute
    method.__qualname__ = f"BotClient.{attribute}"
    method.__doc__ = f"Call the remote ``{name}`` method and return its result."
    return method


for _attribute, _name in METHOD_ATTRIBUTES.items():
    if hasattr(BotClient, _attribute):
        raise RuntimeError(f"Remote method {_name!r} clashes with BotClient.{_attribute}")
    setattr(BotClient, _attribute, _remote_method(_name, _attribute))
