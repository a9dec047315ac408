"""Echo bot entry point.

Replies to every text message, answers inline-keyboard presses, and logs every
update.  Delivery mode (long polling or webhook) comes from ``UPDATE_MODE``;
see :mod:`config` for the full list of settings.
"""

import asyncio

import config
from botapi import BotClient, BotApiError, PollingProvider, WebhookProvider
from botapi.client import EVENT_CALLBACK_QUERY, EVENT_MESSAGE, EVENT_UPDATE
from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("echo")


def build_client() -> BotClient:
    """Create a client from ``BOT_TOKEN``, ``BOT_API_BASE_URL`` and ``BOT_PROXY_*``."""
    return BotClient(token=config.BOT_TOKEN, base_url=config.BASE_URL, http_proxy=config.HTTP_PROXY)


def build_provider() -> PollingProvider | WebhookProvider:
    """Create the provider selected by ``UPDATE_MODE``."""
    if config.UPDATE_MODE == "webhook":
        return WebhookProvider(
            host=config.WEBHOOK_HOST,
            port=config.WEBHOOK_PORT,
            url=config.WEBHOOK_URL,
            allowed_updates=config.ALLOWED_UPDATES,
            private_key=config.WEBHOOK_PRIVATE_KEY,
            public_key=config.WEBHOOK_PUBLIC_KEY,
        )
    return PollingProvider(
        limit=config.POLL_LIMIT,
        timeout=config.POLL_TIMEOUT,
        allowed_updates=config.ALLOWED_UPDATES,
    )


def register_handlers(bot: BotClient) -> None:
    """Wire the echo behaviour onto *bot*."""

    @bot.on(EVENT_UPDATE)
    def log_update(update: dict) -> None:
        logger.debug("Update received", extra={"update_id": update.get("update_id") if isinstance(update, dict) else None})

    @bot.on(EVENT_MESSAGE)
    async def echo(message: dict) -> None:
        chat_id = message["chat"]["id"]
        text = message.get("text") or "This message doesn't contain text :("
        try:
            await bot.send_message(chat_id=chat_id, text=text)
        except BotApiError as exc:
            logger.error("sendMessage failed", extra={"chat_id": chat_id, "error": str(exc)})

    @bot.on(EVENT_CALLBACK_QUERY)
    async def acknowledge(query: dict) -> None:
        try:
            await bot.answer_callback_query(callback_query_id=query["id"], text=query.get("data"))
        except BotApiError as exc:
            logger.error("answerCallbackQuery failed", extra={"error": str(exc)})


async def run() -> None:
    """Start the bot and keep it running until cancelled.

    Raises:
        EnvironmentError: If ``BOT_TOKEN`` is not set.
    """
    if not config.BOT_TOKEN:
        raise EnvironmentError("BOT_TOKEN environment variable is not set or is empty.")

    bot = build_client()
    register_handlers(bot)
    bot.set_message_provider(build_provider())

    me = await bot.get_me()
    logger.info("Bot authorised", extra={"username": me.get("username") if isinstance(me, dict) else None})

    await bot.start()
    logger.info("Echo bot is running", extra={"update_mode": config.UPDATE_MODE})
    try:
        await asyncio.Event().wait()
    finally:
        # A long poll already on the wire holds exit for up to POLL_TIMEOUT + 1 s.
        await bot.stop()
        await bot.close_session()


if __name__ == "__main__":
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Echo bot stopped")
