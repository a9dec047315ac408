"""Long-polling update provider.

Repeatedly calls ``getUpdates`` and forwards every received update to the
attached client.  Cycles are strictly sequential: the next cycle is scheduled
only once the previous call has finished, so at most one ``getUpdates``
request is ever in flight per provider.  The loop never gives up on errors;
it logs them and tries again after :attr:`PollingProvider.ERROR_DELAY`.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from pydantic import ValidationError

from botapi.exceptions import MissingClient, ProviderAlreadyStarted, ProviderNotStarted
from botapi.models import Update
from botapi.providers.base import UpdateSink
from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("provider.polling")


class PollingProvider:
    """Pull updates with ``getUpdates`` and track the offset cursor.

    Args:
        limit: Maximum number of updates per ``getUpdates`` call (1-100).
            ``None`` leaves it to the remote default.
        timeout: Server-side long-poll timeout in seconds.  ``0`` means
            short polling.
        allowed_updates: Update types to receive, e.g. ``["message"]``.
    """

    START_DELAY: float = 0.1
    POLL_INTERVAL: float = 0.1
    ERROR_DELAY: float = 1.0

    def __init__(
        self,
        limit: Optional[int] = None,
        timeout: Optional[int] = 60,
        allowed_updates: Optional[List[str]] = None,
    ) -> None:
        self._client: Optional[UpdateSink] = None
        self._offset: int = 0
        self._limit: Optional[int] = int(limit) if limit else None
        self._timeout: Optional[int] = int(timeout) if timeout else None
        self._allowed_updates: Optional[List[str]] = list(allowed_updates) if allowed_updates else None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._run: int = 0

    # ── State ────────────────────────────────────────────────────────────

    @property
    def is_started(self) -> bool:
        return self._client is not None

    @property
    def offset(self) -> int:
        """Smallest update id not yet acknowledged."""
        return self._offset

    @property
    def request_timeout(self) -> float:
        """Transport timeout for ``getUpdates``; always outlives the server-side wait."""
        return 1.0 + (self._timeout or 0)

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, client: Optional[UpdateSink]) -> None:
        """Attach to *client*, drop any registered webhook, and begin polling.

        Raises:
            ProviderAlreadyStarted: The provider is already attached.
            MissingClient: *client* is ``None``.
        """
        if self._client is not None:
            raise ProviderAlreadyStarted()
        if client is None:
            raise MissingClient()

        self._client = client
        self._run += 1
        run = self._run

        # A webhook left over from an earlier run makes getUpdates fail.
        try:
            result = await client.call("deleteWebhook")
            logger.debug("Removed webhook", extra={"result": result})
        except Exception as exc:
            logger.warning("Failed to remove webhook", extra={"error": repr(exc)})

        if self._attached(run):
            self._schedule(self.START_DELAY)
            logger.info("Polling provider started", extra={"offset": self._offset})

    async def stop(self) -> None:
        """Cancel the pending or in-flight cycle and detach from the client.

        The HTTP request of an in-flight ``getUpdates`` runs in a worker
        thread that cannot be interrupted; it finishes on its own within
        :attr:`request_timeout`.  :func:`asyncio.run` waits for that thread
        when it shuts the loop down, so a process exiting right after
        ``stop()`` can take up to ``timeout + 1`` seconds.  Use a smaller
        ``timeout`` where fast shutdown matters.

        Raises:
            ProviderNotStarted: The provider is not attached.
        """
        if self._client is None:
            raise ProviderNotStarted()

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._client = None
        logger.info("Polling provider stopped", extra={"offset": self._offset})

    # ── Poll loop ────────────────────────────────────────────────────────

    def _attached(self, run: int) -> bool:
        """True while the attachment that started cycle *run* is still current."""
        return self._client is not None and self._run == run

    def _schedule(self, delay: float) -> None:
        """Arm the single timer that starts the next cycle."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._poll_task = asyncio.get_running_loop().create_task(self._get_updates())

    def _build_params(self) -> dict[str, Any]:
        return {
            "offset": self._offset,
            "limit": self._limit,
            "timeout": self._timeout,
            "allowed_updates": self._allowed_updates,
        }

    async def _get_updates(self) -> None:
        """Run one poll cycle and schedule exactly one follow-up cycle."""
        client = self._client
        if client is None:
            logger.debug("No client attached, skipping poll cycle")
            return
        run = self._run

        try:
            result = await client.call(
                "getUpdates", self._build_params(), timeout=self.request_timeout
            )
        except Exception as exc:
            if not self._attached(run):
                return
            logger.warning(
                "Failed to get updates",
                extra={"api_method": "getUpdates", "offset": self._offset, "error": repr(exc)},
            )
            self._schedule(self.ERROR_DELAY)
            return

        # stop() may have run while the request was in flight.
        if not self._attached(run):
            logger.debug("Provider detached during poll, dropping result")
            return

        if not isinstance(result, list):
            logger.warning(
                "Result of getUpdates is not a list",
                extra={"api_method": "getUpdates", "result_type": type(result).__name__},
            )
            self._schedule(self.ERROR_DELAY)
            return

        if result:
            logger.debug("Received updates", extra={"count": len(result), "offset": self._offset})

        for item in result:
            if not self._attached(run):
                return
            self._accept(client, item)

        if self._attached(run):
            self._schedule(self.POLL_INTERVAL)

    def _accept(self, client: UpdateSink, item: Any) -> None:
        """Advance the offset past *item*, then hand it to the client as received.

        An item without an integer ``update_id`` is still forwarded; it just
        cannot move the offset.
        """
        update_id: Optional[int] = None
        try:
            update_id = Update.model_validate(item).update_id
        except ValidationError as exc:
            logger.warning("Update has no usable update_id, offset unchanged", extra={"error": str(exc)})
        else:
            self._offset = max(self._offset, update_id + 1)

        try:
            client.process_update(item)
        except Exception:
            logger.exception("Update dispatch failed", extra={"update_id": update_id})
