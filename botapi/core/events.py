"""Synchronous publish/subscribe registry used by the client facade.

Maps an event name to an ordered list of listeners.  ``emit`` invokes them in
registration order on the caller's stack and ignores return values, so
publishers never wait on application code.  Coroutine listeners are scheduled
on the running event loop instead of being awaited.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
from typing import Any, Callable, Optional

from botapi.core.logger import BotApiLogger

logger = BotApiLogger.get_logger("events")

Listener = Callable[..., Any]


@dataclasses.dataclass(slots=True, eq=False)
class _Subscription:
    listener: Listener
    once: bool = False


class EventEmitter:
    """Event-name → listeners registry.

    Usage::

        emitter = EventEmitter()

        @emitter.on("message")
        def echo(message: dict) -> None:
            ...

        emitter.emit("message", {"text": "hi"})
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._pending: set[asyncio.Future] = set()

    # ── Registration ─────────────────────────────────────────────────────

    def on(self, event: str, listener: Optional[Listener] = None) -> Any:
        """Register *listener* for *event*.

        Without *listener* this returns a decorator, so both
        ``emitter.on("update", fn)`` and ``@emitter.on("update")`` work.
        """
        if listener is None:
            def decorator(fn: Listener) -> Listener:
                self._add(event, fn, once=False)
                return fn
            return decorator
        self._add(event, listener, once=False)
        return self

    def once(self, event: str, listener: Listener) -> "EventEmitter":
        """Register *listener* to run on the next *event* only."""
        self._add(event, listener, once=True)
        return self

    def off(self, event: str, listener: Optional[Listener] = None) -> "EventEmitter":
        """Remove *listener* from *event*, or every listener when omitted."""
        if listener is None:
            self._subscriptions.pop(event, None)
            return self
        subs = self._subscriptions.get(event, [])
        for index, sub in enumerate(subs):
            if sub.listener == listener:
                del subs[index]
                break
        if not subs:
            self._subscriptions.pop(event, None)
        return self

    def listeners(self, event: str) -> list[Listener]:
        """Return a copy of the listeners registered for *event*."""
        return [sub.listener for sub in self._subscriptions.get(event, [])]

    def _add(self, event: str, listener: Listener, *, once: bool) -> None:
        if not callable(listener):
            raise TypeError(f"Listener for {event!r} must be callable")
        self._subscriptions.setdefault(event, []).append(_Subscription(listener, once))

    def _discard(self, event: str, sub: _Subscription) -> None:
        subs = self._subscriptions.get(event, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscriptions.pop(event, None)

    # ── Emission ─────────────────────────────────────────────────────────

    def emit(self, event: str, *args: Any) -> bool:
        """Invoke every listener of *event* with *args*.

        Returns ``True`` if at least one listener was registered.  A listener
        that raises is logged and the remaining listeners still run.
        """
        subs = list(self._subscriptions.get(event, []))
        if not subs:
            return False

        for sub in subs:
            if sub.once:
                self._discard(event, sub)
            try:
                result = sub.listener(*args)
            except Exception:
                logger.exception("Listener raised", extra={"event": event})
                continue
            if inspect.isawaitable(result):
                try:
                    self._track(event, result)
                except RuntimeError:
                    logger.exception("Async listener needs a running event loop", extra={"event": event})
                    if inspect.iscoroutine(result):
                        result.close()
        return True

    def _track(self, event: str, awaitable: Any) -> None:
        """Keep a reference to a scheduled coroutine listener until it finishes."""
        loop = asyncio.get_running_loop()
        future = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(future)

        def _done(fut: asyncio.Future) -> None:
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.error(
                    "Async listener raised",
                    extra={"event": event, "error": repr(fut.exception())},
                )

        future.add_done_callback(_done)
