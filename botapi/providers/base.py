"""Update provider interface.

A provider produces inbound updates from some external source and hands each
one to the client's ``process_update``.  Providers call back into the client
only through the narrow :class:`UpdateSink` surface, which keeps them testable
with a plain stub.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class UpdateSink(Protocol):
    """What a provider needs from the client it is attached to."""

    @property
    def token(self) -> str: ...  # noqa: E704

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any: ...  # noqa: E704

    def process_update(self, update: Mapping[str, Any]) -> None: ...  # noqa: E704


@runtime_checkable
class UpdateProvider(Protocol):
    """Lifecycle shared by the long-poll and webhook providers."""

    @property
    def is_started(self) -> bool: ...  # noqa: E704

    async def start(self, client: Optional[UpdateSink]) -> None: ...  # noqa: E704

    async def stop(self) -> None: ...  # noqa: E704
