"""Tests for PollingProvider: lifecycle, offset tracking and the poll loop."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from botapi.exceptions import MissingClient, ProviderAlreadyStarted, ProviderNotStarted
from botapi.providers.polling import PollingProvider


def _stub_client(updates=None) -> MagicMock:
    """A client double: ``call`` answers ``getUpdates`` with *updates*."""
    client = MagicMock()
    client.token = "123"
    client.process_update = MagicMock()

    async def fake_call(method, params=None, *, timeout=None):
        if method == "getUpdates":
            return updates if updates is not None else []
        return True

    client.call = AsyncMock(side_effect=fake_call)
    return client


def _get_updates_calls(client: MagicMock) -> list:
    return [c for c in client.call.await_args_list if c.args[0] == "getUpdates"]


# ── Lifecycle ────────────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_removes_webhook_and_schedules_first_cycle(self) -> None:
        provider = PollingProvider()
        client = _stub_client()
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider.start(client)

        assert provider.is_started
        client.call.assert_awaited_once_with("deleteWebhook")
        mock_schedule.assert_called_once_with(PollingProvider.START_DELAY)

    @pytest.mark.asyncio
    async def test_start_twice_raises(self) -> None:
        provider = PollingProvider()
        with patch.object(provider, "_schedule"):
            await provider.start(_stub_client())
            with pytest.raises(ProviderAlreadyStarted, match="already started"):
                await provider.start(_stub_client())

    @pytest.mark.asyncio
    async def test_start_without_client_raises(self) -> None:
        provider = PollingProvider()
        with pytest.raises(MissingClient):
            await provider.start(None)
        assert not provider.is_started

    @pytest.mark.asyncio
    async def test_stop_when_not_started_raises(self) -> None:
        with pytest.raises(ProviderNotStarted, match="not started"):
            await PollingProvider().stop()

    @pytest.mark.asyncio
    async def test_delete_webhook_failure_is_not_fatal(self) -> None:
        provider = PollingProvider()
        client = _stub_client()
        client.call = AsyncMock(side_effect=RuntimeError("offline"))
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider.start(client)
        assert provider.is_started
        mock_schedule.assert_called_once_with(PollingProvider.START_DELAY)

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_cycle(self) -> None:
        provider = PollingProvider()
        client = _stub_client()
        await provider.start(client)
        assert provider._timer is not None

        await provider.stop()
        assert provider._timer is None
        assert not provider.is_started

        await asyncio.sleep(PollingProvider.START_DELAY + 0.05)
        assert _get_updates_calls(client) == []

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_cycle(self) -> None:
        provider = PollingProvider()
        provider.START_DELAY = 0.0
        client = _stub_client()
        requested = asyncio.Event()

        async def fake_call(method, params=None, *, timeout=None):
            if method == "getUpdates":
                requested.set()
                await asyncio.Event().wait()
            return True

        client.call = AsyncMock(side_effect=fake_call)
        await provider.start(client)
        await asyncio.wait_for(requested.wait(), timeout=1)
        in_flight = provider._poll_task

        await provider.stop()

        with pytest.raises(asyncio.CancelledError):
            await in_flight
        assert provider._poll_task is None
        client.process_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self) -> None:
        provider = PollingProvider()
        client = _stub_client()
        with patch.object(provider, "_schedule"):
            await provider.start(client)
            await provider.stop()
            await provider.start(client)
        assert provider.is_started


# ── Parameters ───────────────────────────────────────────────────────────────


class TestParameters:
    def test_defaults(self) -> None:
        provider = PollingProvider()
        assert provider._build_params() == {
            "offset": 0,
            "limit": None,
            "timeout": 60,
            "allowed_updates": None,
        }
        assert provider.request_timeout == 61.0

    def test_custom_values(self) -> None:
        provider = PollingProvider(limit=10, timeout=5, allowed_updates=["message"])
        assert provider._build_params() == {
            "offset": 0,
            "limit": 10,
            "timeout": 5,
            "allowed_updates": ["message"],
        }
        assert provider.request_timeout == 6.0

    def test_short_polling(self) -> None:
        provider = PollingProvider(timeout=0)
        assert provider._build_params()["timeout"] is None
        assert provider.request_timeout == 1.0


# ── Poll cycle ───────────────────────────────────────────────────────────────


class TestPollCycle:
    """One ``_get_updates`` run at a time, with scheduling intercepted."""

    @staticmethod
    async def _started(client: MagicMock, **kwargs) -> PollingProvider:
        provider = PollingProvider(**kwargs)
        with patch.object(provider, "_schedule"):
            await provider.start(client)
        return provider

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        client = _stub_client([])
        provider = await self._started(client)
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()

        client.call.assert_awaited_with(
            "getUpdates",
            {"offset": 0, "limit": None, "timeout": 60, "allowed_updates": None},
            timeout=61.0,
        )
        assert provider.offset == 0
        client.process_update.assert_not_called()
        mock_schedule.assert_called_once_with(PollingProvider.POLL_INTERVAL)

    @pytest.mark.asyncio
    async def test_updates_dispatched_in_order(self) -> None:
        batch = [{"update_id": 5, "message": {"text": "a"}}, {"update_id": 6, "message": {"text": "b"}}]
        client = _stub_client(batch)
        provider = await self._started(client)
        with patch.object(provider, "_schedule"):
            await provider._get_updates()

        assert [c.args[0] for c in client.process_update.call_args_list] == batch
        assert provider.offset == 7

    @pytest.mark.asyncio
    async def test_offset_only_moves_forward(self) -> None:
        client = _stub_client([{"update_id": 10}, {"update_id": 4}, {"update_id": 12}, {"update_id": 11}])
        provider = await self._started(client)
        with patch.object(provider, "_schedule"):
            await provider._get_updates()
        assert provider.offset == 13

        client.call = AsyncMock(return_value=[{"update_id": 2}])
        with patch.object(provider, "_schedule"):
            await provider._get_updates()
        assert provider.offset == 13
        assert client.call.await_args.args[1]["offset"] == 13

    @pytest.mark.asyncio
    async def test_next_request_uses_advanced_offset(self) -> None:
        client = _stub_client([{"update_id": 100}])
        provider = await self._started(client, limit=50)
        with patch.object(provider, "_schedule"):
            await provider._get_updates()
            await provider._get_updates()
        params = [c.args[1] for c in _get_updates_calls(client)]
        assert [p["offset"] for p in params] == [0, 101]
        assert params[0]["limit"] == 50

    @pytest.mark.asyncio
    async def test_call_error_retries_after_error_delay(self) -> None:
        client = _stub_client()
        provider = await self._started(client)
        client.call = AsyncMock(side_effect=RuntimeError("network down"))
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()
        mock_schedule.assert_called_once_with(PollingProvider.ERROR_DELAY)
        assert provider.is_started

    @pytest.mark.asyncio
    async def test_non_list_result_retries_after_error_delay(self) -> None:
        client = _stub_client()
        provider = await self._started(client)
        client.call = AsyncMock(return_value={"not": "a list"})
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()
        mock_schedule.assert_called_once_with(PollingProvider.ERROR_DELAY)
        client.process_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_listener_error_does_not_stop_batch(self) -> None:
        client = _stub_client([{"update_id": 1}, {"update_id": 2}])
        client.process_update = MagicMock(side_effect=[RuntimeError("boom"), None])
        provider = await self._started(client)
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()
        assert client.process_update.call_count == 2
        assert provider.offset == 3
        mock_schedule.assert_called_once_with(PollingProvider.POLL_INTERVAL)

    @pytest.mark.asyncio
    async def test_item_without_id_forwarded_without_moving_offset(self) -> None:
        client = _stub_client(["junk", {"no_id": True}, {"update_id": 3}, {"update_id": "x"}])
        provider = await self._started(client)
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()
        assert [c.args[0] for c in client.process_update.call_args_list] == [
            "junk",
            {"no_id": True},
            {"update_id": 3},
            {"update_id": "x"},
        ]
        assert provider.offset == 4
        mock_schedule.assert_called_once_with(PollingProvider.POLL_INTERVAL)

    @pytest.mark.asyncio
    async def test_not_attached_is_noop(self) -> None:
        provider = PollingProvider()
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider._get_updates()
        mock_schedule.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_dropped_when_stopped_in_flight(self) -> None:
        provider = PollingProvider()
        client = _stub_client()

        async def fake_call(method, params=None, *, timeout=None):
            if method == "getUpdates":
                await provider.stop()
                return [{"update_id": 1}]
            return True

        client.call = AsyncMock(side_effect=fake_call)
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider.start(client)
            mock_schedule.reset_mock()
            await provider._get_updates()

        client.process_update.assert_not_called()
        assert provider.offset == 0
        mock_schedule.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_cycle_ignored_after_restart(self) -> None:
        provider = PollingProvider()
        client = _stub_client()
        gate = asyncio.Event()

        async def fake_call(method, params=None, *, timeout=None):
            if method == "getUpdates":
                await gate.wait()
                return [{"update_id": 9}]
            return True

        client.call = AsyncMock(side_effect=fake_call)
        with patch.object(provider, "_schedule") as mock_schedule:
            await provider.start(client)
            in_flight = asyncio.get_running_loop().create_task(provider._get_updates())
            await asyncio.sleep(0)

            await provider.stop()
            await provider.start(client)
            gate.set()
            await in_flight

        client.process_update.assert_not_called()
        assert provider.offset == 0
        assert [c.args[0] for c in mock_schedule.call_args_list] == [
            PollingProvider.START_DELAY,
            PollingProvider.START_DELAY,
        ]


# ── Timer-driven loop ────────────────────────────────────────────────────────


class TestPollLoop:
    @pytest.mark.asyncio
    async def test_loop_delivers_and_keeps_polling(self) -> None:
        provider = PollingProvider(timeout=0)
        provider.START_DELAY = 0.0
        provider.POLL_INTERVAL = 0.01

        batches = [[{"update_id": 1, "message": {"text": "hi"}}]]
        client = _stub_client()

        async def fake_call(method, params=None, *, timeout=None):
            if method == "getUpdates":
                return batches.pop(0) if batches else []
            return True

        client.call = AsyncMock(side_effect=fake_call)
        await provider.start(client)
        try:
            for _ in range(100):
                if len(_get_updates_calls(client)) >= 3:
                    break
                await asyncio.sleep(0.01)
        finally:
            await provider.stop()
            if provider._poll_task is not None:
                await provider._poll_task

        client.process_update.assert_called_once_with({"update_id": 1, "message": {"text": "hi"}})
        offsets = [c.args[1]["offset"] for c in _get_updates_calls(client)]
        assert offsets[0] == 0
        assert all(offset == 2 for offset in offsets[1:])
