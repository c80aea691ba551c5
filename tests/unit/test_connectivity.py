"""Tests for connectivity mapping, providers, and ConnectivityObserver."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from offline_sync.network.connectivity import (
    ConnectivityObserver,
    ConnectivityProvider,
    ConnectivityResult,
    ConnectivityStatus,
    ManualConnectivityProvider,
    SocketProbeProvider,
    Subscription,
    map_results,
)

R = ConnectivityResult


# ---------------------------------------------------------------------------
# map_results
# ---------------------------------------------------------------------------


class TestMapResults:
    def test_empty_is_unknown(self) -> None:
        assert map_results([]) == ConnectivityStatus.UNKNOWN

    def test_lone_none_is_offline(self) -> None:
        assert map_results([R.NONE]) == ConnectivityStatus.OFFLINE

    @pytest.mark.parametrize(
        "results",
        [
            [R.WIFI],
            [R.CELLULAR],
            [R.ETHERNET],
            [R.BLUETOOTH],
            [R.VPN],
            [R.OTHER],
            [R.WIFI, R.CELLULAR],
        ],
    )
    def test_any_technology_is_online(self, results: list[ConnectivityResult]) -> None:
        assert map_results(results) == ConnectivityStatus.ONLINE

    def test_real_link_wins_over_none(self) -> None:
        assert map_results([R.NONE, R.WIFI]) == ConnectivityStatus.ONLINE

    def test_duplicate_none_entries_are_online(self) -> None:
        # Only a single lone NONE entry counts as offline.
        assert map_results([R.NONE, R.NONE]) == ConnectivityStatus.ONLINE

    def test_tags_are_string_enums(self) -> None:
        assert R("wifi") is R.WIFI
        assert ConnectivityStatus.ONLINE.value == "online"


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class TestSubscription:
    def test_cancel_runs_callback_once(self) -> None:
        calls: list[int] = []
        sub = Subscription(lambda: calls.append(1))
        sub.cancel()
        sub.cancel()
        assert calls == [1]
        assert sub.cancelled


# ---------------------------------------------------------------------------
# ManualConnectivityProvider
# ---------------------------------------------------------------------------


class TestManualProvider:
    @pytest.mark.asyncio
    async def test_initial_results_default_empty(self) -> None:
        provider = ManualConnectivityProvider()
        assert await provider.check_connectivity() == []

    @pytest.mark.asyncio
    async def test_emit_updates_current_and_notifies_in_order(self) -> None:
        provider = ManualConnectivityProvider([R.NONE])
        seen: list[list[ConnectivityResult]] = []
        provider.subscribe(seen.append)

        provider.go_online()
        provider.go_offline()
        provider.emit([R.CELLULAR, R.VPN])

        assert seen == [[R.WIFI], [R.NONE], [R.CELLULAR, R.VPN]]
        assert await provider.check_connectivity() == [R.CELLULAR, R.VPN]

    def test_cancelled_subscription_stops_delivery(self) -> None:
        provider = ManualConnectivityProvider()
        seen: list[list[ConnectivityResult]] = []
        sub = provider.subscribe(seen.append)
        assert provider.listener_count == 1
        sub.cancel()
        provider.go_online()
        assert seen == []
        assert provider.listener_count == 0


# ---------------------------------------------------------------------------
# SocketProbeProvider
# ---------------------------------------------------------------------------


class TestSocketProbeProvider:
    @pytest.mark.asyncio
    async def test_successful_connection_reports_other(self) -> None:
        writer = MagicMock()
        writer.wait_closed = AsyncMock()
        with patch(
            "offline_sync.network.connectivity.asyncio.open_connection",
            AsyncMock(return_value=(MagicMock(), writer)),
        ):
            provider = SocketProbeProvider(host="example.invalid", port=443)
            assert await provider.check_connectivity() == [R.OTHER]
        writer.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_os_error_reports_none(self) -> None:
        with patch(
            "offline_sync.network.connectivity.asyncio.open_connection",
            AsyncMock(side_effect=OSError("unreachable")),
        ):
            provider = SocketProbeProvider()
            assert await provider.check_connectivity() == [R.NONE]

    @pytest.mark.asyncio
    async def test_timeout_reports_none(self) -> None:
        async def _hang(*args: object, **kwargs: object) -> None:
            await asyncio.sleep(10)

        with patch("offline_sync.network.connectivity.asyncio.open_connection", _hang):
            provider = SocketProbeProvider(timeout_seconds=0.01)
            assert await provider.check_connectivity() == [R.NONE]

    @pytest.mark.asyncio
    async def test_polling_emits_changes_only(self) -> None:
        provider = SocketProbeProvider(interval_seconds=0.01)
        sequence = [[R.NONE], [R.NONE], [R.OTHER], [R.OTHER]]
        provider._probe = AsyncMock(side_effect=sequence + [[R.OTHER]] * 100)  # type: ignore[method-assign]

        seen: list[list[ConnectivityResult]] = []
        sub = provider.subscribe(seen.append)
        for _ in range(100):
            if len(seen) >= 2:
                break
            await asyncio.sleep(0.01)
        sub.cancel()

        assert seen[:2] == [[R.NONE], [R.OTHER]]

    @pytest.mark.asyncio
    async def test_last_cancel_stops_polling(self) -> None:
        provider = SocketProbeProvider(interval_seconds=0.01)
        provider._probe = AsyncMock(return_value=[R.OTHER])  # type: ignore[method-assign]
        sub = provider.subscribe(lambda results: None)
        task = provider._poll_task
        assert task is not None
        sub.cancel()
        await asyncio.sleep(0)
        assert task.cancelled() or task.done()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_polling(self) -> None:
        provider = SocketProbeProvider(interval_seconds=0.01)
        provider._probe = AsyncMock(  # type: ignore[method-assign]
            side_effect=[[R.NONE], [R.OTHER], [R.NONE]] + [[R.NONE]] * 100
        )
        seen: list[list[ConnectivityResult]] = []

        def _flaky_listener(results: list[ConnectivityResult]) -> None:
            seen.append(results)
            if len(seen) == 1:
                raise OSError("disk full")

        sub = provider.subscribe(_flaky_listener)
        for _ in range(100):
            if len(seen) >= 3:
                break
            await asyncio.sleep(0.01)
        task = provider._poll_task
        assert task is not None
        assert not task.done()
        sub.cancel()

        assert seen[:3] == [[R.NONE], [R.OTHER], [R.NONE]]

    @pytest.mark.asyncio
    async def test_connect_error_does_not_stop_polling(self) -> None:
        provider = SocketProbeProvider(interval_seconds=0.01)
        provider._probe = AsyncMock(  # type: ignore[method-assign]
            side_effect=[RuntimeError("resolver bug"), [R.OTHER]] + [[R.OTHER]] * 100
        )
        seen: list[list[ConnectivityResult]] = []
        sub = provider.subscribe(seen.append)
        for _ in range(100):
            if seen:
                break
            await asyncio.sleep(0.01)
        sub.cancel()

        assert seen[:1] == [[R.OTHER]]

    @pytest.mark.asyncio
    async def test_initial_check_seeds_polling_baseline(self) -> None:
        provider = SocketProbeProvider(interval_seconds=0.01)
        provider._probe = AsyncMock(return_value=[R.OTHER])  # type: ignore[method-assign]

        assert await provider.check_connectivity() == [R.OTHER]
        seen: list[list[ConnectivityResult]] = []
        sub = provider.subscribe(seen.append)
        await asyncio.sleep(0.1)
        sub.cancel()

        assert provider._probe.await_count > 1
        assert seen == []


# ---------------------------------------------------------------------------
# ConnectivityObserver
# ---------------------------------------------------------------------------


class TestConnectivityObserver:
    @pytest.mark.asyncio
    async def test_check_now_and_status(self) -> None:
        observer = ConnectivityObserver(ManualConnectivityProvider([R.NONE]))
        assert await observer.check_now() == [R.NONE]
        assert await observer.check_status() == ConnectivityStatus.OFFLINE

    def test_subscribe_forwards_to_provider(self) -> None:
        provider = ManualConnectivityProvider()
        observer = ConnectivityObserver(provider)
        seen: list[ConnectivityStatus] = []
        sub = observer.subscribe(lambda results: seen.append(observer.to_status(results)))
        provider.go_online(R.ETHERNET)
        provider.emit([])
        sub.cancel()
        assert seen == [ConnectivityStatus.ONLINE, ConnectivityStatus.UNKNOWN]

    @pytest.mark.asyncio
    async def test_platform_errors_propagate(self) -> None:
        provider = ConnectivityProvider()
        provider.check_connectivity = AsyncMock(side_effect=RuntimeError("no platform"))  # type: ignore[method-assign]
        observer = ConnectivityObserver(provider)
        with pytest.raises(RuntimeError, match="no platform"):
            await observer.check_now()

    def test_base_provider_is_abstract(self) -> None:
        with pytest.raises(NotImplementedError):
            ConnectivityProvider().subscribe(lambda results: None)
