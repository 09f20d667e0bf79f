"""Integration tests for the Monitor service — full flow with mocked I/O."""
from __future__ import annotations

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from position_monitor.config import AppConfig, WalletConfig
from position_monitor.errors import DataIntegrityError
from position_monitor.events import EventType
from position_monitor.models import AlertChannel, AlertStatus
from position_monitor.services import Monitor, PipelineStatus
from position_monitor.services.alerts import CRITICAL_SUBJECT, format_wallet


def mock_notifier(channel: AlertChannel = AlertChannel.TELEGRAM) -> AsyncMock:
    notifier = AsyncMock()
    notifier.channel = channel
    notifier.send_alert.return_value = True
    notifier.send_log.return_value = True
    return notifier


def mock_adapter(*positions) -> MagicMock:
    adapter = MagicMock()
    adapter.protocol_name = "alphalend"
    adapter.get_position = AsyncMock(side_effect=list(positions))
    return adapter


@pytest.fixture()
def notifier() -> AsyncMock:
    return mock_notifier()


@pytest.fixture()
def monitor(sample_app_config: AppConfig, notifier: AsyncMock) -> Monitor:
    return Monitor(sample_app_config, notifiers=[notifier])


class TestCheckAndAlert:
    @pytest.mark.asyncio
    async def test_healthy_position_sends_log_only(
        self, monitor: Monitor, notifier: AsyncMock, sample_position
    ) -> None:
        monitor._adapters["alphalend"] = mock_adapter(sample_position)

        outcomes = await monitor.check_and_alert()

        assert [o.status for o in outcomes] == [PipelineStatus.UPDATED]
        notifier.send_log.assert_called_once()
        log_msg = notifier.send_log.call_args[0][0]
        assert "test-wallet" in log_msg
        assert "alphalend" in log_msg
        assert "SUI" in log_msg
        assert "Healthy" in log_msg
        assert notifier.send_log.call_args.kwargs["silent"] is False
        notifier.send_alert.assert_not_called()

    @pytest.mark.asyncio
    async def test_critical_position_sends_alert(
        self, monitor: Monitor, notifier: AsyncMock, position_factory
    ) -> None:
        monitor._adapters["alphalend"] = mock_adapter(position_factory(1.0, "10000", "8500"))

        await monitor.check_and_alert()

        notifier.send_alert.assert_called_once()
        call = notifier.send_alert.call_args
        assert call.kwargs["subject"] == CRITICAL_SUBJECT
        assert call.kwargs["recipient"] == "777"
        alert_msg = call.args[0]
        assert "test-wallet" in alert_msg
        assert "alphalend" in alert_msg
        assert "CRITICAL" in notifier.send_log.call_args[0][0]

        [alert] = monitor.dispatcher.history
        assert alert.status is AlertStatus.SENT
        assert alert.channel is AlertChannel.TELEGRAM
        assert alert.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_warning_position_sends_alert(
        self, monitor: Monitor, notifier: AsyncMock, position_factory
    ) -> None:
        monitor._adapters["alphalend"] = mock_adapter(position_factory(1.3, "10000", "6538"))

        await monitor.check_and_alert()

        notifier.send_alert.assert_called_once()
        assert "WARNING" in notifier.send_log.call_args[0][0]

    @pytest.mark.asyncio
    async def test_failed_delivery_recorded(
        self, monitor: Monitor, notifier: AsyncMock, position_factory
    ) -> None:
        notifier.send_alert.side_effect = ConnectionError("telegram down")
        monitor._adapters["alphalend"] = mock_adapter(position_factory(1.0))

        await monitor.check_and_alert()

        [alert] = monitor.dispatcher.history
        assert alert.status is AlertStatus.FAILED
        assert alert.sent_at is None

    @pytest.mark.asyncio
    async def test_no_positions_sends_log(self, monitor: Monitor, notifier: AsyncMock) -> None:
        monitor._adapters["alphalend"] = mock_adapter(None)

        outcomes = await monitor.check_and_alert()

        assert outcomes[0].status is PipelineStatus.NO_POSITION
        notifier.send_log.assert_called_once()
        call_msg = notifier.send_log.call_args[0][0]
        assert "No active positions" in call_msg
        assert "test-wallet" in call_msg
        assert "alphalend" in call_msg

    @pytest.mark.asyncio
    async def test_unchanged_position_logged_silently(
        self, monitor: Monitor, notifier: AsyncMock, position_factory
    ) -> None:
        monitor._adapters["alphalend"] = mock_adapter(
            position_factory(1.7, position_id="a"), position_factory(1.7, position_id="b")
        )

        await monitor.check_and_alert()
        outcomes = await monitor.check_and_alert()

        assert outcomes[0].status is PipelineStatus.UNCHANGED
        assert notifier.send_log.call_args.kwargs["silent"] is True

    @pytest.mark.asyncio
    async def test_failing_wallet_does_not_block_others(
        self, sample_app_config: AppConfig, notifier: AsyncMock, sample_position
    ) -> None:
        config = dataclasses.replace(
            sample_app_config,
            wallets=sample_app_config.wallets
            + (
                WalletConfig(
                    label="second-wallet",
                    user_id="user-1",
                    chain="sui",
                    address="0xSECOND",
                    protocols=("alphalend",),
                ),
            ),
        )
        monitor = Monitor(config, notifiers=[notifier])

        async def by_wallet(address):
            if address == "0xWALLET123":
                raise DataIntegrityError("bad snapshot")
            return sample_position.replace(wallet_address=address)

        adapter = MagicMock()
        adapter.protocol_name = "alphalend"
        adapter.get_position = AsyncMock(side_effect=by_wallet)
        monitor._adapters["alphalend"] = adapter

        outcomes = await monitor.check_and_alert()

        assert [o.wallet_address for o in outcomes] == ["0xSECOND"]
        assert "second-wallet" in notifier.send_log.call_args[0][0]


class TestEventHistory:
    @pytest.mark.asyncio
    async def test_wallets_connected_once(self, monitor: Monitor, sample_position) -> None:
        monitor._adapters["alphalend"] = mock_adapter(sample_position, sample_position)

        await monitor.check_and_alert()
        await monitor.check_and_alert()

        history = await monitor.history("user-1")
        assert [e.event_type for e in history] == [EventType.WALLET_CONNECTED]

    @pytest.mark.asyncio
    async def test_position_stream_recorded(self, monitor: Monitor, position_factory) -> None:
        monitor._adapters["alphalend"] = mock_adapter(position_factory(1.2, position_id="snap-9"))

        await monitor.check_and_alert()

        history = await monitor.history("snap-9")
        assert [(e.version, e.event_type) for e in history] == [
            (1, EventType.POSITION_UPDATED),
            (2, EventType.HEALTH_FACTOR_CRITICAL),
        ]


class TestSimulate:
    @pytest.mark.asyncio
    async def test_simulate_deposit(self, monitor: Monitor, sample_position) -> None:
        adapter = mock_adapter(sample_position)
        adapter.simulate_deposit = AsyncMock(return_value=2.04)
        monitor._adapters["alphalend"] = adapter

        result = await monitor.simulate("test-wallet", "alphalend", "deposit", "SUI", 20)

        assert result["current_health_factor"] == pytest.approx(1.7)
        assert result["projected_health_factor"] == pytest.approx(2.04)
        adapter.simulate_deposit.assert_awaited_once_with(sample_position, "SUI", 20)

    @pytest.mark.asyncio
    async def test_unknown_wallet(self, monitor: Monitor) -> None:
        with pytest.raises(ValueError, match="Unknown wallet"):
            await monitor.simulate("nope", "alphalend", "deposit", "SUI", 1)

    @pytest.mark.asyncio
    async def test_unknown_action(self, monitor: Monitor) -> None:
        with pytest.raises(ValueError, match="Unknown action"):
            await monitor.simulate("test-wallet", "alphalend", "liquidate", "SUI", 1)

    @pytest.mark.asyncio
    async def test_no_position(self, monitor: Monitor) -> None:
        monitor._adapters["alphalend"] = mock_adapter(None)
        with pytest.raises(ValueError, match="No alphalend position"):
            await monitor.simulate("test-wallet", "alphalend", "repay", "USDC", 1)


class TestGenerateDailyReport:
    @pytest.mark.asyncio
    async def test_report_with_positions(
        self, monitor: Monitor, notifier: AsyncMock, sample_position
    ) -> None:
        monitor._adapters["alphalend"] = mock_adapter(sample_position)

        await monitor.generate_daily_report()

        notifier.send_alert.assert_called_once()
        report = notifier.send_alert.call_args[0][0]
        assert "Daily DeFi Position Report" in report
        assert "test-wallet" in report
        assert "alphalend" in report
        assert "Healthy" in report

    @pytest.mark.asyncio
    async def test_report_no_positions(self, monitor: Monitor, notifier: AsyncMock) -> None:
        monitor._adapters["alphalend"] = mock_adapter(None)

        await monitor.generate_daily_report()

        notifier.send_alert.assert_called_once()
        report = notifier.send_alert.call_args[0][0]
        assert "No active positions" in report


class TestFormatHelpers:
    def test_format_wallet_long(self) -> None:
        assert format_wallet("0x1234567890abcdef1234567890") == "0x12345678...567890"

    def test_format_wallet_short(self) -> None:
        assert format_wallet("0x123") == "0x123"

    def test_get_status_healthy(self, monitor: Monitor) -> None:
        assert "Healthy" in monitor._get_status(2.0)

    def test_get_status_warning(self, monitor: Monitor) -> None:
        assert "WARNING" in monitor._get_status(1.3)

    def test_get_status_critical(self, monitor: Monitor) -> None:
        assert "CRITICAL" in monitor._get_status(1.05)

    def test_get_status_no_debt(self, monitor: Monitor) -> None:
        assert "No Debt" in monitor._get_status(None)
