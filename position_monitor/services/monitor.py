"""Generic monitoring orchestration — iterates wallets x protocols."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ..chains import EvmClient, SuiClient
from ..config import AppConfig, WalletConfig
from ..event_bus import EventBus
from ..events import wallet_connected
from ..interfaces.event_store import EventStore
from ..interfaces.notifier import Notifier
from ..interfaces.position_repository import PositionRepository
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..models import Position, User, UserPreferences
from ..notifications import EmailNotifier, TelegramNotifier
from ..oracles import PythOracle
from ..protocols import create_adapter
from ..store import (
    EventRecorder,
    InMemoryEventStore,
    InMemoryPositionRepository,
    JsonlEventStore,
    StoredEvent,
)
from .alerts import AlertDispatcher, asset_symbols
from .pipeline import MonitoringPipeline, PipelineOutcome, PipelineStatus

logger = logging.getLogger(__name__)

_CHAIN_CLIENTS = {"sui": SuiClient, "evm": EvmClient}

SIMULATION_ACTIONS = ("price", "deposit", "withdraw", "borrow", "repay")


class Monitor:
    """Orchestrates position monitoring and alerting across wallets and protocols."""

    def __init__(
        self,
        config: AppConfig,
        *,
        store: EventStore | None = None,
        repository: PositionRepository | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config
        self._thresholds = config.monitor.thresholds

        # Build chain clients
        self._chain_clients: dict[str, Any] = {}
        for chain_name, chain_cfg in config.chains.items():
            self._chain_clients[chain_name] = _CHAIN_CLIENTS[chain_cfg.kind](chain_cfg)

        # Build price oracle
        self._oracle: PriceOracle = PythOracle(config.price_oracle.pyth)

        # Build protocol adapters
        self._adapters: dict[str, ProtocolAdapter] = {}
        for proto_name, proto_cfg in config.protocols.items():
            chain_cfg = config.chains[proto_cfg.chain]
            try:
                self._adapters[proto_name] = create_adapter(
                    self._chain_clients[proto_cfg.chain],
                    proto_cfg,
                    self._oracle,
                    chain_cfg.chain_id,
                )
            except ValueError as e:
                logger.warning("Protocol '%s' disabled: %s", proto_name, e)

        # Build notifiers
        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
            if config.notifications.email.enabled:
                notifiers.append(EmailNotifier(config.notifications.email))
        self._notifiers: list[Notifier] = notifiers

        # Event plumbing
        if store is None:
            path = config.event_store.path
            store = JsonlEventStore(path) if path else InMemoryEventStore()
        self._store = store
        self._repository = repository or InMemoryPositionRepository()
        self._bus = EventBus()
        self._users = self._build_users()

        self._recorder = EventRecorder(self._store)
        self._recorder.attach(self._bus)
        self._dispatcher = AlertDispatcher(
            self._notifiers,
            self._users,
            self._repository,
            wallet_labels={w.address: w.label for w in config.wallets},
        )
        self._dispatcher.attach(self._bus)

        self._pipeline = MonitoringPipeline(self._repository, self._bus, config.monitor)
        self._connected = False

    def _build_users(self) -> dict[str, User]:
        users: dict[str, User] = {}
        for u in self._config.users:
            users[u.id] = User(
                id=u.id,
                preferences=UserPreferences(
                    risk_profile=u.risk_profile,
                    health_factor_threshold=u.health_factor_threshold,
                    price_change_threshold=u.price_change_threshold,
                    notification_channels=u.notification_channels,
                ),
                telegram_chat_id=u.telegram_chat_id,
            )
        for wallet in self._config.wallets:
            if wallet.user_id not in users:
                users[wallet.user_id] = User(id=wallet.user_id, wallet_address=wallet.address)
        return users

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def store(self) -> EventStore:
        return self._store

    @property
    def repository(self) -> PositionRepository:
        return self._repository

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    def _get_status(self, health_factor: float | None) -> str:
        if health_factor is None:
            return "✅ No Debt"
        if health_factor < self._thresholds.health_factor_near_liquidation:
            return "🚨 CRITICAL"
        if health_factor < self._thresholds.health_factor_critical:
            return "⚠️ WARNING"
        return "✅ Healthy"

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _format_hf(health_factor: float | None) -> str:
        return f"{health_factor:.2f}" if health_factor is not None else "∞"

    @staticmethod
    def _format_ltv(position: Position) -> str:
        ltv = position.calculate_ltv()
        return f"{ltv:.2f}%" if ltv is not None else "n/a"

    def _build_log_message(
        self,
        position: Position,
        wallet_label: str,
        proto_name: str,
        chain: str,
    ) -> str:
        status = self._get_status(position.health_factor)
        return (
            f"📊 {wallet_label} · {proto_name} · {chain.upper()}\n"
            f"\n"
            f"{status}\n"
            f"\n"
            f"Collateral: {asset_symbols(position.collateral)} — "
            f"${position.get_total_collateral_usd():,.2f}\n"
            f"Borrowed: {asset_symbols(position.debt)} — "
            f"${position.get_total_debt_usd():,.2f}\n"
            f"LTV: {self._format_ltv(position)} · HF: {self._format_hf(position.health_factor)}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = False) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def connect_wallets(self) -> None:
        """Publish one WalletConnected event per configured wallet."""
        for wallet_cfg in self._config.wallets:
            await self._bus.publish(wallet_connected(wallet_cfg.address, wallet_cfg.user_id))
        self._connected = True
        await self._bus.drain()

    def _pairs(self) -> list[tuple[WalletConfig, str, ProtocolAdapter]]:
        pairs = []
        for wallet_cfg in self._config.wallets:
            for proto_name in wallet_cfg.protocols:
                adapter = self._adapters.get(proto_name)
                if adapter is None:
                    logger.warning("No adapter for protocol '%s'", proto_name)
                    continue
                pairs.append((wallet_cfg, proto_name, adapter))
        return pairs

    async def _run_pipelines(
        self,
    ) -> list[tuple[WalletConfig, str, PipelineOutcome | BaseException]]:
        if not self._connected:
            await self.connect_wallets()

        pairs = self._pairs()
        results = await asyncio.gather(
            *(
                self._pipeline.run(
                    self._users[wallet_cfg.user_id], wallet_cfg.address, adapter
                )
                for wallet_cfg, _, adapter in pairs
            ),
            return_exceptions=True,
        )
        await self._bus.drain()

        out: list[tuple[WalletConfig, str, PipelineOutcome | BaseException]] = []
        for (wallet_cfg, proto_name, _), result in zip(pairs, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    "Monitoring %s · %s failed: %s", wallet_cfg.label, proto_name, result
                )
            out.append((wallet_cfg, proto_name, result))
        return out

    async def check_and_alert(self) -> list[PipelineOutcome]:
        """Check all wallet×protocol positions; alerts flow through the bus."""
        outcomes: list[PipelineOutcome] = []

        for wallet_cfg, proto_name, result in await self._run_pipelines():
            if isinstance(result, BaseException):
                continue
            outcomes.append(result)

            if result.status is PipelineStatus.NO_POSITION or result.position is None:
                log_msg = (
                    f"📊 {wallet_cfg.label} · {proto_name} · {wallet_cfg.chain.upper()}\n"
                    f"\n"
                    f"No active positions found.\n"
                    f"\n"
                    f"{self._now_str()} UTC"
                )
                await self._send_log(log_msg, silent=False)
                continue

            position = result.position
            logger.info(
                "Position — %s · %s · Collateral: $%.2f  Borrowed: $%.2f  HF: %s  (%s)",
                wallet_cfg.label,
                proto_name,
                position.get_total_collateral_usd(),
                position.get_total_debt_usd(),
                self._format_hf(position.health_factor),
                result.status.value,
            )
            log_msg = self._build_log_message(
                position, wallet_cfg.label, proto_name, wallet_cfg.chain
            )
            await self._send_log(log_msg, silent=result.status is PipelineStatus.UNCHANGED)

        return outcomes

    async def generate_daily_report(self) -> None:
        """Generate and send daily position report grouped by wallet → protocol."""
        results = await self._run_pipelines()

        sections: list[str] = []
        by_wallet: dict[str, list[str]] = {}
        for wallet_cfg, proto_name, result in results:
            if isinstance(result, BaseException) or result.position is None:
                continue
            position = result.position
            by_wallet.setdefault(wallet_cfg.label, []).append(
                f"{proto_name} · {self._get_status(position.health_factor)}\n"
                f"  Collateral: ${position.get_total_collateral_usd():,.2f}\n"
                f"  Borrowed: ${position.get_total_debt_usd():,.2f}\n"
                f"  LTV: {self._format_ltv(position)} · HF: {self._format_hf(position.health_factor)}"
            )

        for wallet_cfg in self._config.wallets:
            wallet_lines = by_wallet.pop(wallet_cfg.label, None)
            if wallet_lines:
                header = f"━━ {wallet_cfg.label} ({wallet_cfg.chain.upper()}) ━━"
                sections.append(header + "\n\n" + "\n\n".join(wallet_lines))

        body = "\n\n".join(sections) if sections else "No active positions found."

        report = (
            f"📋 Daily DeFi Position Report\n"
            f"\n"
            f"{body}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

        await self._send_alert(report)
        logger.info("Daily report sent")

    async def simulate(
        self,
        wallet_label: str,
        protocol: str,
        action: str,
        asset: str,
        amount: float,
    ) -> dict[str, Any]:
        """Project the health factor of a live position after one action.

        ``action`` is one of ``price`` (``amount`` is a percent change),
        ``deposit``, ``withdraw``, ``borrow`` or ``repay``.
        """
        if action not in SIMULATION_ACTIONS:
            raise ValueError(f"Unknown action '{action}'. Expected one of {SIMULATION_ACTIONS}")

        wallet_cfg = next((w for w in self._config.wallets if w.label == wallet_label), None)
        if wallet_cfg is None:
            raise ValueError(f"Unknown wallet '{wallet_label}'")
        adapter = self._adapters.get(protocol)
        if adapter is None or protocol not in wallet_cfg.protocols:
            raise ValueError(f"Protocol '{protocol}' not configured for wallet '{wallet_label}'")

        position = await adapter.get_position(wallet_cfg.address)
        if position is None:
            raise ValueError(f"No {protocol} position for wallet '{wallet_label}'")

        simulators = {
            "price": adapter.simulate_price_change,
            "deposit": adapter.simulate_deposit,
            "withdraw": adapter.simulate_withdraw,
            "borrow": adapter.simulate_borrow,
            "repay": adapter.simulate_repay,
        }
        projected = await simulators[action](position, asset, amount)

        logger.info(
            "Simulated %s %s %s on %s · %s: HF %s → %s",
            action, amount, asset, wallet_label, protocol,
            self._format_hf(position.health_factor), self._format_hf(projected),
        )
        return {
            "wallet": wallet_label,
            "protocol": protocol,
            "action": action,
            "asset": asset,
            "amount": amount,
            "current_health_factor": position.health_factor,
            "projected_health_factor": projected,
        }

    async def history(self, aggregate_id: str) -> list[StoredEvent]:
        """Replay the stored event stream of one aggregate."""
        return await self._store.load_stream(aggregate_id)

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run continuous monitoring loop."""
        interval = check_interval_minutes or self._config.monitor.check_interval_minutes
        logger.info(
            "Starting continuous monitoring (checking every %d minutes)", interval
        )

        while True:
            try:
                await self.check_and_alert()
                await asyncio.sleep(interval * 60)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in monitoring loop: %s", e)
                await asyncio.sleep(60)

    async def close(self) -> None:
        """Let in-flight handlers finish, then stop accepting events."""
        await self._bus.close()
