"""Per-wallet monitoring pipeline: fetch → diff → persist → publish."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from ..config import MonitorConfig
from ..errors import DataIntegrityError, FetchTimeout
from ..event_bus import EventBus
from ..events import (
    DomainEvent,
    EventMetadata,
    EventType,
    health_factor_critical,
    position_updated,
)
from ..interfaces.position_repository import PositionRepository
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..models import Position, User, parse_decimal
from ..protocols.risk import calc_liquidation_price
from ..resilience import retry_async
from .change_detection import ChangePolicy

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    NO_POSITION = "no_position"
    UNCHANGED = "unchanged"
    UPDATED = "updated"


@dataclass(frozen=True)
class PipelineOutcome:
    status: PipelineStatus
    wallet_address: str
    protocol: str
    position: Position | None = None
    previous: Position | None = None
    events: tuple[DomainEvent, ...] = field(default_factory=tuple)

    @property
    def critical(self) -> bool:
        return any(e.type is EventType.HEALTH_FACTOR_CRITICAL for e in self.events)


def liquidation_price(position: Position) -> float | None:
    """Single-collateral liquidation price, when the threshold is known."""
    if not position.metadata or not position.metadata.liquidation_threshold:
        return None
    threshold = parse_decimal(position.metadata.liquidation_threshold, "liquidationThreshold")
    price = calc_liquidation_price(position, threshold)
    return float(price) if price is not None else None


class MonitoringPipeline:
    """Runs one (wallet, protocol) pair through a full monitoring pass.

    Fetch failures are retried with backoff; a malformed snapshot aborts the
    run before anything is persisted. Unchanged snapshots are neither stored
    nor published.
    """

    def __init__(
        self,
        repository: PositionRepository,
        bus: EventBus,
        config: MonitorConfig,
        policy: ChangePolicy | None = None,
    ) -> None:
        self._repository = repository
        self._bus = bus
        self._config = config
        self._policy = policy or ChangePolicy(
            config.change_detection.health_factor_epsilon,
            config.change_detection.usd_epsilon,
        )

    async def _fetch(self, adapter: ProtocolAdapter, wallet_address: str) -> Position | None:
        timeout = self._config.fetch_timeout_seconds
        try:
            return await asyncio.wait_for(adapter.get_position(wallet_address), timeout)
        except asyncio.TimeoutError:
            raise FetchTimeout(adapter.protocol_name, timeout) from None

    async def run(
        self, user: User, wallet_address: str, adapter: ProtocolAdapter
    ) -> PipelineOutcome:
        protocol = adapter.protocol_name
        fetched = await retry_async(
            lambda: self._fetch(adapter, wallet_address),
            self._config.retry,
            description=f"{protocol} fetch for {wallet_address}",
        )

        if fetched is None:
            logger.info("No %s position for %s", protocol, wallet_address)
            return PipelineOutcome(PipelineStatus.NO_POSITION, wallet_address, protocol)

        try:
            position = fetched.replace(user_id=user.id)
            collateral_usd = float(position.get_total_collateral_usd())
            borrowed_usd = float(position.get_total_debt_usd())
            liq_price = liquidation_price(position)
        except DataIntegrityError:
            logger.error("Rejected malformed %s snapshot for %s", protocol, wallet_address)
            raise

        previous = await self._repository.find_latest_by_wallet_and_protocol(
            wallet_address, protocol
        )
        if not self._policy.is_material(previous, position):
            logger.info("%s position for %s unchanged", protocol, wallet_address)
            return PipelineOutcome(
                PipelineStatus.UNCHANGED, wallet_address, protocol, position, previous
            )

        await self._repository.save(position)

        updated = position_updated(
            position.id,
            user.id,
            protocol=protocol,
            health_factor=position.health_factor,
            collateral_usd=collateral_usd,
            borrowed_usd=borrowed_usd,
            liquidation_price=liq_price,
            metadata=EventMetadata(correlation_id=str(uuid.uuid4()), user_id=user.id),
        )
        events = [updated]
        await self._bus.publish(updated)

        threshold = user.get_health_factor_threshold(
            self._config.thresholds.health_factor_critical
        )
        if position.is_at_risk(threshold) and position.health_factor is not None:
            critical = health_factor_critical(
                position.id,
                user.id,
                position.health_factor,
                threshold,
                metadata=EventMetadata(
                    correlation_id=updated.metadata.correlation_id if updated.metadata else None,
                    causation_id=updated.event_id,
                    user_id=user.id,
                ),
            )
            logger.warning(
                "%s position %s at risk: HF %.4f < %.2f",
                protocol, position.id, position.health_factor, threshold,
            )
            events.append(critical)
            await self._bus.publish(critical)

        return PipelineOutcome(
            PipelineStatus.UPDATED, wallet_address, protocol, position, previous, tuple(events)
        )
