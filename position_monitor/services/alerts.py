"""Alert dispatch — turns HealthFactorCritical events into notifications."""
from __future__ import annotations

import logging
import uuid
from collections import deque
from typing import Mapping, Sequence

from ..event_bus import EventBus
from ..events import DomainEvent, EventType, HealthFactorCriticalData
from ..interfaces.notifier import Notifier
from ..interfaces.position_repository import PositionRepository
from ..models import Alert, AlertChannel, AlertStatus, Asset, Position, User, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 500
CRITICAL_SUBJECT = "🚨 CRITICAL: Liquidation Risk!"


def format_wallet(address: str) -> str:
    if len(address) > 16:
        return f"{address[:10]}...{address[-6:]}"
    return address


def asset_symbols(assets: tuple[Asset, ...]) -> str:
    """Return comma-separated asset symbols, e.g. 'USDC, XBTC'."""
    return ", ".join(a.symbol for a in assets) if assets else "—"


def build_critical_message(
    data: HealthFactorCriticalData,
    position: Position | None,
    wallet_label: str = "",
) -> str:
    now = utcnow().strftime("%Y-%m-%d %H:%M:%S")
    header = f"🚨 CRITICAL — Health Factor {data.health_factor:.2f} (threshold {data.threshold:.2f})"
    if position is None:
        return (
            f"{header}\n"
            f"\n"
            f"Position: {data.position_id}\n"
            f"\n"
            f"⚠️ Add collateral or repay debt immediately!\n"
            f"\n"
            f"{now} UTC"
        )

    label = wallet_label or format_wallet(position.wallet_address)
    lines = [
        header,
        "",
        f"{label} · {position.protocol}",
        "",
        f"Collateral: {asset_symbols(position.collateral)}",
        f"  ${position.get_total_collateral_usd():,.2f}",
        "",
        f"Borrowed: {asset_symbols(position.debt)}",
        f"  ${position.get_total_debt_usd():,.2f}",
        "",
    ]
    ltv = position.calculate_ltv()
    if ltv is not None:
        lines.append(f"LTV: {ltv:.2f}%")
    if position.metadata and position.metadata.liquidation_threshold:
        lines.append(f"Liquidation Threshold: {position.metadata.liquidation_threshold}%")
    lines += [
        "",
        "⚠️ Add collateral or repay debt immediately!",
        "",
        f"Wallet: {format_wallet(position.wallet_address)}",
        f"{now} UTC",
    ]
    return "\n".join(lines)


class AlertDispatcher:
    """Sends one alert per enabled notifier channel for each critical event.

    Users without configured channels receive alerts on every notifier.
    """

    def __init__(
        self,
        notifiers: Sequence[Notifier],
        users: Mapping[str, User],
        repository: PositionRepository | None = None,
        wallet_labels: Mapping[str, str] | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self._notifiers = list(notifiers)
        self._users = users
        self._repository = repository
        self._wallet_labels = wallet_labels or {}
        self._history: deque[Alert] = deque(maxlen=history_size)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(EventType.HEALTH_FACTOR_CRITICAL, self.handle)

    def detach(self, bus: EventBus) -> None:
        bus.unsubscribe(EventType.HEALTH_FACTOR_CRITICAL, self.handle)

    @property
    def history(self) -> list[Alert]:
        return list(self._history)

    def _notifiers_for(self, user: User | None) -> list[Notifier]:
        if user is None or user.preferences is None or user.preferences.notification_channels is None:
            return list(self._notifiers)
        return [n for n in self._notifiers if user.has_channel_enabled(n.channel)]

    async def handle(self, event: DomainEvent) -> list[Alert]:
        data = event.data
        if not isinstance(data, HealthFactorCriticalData):
            return []

        user = self._users.get(data.user_id)
        position = None
        if self._repository is not None:
            position = await self._repository.find_by_id(data.position_id)
        label = self._wallet_labels.get(position.wallet_address, "") if position else ""
        message = build_critical_message(data, position, label)

        alerts: list[Alert] = []
        for notifier in self._notifiers_for(user):
            recipient = None
            if user is not None and notifier.channel is AlertChannel.TELEGRAM:
                recipient = user.telegram_chat_id
            try:
                delivered = await notifier.send_alert(
                    message, subject=CRITICAL_SUBJECT, recipient=recipient
                )
            except Exception as e:
                logger.error("Notifier %s failed: %s", notifier.channel.value, e)
                delivered = False

            alert = Alert(
                id=str(uuid.uuid4()),
                user_id=data.user_id,
                type=event.type.value,
                channel=notifier.channel,
                message=message,
                status=AlertStatus.SENT if delivered else AlertStatus.FAILED,
                metadata={
                    "eventId": event.event_id,
                    "positionId": data.position_id,
                    "healthFactor": data.health_factor,
                    "threshold": data.threshold,
                },
                sent_at=utcnow() if delivered else None,
            )
            self._history.append(alert)
            alerts.append(alert)

        if not alerts:
            logger.warning("No notifier enabled for user %s, alert not sent", data.user_id)
        return alerts
