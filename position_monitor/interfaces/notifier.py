"""Notifier protocol — notification channel abstraction."""
from typing import Protocol

from ..models import AlertChannel


class Notifier(Protocol):
    """Abstract interface for sending notifications."""

    @property
    def channel(self) -> AlertChannel: ...

    async def send_alert(
        self, message: str, subject: str = "", recipient: str | None = None
    ) -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
