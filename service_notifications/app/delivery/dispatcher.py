"""
Downstream notification delivery.
"""

import asyncio
from abc import ABC, abstractmethod

from shared.logging import get_logger

from ..events.models import NotificationEvent


class DeliveryChannel(ABC):
    """Hands an admitted notification to an external provider."""

    @abstractmethod
    async def deliver(self, event: NotificationEvent) -> None:
        """Deliver event; raise DownstreamDeliveryError on failure."""


class SimulatedNotificationDispatcher(DeliveryChannel):
    """Stand-in for a push/SMS/email provider that only logs and waits."""

    def __init__(self, latency_ms: int = 50):
        self.latency_ms = latency_ms
        self.logger = get_logger("notifications.delivery")

    async def deliver(self, event: NotificationEvent) -> None:
        self.logger.info(
            "Sending notification",
            entity_id=event.entity_id,
            kind=event.kind,
            payload=event.payload,
            created_at=event.created_at.isoformat()
        )

        # Provider round trip
        await asyncio.sleep(self.latency_ms / 1000)

        self.logger.info("Notification delivered", entity_id=event.entity_id)
