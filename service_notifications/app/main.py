"""
Notification service for the rate-limited notification pipeline.
"""

import asyncio
from typing import Dict, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .delivery.dispatcher import DeliveryChannel, SimulatedNotificationDispatcher
from .events.models import NotificationRequest, create_event
from .kafka.consumer import KafkaConsumerManager
from .kafka.producer import KafkaProducerManager
from .kafka.topics import ensure_topics
from .limiter.sliding_window import SlidingWindowLimiter
from .limiter.store import RedisSortedSetStore, SortedSetStore
from .pipeline.dead_letter_processor import DeadLetterProcessor
from .pipeline.notification_processor import NotificationProcessor


class NotificationService(BaseService):
    """Notification service implementation.

    The HTTP surface only publishes and reads quota status. Admission is
    decided asynchronously by the primary consumer group.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[SortedSetStore] = None,
        delivery: Optional[DeliveryChannel] = None
    ):
        super().__init__("notifications", 8000, config)

        self.store = store or RedisSortedSetStore(self.config.redis_url)
        self.limiter = SlidingWindowLimiter(
            self.store,
            max_per_window=self.config.rate_limit_max_per_window,
            window_seconds=self.config.rate_limit_window_seconds,
            expiry_margin_seconds=self.config.rate_limit_expiry_margin_seconds,
            timeout_seconds=self.config.limiter_timeout_seconds,
            metrics=self.metrics
        )
        self.kafka_producer = KafkaProducerManager(
            bootstrap_servers=self.config.kafka_bootstrap,
            topic=self.config.notifications_topic,
            publish_timeout_seconds=self.config.publish_timeout_seconds,
            metrics=self.metrics
        )
        self.delivery = delivery or SimulatedNotificationDispatcher(self.config.delivery_latency_ms)

        self.notification_processor = NotificationProcessor(
            limiter=self.limiter,
            publisher=self.kafka_producer,
            delivery=self.delivery,
            dead_letter_topic=self.config.dead_letter_topic,
            metrics=self.metrics
        )
        self.dead_letter_processor = DeadLetterProcessor(metrics=self.metrics)

        self.notification_consumer = KafkaConsumerManager(
            bootstrap_servers=self.config.kafka_bootstrap,
            group_id=self.config.consumer_group,
            topic=self.config.notifications_topic,
            handler=self.notification_processor.process,
            poll_timeout_ms=self.config.poll_timeout_ms,
            max_poll_records=self.config.max_poll_records,
            redelivery_backoff_seconds=self.config.redelivery_backoff_seconds,
            metrics=self.metrics
        )
        self.dead_letter_consumer = KafkaConsumerManager(
            bootstrap_servers=self.config.kafka_bootstrap,
            group_id=self.config.dead_letter_group,
            topic=self.config.dead_letter_topic,
            handler=self.dead_letter_processor.process,
            poll_timeout_ms=self.config.poll_timeout_ms,
            max_poll_records=self.config.max_poll_records,
            redelivery_backoff_seconds=self.config.redelivery_backoff_seconds,
            metrics=self.metrics
        )

        self._setup_notification_routes()
        self._setup_lifecycle()
        self.app.state.notification_service = self

    def _setup_notification_routes(self):
        """Set up notification-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "notifications",
                "message": "Rate-limited notification pipeline",
                "version": "1.0.0",
                "topics": {
                    "notifications": self.config.notifications_topic,
                    "dead_letter": self.config.dead_letter_topic
                },
                "rate_limit": {
                    "max_per_window": self.config.rate_limit_max_per_window,
                    "window_seconds": self.config.rate_limit_window_seconds
                }
            }

        @self.app.post("/api/notifications", status_code=202)
        async def send_notification(request: NotificationRequest):
            """Publish a single notification."""
            event = create_event(request.entity_id, request.kind, request.payload)
            result = await self.kafka_producer.publish(event)

            return {
                "status": "published",
                "entity_id": event.entity_id,
                "kind": event.kind,
                "partition": result.partition,
                "offset": result.offset,
                "info": "The rate limit is applied by the consumer, not here."
            }

        @self.app.post("/api/notifications/burst", status_code=202)
        async def send_burst(
            entity_id: str = Query(...),
            count: Optional[int] = Query(None, ge=1, le=1000),
            kind: str = Query("promotional")
        ):
            """Publish several notifications for one user back to back."""
            if count is None:
                count = self.config.burst_default_count

            for i in range(1, count + 1):
                event = create_event(
                    entity_id,
                    kind,
                    f"Notification #{i} - {kind} for user {entity_id}"
                )
                await self.kafka_producer.publish(event)

            limit = self.config.rate_limit_max_per_window
            return {
                "entity_id": entity_id,
                "published": count,
                "limit_per_window": limit,
                "expectation": f"First {min(count, limit)} delivered, remaining {max(0, count - limit)} dead-lettered"
            }

        @self.app.get("/api/notifications/rate-limit/{entity_id}")
        async def get_rate_limit(entity_id: str):
            """Quota usage for a user in the current window."""
            status = await self.limiter.status(entity_id)

            return {
                "entity_id": entity_id,
                "count_in_window": status["count"],
                "limit": status["limit"],
                "remaining": status["remaining"],
                "blocked": status["blocked"]
            }

    def _setup_lifecycle(self):
        """Start and stop pipeline components with the app."""

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check notification service dependencies."""
        dependencies = {
            "kafka_producer": "ok" if self.kafka_producer.is_running() else "error",
            "notification_consumer": "ok" if self.notification_consumer.is_running() else "error",
            "dead_letter_consumer": "ok" if self.dead_letter_consumer.is_running() else "error",
        }

        health_check = getattr(self.store, "health_check", None)
        if health_check is not None:
            dependencies["redis"] = "ok" if await health_check() else "error"

        return dependencies

    async def start(self):
        """Start pipeline components."""
        if self.config.auto_create_topics:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                ensure_topics,
                self.config.kafka_bootstrap,
                {
                    self.config.notifications_topic: self.config.notifications_partitions,
                    self.config.dead_letter_topic: self.config.dead_letter_partitions
                },
                self.config.replication_factor
            )

        start_store = getattr(self.store, "start", None)
        if start_store is not None:
            await start_store()

        await self.kafka_producer.start()
        await self.notification_consumer.start(start_loop=True)
        await self.dead_letter_consumer.start(start_loop=True)

        self.logger.info("Notification service components started")

    async def stop(self):
        """Stop pipeline components."""
        await self.notification_consumer.stop()
        await self.dead_letter_consumer.stop()
        await self.kafka_producer.stop()

        stop_store = getattr(self.store, "stop", None)
        if stop_store is not None:
            await stop_store()

        self.logger.info("Notification service components stopped")


def create_app():
    """Create notification service application."""
    service = NotificationService()
    return service.app


if __name__ == "__main__":
    service = NotificationService()
    service.run()
