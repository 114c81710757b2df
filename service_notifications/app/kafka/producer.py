"""
Kafka producer for the Notification service.
"""

import asyncio
from typing import Dict, Optional, Union

from kafka import KafkaProducer

from shared.logging import get_logger
from shared.errors import PipelineException, PublishError, ValidationError
from shared.metrics import MetricsCollector

from ..events.models import NotificationEvent, encode_event
from ..pipeline.messages import PublishResult, RecordPublisher
from .router import PartitionRouter


class KafkaProducerManager(RecordPublisher):
    """Manages the Kafka producer for the notification and dead-letter topics.

    Every record is keyed by user id and sent to an explicit partition
    chosen by PartitionRouter, so one user's events stay in order on one
    partition. Failed sends are reported, never retried here.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        publish_timeout_seconds: float = 10.0,
        router: Optional[PartitionRouter] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.publish_timeout_seconds = publish_timeout_seconds
        self.router = router or PartitionRouter()
        self.metrics = metrics
        self.logger = get_logger("notifications.kafka.producer")
        self.producer: Optional[KafkaProducer] = None

    async def start(self):
        """Start the Kafka producer."""
        try:
            self.producer = KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                key_serializer=lambda x: x.encode('utf-8') if isinstance(x, str) else x,
                acks='all',
                retries=0,
                linger_ms=5,
                request_timeout_ms=int(self.publish_timeout_seconds * 1000)
            )

            self.logger.info("Kafka producer started", topic=self.topic)

        except Exception as e:
            self.logger.error("Failed to start Kafka producer", error=str(e))
            raise PipelineException("KAFKA_PRODUCER_START_FAILED", str(e))

    async def stop(self):
        """Flush pending records and stop the Kafka producer."""
        if self.producer:
            self.producer.flush(timeout=self.publish_timeout_seconds)
            self.producer.close(timeout=self.publish_timeout_seconds)
            self.producer = None
            self.logger.info("Kafka producer stopped")

    def is_running(self) -> bool:
        return self.producer is not None

    async def publish(self, event: NotificationEvent) -> PublishResult:
        """Publish an event to the notifications topic keyed by its user id."""
        if not event.entity_id:
            raise ValidationError("entity_id must not be empty")

        result = await self.send_record(self.topic, event.entity_id, encode_event(event))

        self.logger.info(
            "Notification published",
            entity_id=event.entity_id,
            kind=event.kind,
            partition=result.partition,
            offset=result.offset
        )
        return result

    async def send_record(
        self,
        topic: str,
        key: Optional[Union[str, bytes]],
        value: bytes,
        headers: Optional[Dict[str, str]] = None
    ) -> PublishResult:
        """Send one record and wait for the broker acknowledgement."""
        if not self.producer:
            raise PipelineException("KAFKA_PRODUCER_NOT_STARTED", "Producer not started")

        loop = asyncio.get_running_loop()

        try:
            partition = None
            if key:
                partitions = await loop.run_in_executor(None, self.producer.partitions_for, topic)
                if not partitions:
                    raise PublishError(topic, "No partitions available")
                partition = self.router.route(key, len(partitions))

            kafka_headers = [(k, v.encode('utf-8')) for k, v in (headers or {}).items()]

            future = self.producer.send(
                topic,
                value=value,
                key=key,
                headers=kafka_headers,
                partition=partition
            )

            # Wait for confirmation
            record_metadata = await loop.run_in_executor(None, future.get, self.publish_timeout_seconds)

        except PublishError:
            self._record_failure(topic)
            raise

        except Exception as e:
            self.logger.error("Error sending message", topic=topic, key=key, error=str(e))
            self._record_failure(topic)
            raise PublishError(topic, str(e))

        if self.metrics:
            self.metrics.increment_counter("events_published_total", topic=topic)

        self.logger.debug(
            "Message sent successfully",
            topic=topic,
            partition=record_metadata.partition,
            offset=record_metadata.offset
        )

        return PublishResult(
            topic=topic,
            partition=record_metadata.partition,
            offset=record_metadata.offset
        )

    def _record_failure(self, topic: str):
        if self.metrics:
            self.metrics.increment_counter("publish_failures_total", topic=topic)
