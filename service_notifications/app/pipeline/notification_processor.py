"""
Primary consumer protocol for the notifications topic.

A message moves Received -> Checked -> Delivered | DeadLettered and is
acknowledged by the consumer loop only after ``process`` returns. Any
exception raised from ``process`` leaves the message uncommitted so the
broker hands it out again.

Redelivery after a crash between the limiter ``add`` and the offset
commit records a second admission for the same message. The window then
over-counts by one until that entry ages out.
"""

import time
from typing import Dict, Optional, Union

from shared.logging import get_logger, bind_message_context
from shared.errors import DecodeError, DownstreamDeliveryError, LimiterUnavailable
from shared.metrics import MetricsCollector

from ..delivery.dispatcher import DeliveryChannel
from ..events.models import NotificationEvent, decode_event, encode_event
from ..limiter.sliding_window import SlidingWindowLimiter
from .messages import (
    ConsumedRecord,
    DeadLetterReason,
    MessageState,
    ProcessingOutcome,
    RecordPublisher,
    DEAD_LETTER_REASON_HEADER,
    ORIGINAL_OFFSET_HEADER,
    ORIGINAL_PARTITION_HEADER,
)


class NotificationProcessor:
    """Applies the per-user quota to one notification record."""

    def __init__(
        self,
        limiter: SlidingWindowLimiter,
        publisher: RecordPublisher,
        delivery: DeliveryChannel,
        dead_letter_topic: str,
        metrics: Optional[MetricsCollector] = None
    ):
        self.limiter = limiter
        self.publisher = publisher
        self.delivery = delivery
        self.dead_letter_topic = dead_letter_topic
        self.metrics = metrics
        self.logger = get_logger("notifications.pipeline.primary")

    async def process(self, record: ConsumedRecord) -> ProcessingOutcome:
        """Run one record to a completed side effect.

        Returns the outcome once it is safe to acknowledge. Raises
        PublishError or DownstreamDeliveryError when it is not.
        """
        bind_message_context(partition=record.partition, offset=record.offset)

        try:
            event = decode_event(record.value)
        except DecodeError as e:
            self.logger.error(
                "Undecodable notification",
                key=record.key_text(),
                error=e.message
            )
            await self._dead_letter(record, record.key, record.value or b"", DeadLetterReason.UNDECODABLE)
            return ProcessingOutcome.DEAD_LETTERED

        bind_message_context(entity_id=event.entity_id)
        self._transition(event, MessageState.RECEIVED, record)

        try:
            allowed = await self.limiter.check(event.entity_id)
            reason = DeadLetterReason.RATE_LIMITED
        except LimiterUnavailable as e:
            # Fail closed
            self.logger.error(
                "Rate limiter unavailable, denying",
                entity_id=event.entity_id,
                error=e.message
            )
            if self.metrics:
                self.metrics.increment_counter("limiter_unavailable_total")
            allowed = False
            reason = DeadLetterReason.LIMITER_UNAVAILABLE

        self._transition(event, MessageState.CHECKED, record, allowed=allowed)

        if not allowed:
            self.logger.warning(
                "Blocked by rate limit, sending to dead-letter topic",
                entity_id=event.entity_id,
                kind=event.kind,
                reason=reason.value
            )
            await self._dead_letter(record, event.entity_id, encode_event(event), reason)
            self._transition(event, MessageState.DEAD_LETTERED, record)
            return ProcessingOutcome.DEAD_LETTERED

        await self._deliver(event)
        self._transition(event, MessageState.DELIVERED, record)
        return ProcessingOutcome.DELIVERED

    async def _deliver(self, event: NotificationEvent):
        start_time = time.time()
        try:
            await self.delivery.deliver(event)
        except DownstreamDeliveryError:
            raise
        except Exception as e:
            raise DownstreamDeliveryError(str(e), {"entity_id": event.entity_id})

        if self.metrics:
            self.metrics.increment_counter("notifications_delivered_total")
            self.metrics.get_metric("delivery_duration_seconds").observe(time.time() - start_time)

    async def _dead_letter(
        self,
        record: ConsumedRecord,
        key: Optional[Union[str, bytes]],
        value: bytes,
        reason: DeadLetterReason
    ):
        """Republish to the dead-letter topic and wait for the broker."""
        headers: Dict[str, str] = {
            DEAD_LETTER_REASON_HEADER: reason.value,
            ORIGINAL_PARTITION_HEADER: str(record.partition),
            ORIGINAL_OFFSET_HEADER: str(record.offset),
        }
        result = await self.publisher.send_record(self.dead_letter_topic, key, value, headers)

        if self.metrics:
            self.metrics.increment_counter("dead_lettered_total", reason=reason.value)

        self.logger.debug(
            "Dead-lettered",
            reason=reason.value,
            dead_letter_partition=result.partition,
            dead_letter_offset=result.offset
        )

    def _transition(self, event: NotificationEvent, state: MessageState, record: ConsumedRecord, **fields):
        self.logger.debug(
            "Message state",
            state=state.value,
            entity_id=event.entity_id,
            kind=event.kind,
            partition=record.partition,
            offset=record.offset,
            **fields
        )
