"""
Dead-letter consumer protocol.
"""

from typing import Optional

from shared.logging import get_logger, bind_message_context
from shared.errors import DecodeError
from shared.metrics import MetricsCollector

from ..events.models import decode_event
from .messages import (
    ConsumedRecord,
    ProcessingOutcome,
    DEAD_LETTER_REASON_HEADER,
    ORIGINAL_OFFSET_HEADER,
    ORIGINAL_PARTITION_HEADER,
)


class DeadLetterProcessor:
    """Records diverted notifications for audit.

    Runs in its own consumer group. It never calls the limiter and never
    publishes, and every record is acknowledged once logged.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics
        self.logger = get_logger("notifications.pipeline.dead_letter")

    async def process(self, record: ConsumedRecord) -> ProcessingOutcome:
        bind_message_context(partition=record.partition, offset=record.offset)
        reason = record.header(DEAD_LETTER_REASON_HEADER) or "unknown"

        try:
            event = decode_event(record.value)
        except DecodeError:
            self.logger.warning(
                "[DLT] Undecodable notification discarded",
                key=record.key_text(),
                reason=reason,
                size=len(record.value or b"")
            )
        else:
            self.logger.warning(
                "[DLT] Notification discarded",
                entity_id=event.entity_id,
                kind=event.kind,
                payload=event.payload,
                created_at=event.created_at.isoformat(),
                reason=reason,
                original_partition=record.header(ORIGINAL_PARTITION_HEADER),
                original_offset=record.header(ORIGINAL_OFFSET_HEADER)
            )

        if self.metrics:
            self.metrics.increment_counter("dead_letter_observed_total", reason=reason)

        return ProcessingOutcome.OBSERVED
