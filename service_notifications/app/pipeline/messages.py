"""
Record envelopes and processing states shared by producer, consumer and processors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union


DEAD_LETTER_REASON_HEADER = "x-dead-letter-reason"
ORIGINAL_PARTITION_HEADER = "x-original-partition"
ORIGINAL_OFFSET_HEADER = "x-original-offset"


@dataclass
class ConsumedRecord:
    """Kafka record wrapper handed to processors."""
    topic: str
    partition: int
    offset: int
    key: Optional[bytes]
    value: Optional[bytes]
    timestamp: Optional[int] = None
    headers: Optional[Dict[str, bytes]] = None

    def header(self, name: str) -> Optional[str]:
        """Decoded header value, or None."""
        if not self.headers or name not in self.headers:
            return None
        value = self.headers[name]
        return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else str(value)

    def key_text(self) -> Optional[str]:
        if self.key is None:
            return None
        return self.key.decode("utf-8", errors="replace") if isinstance(self.key, bytes) else str(self.key)


@dataclass(frozen=True)
class PublishResult:
    """Where a published record landed."""
    topic: str
    partition: int
    offset: int


class RecordPublisher(ABC):
    """Transport-side publishing used by the pipeline."""

    @abstractmethod
    async def send_record(
        self,
        topic: str,
        key: Optional[Union[str, bytes]],
        value: bytes,
        headers: Optional[Dict[str, str]] = None
    ) -> PublishResult:
        """Publish and wait for the broker acknowledgement; raise PublishError on failure."""


class DeadLetterReason(str, Enum):
    """Why a record was diverted to the dead-letter topic."""
    RATE_LIMITED = "rate_limited"
    LIMITER_UNAVAILABLE = "limiter_unavailable"
    UNDECODABLE = "undecodable"


class MessageState(str, Enum):
    """Lifecycle of a primary-topic message."""
    RECEIVED = "received"
    CHECKED = "checked"
    DELIVERED = "delivered"
    DEAD_LETTERED = "dead_lettered"
    ACKNOWLEDGED = "acknowledged"


class ProcessingOutcome(str, Enum):
    """Side effect completed for a message before it may be acknowledged."""
    DELIVERED = "delivered"
    DEAD_LETTERED = "dead_lettered"
    OBSERVED = "observed"
