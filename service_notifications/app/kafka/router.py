"""
Key-based partition routing for the Notification service.
"""

from typing import Union

from kafka.partitioner.default import murmur2


class PartitionRouter:
    """Maps a routing key to a partition index.

    Uses the same murmur2 hash as the Kafka Java client's default
    partitioner, so a given key lands on the same partition whichever
    client produced it. Stable for a fixed partition count only.
    """

    @staticmethod
    def route(key: Union[str, bytes], partition_count: int) -> int:
        """Return the partition index for key."""
        if partition_count <= 0:
            raise ValueError("partition_count must be positive")

        key_bytes = key.encode("utf-8") if isinstance(key, str) else key
        return (murmur2(key_bytes) & 0x7fffffff) % partition_count
