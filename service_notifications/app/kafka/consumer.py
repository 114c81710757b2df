"""
Kafka consumer for the Notification service.
"""

import asyncio
import functools
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import kafka
from kafka import ConsumerRebalanceListener
from kafka.errors import KafkaError
from kafka.structs import OffsetAndMetadata, TopicPartition

from shared.logging import get_logger, clear_context
from shared.errors import PipelineException
from shared.metrics import MetricsCollector

from ..pipeline.messages import ConsumedRecord, MessageState


MessageHandler = Callable[[ConsumedRecord], Awaitable[Any]]


class _PartitionTracker(ConsumerRebalanceListener):
    """Keeps the set of partitions this instance currently owns."""

    def __init__(self, manager: "KafkaConsumerManager"):
        self.manager = manager

    def on_partitions_revoked(self, revoked):
        for tp in revoked:
            self.manager.assigned_partitions.discard(tp)
            # The client drops pause state with the assignment
            self.manager.paused_partitions.pop(tp, None)
        self.manager.logger.info(
            "Partitions revoked",
            group_id=self.manager.group_id,
            partitions=sorted(tp.partition for tp in revoked)
        )

    def on_partitions_assigned(self, assigned):
        self.manager.assigned_partitions.update(assigned)
        self.manager.logger.info(
            "Partitions assigned",
            group_id=self.manager.group_id,
            partitions=sorted(tp.partition for tp in assigned)
        )


class KafkaConsumerManager:
    """Manual-commit consumer for one topic and one consumer group.

    Records of a partition are handled strictly in offset order; partitions
    of one poll batch are handled concurrently. An offset is committed only
    after the handler returns for that record. When the handler raises, the
    partition is rewound to the failed record and paused for the redelivery
    backoff while the other partitions keep flowing.

    KafkaConsumer is not thread-safe and its calls block on the network, so
    every call after subscribe runs in the default executor under one lock.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        topic: str,
        handler: MessageHandler,
        poll_timeout_ms: int = 1000,
        max_poll_records: int = 100,
        redelivery_backoff_seconds: float = 1.0,
        metrics: Optional[MetricsCollector] = None
    ):
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.topic = topic
        self.handler = handler
        self.poll_timeout_ms = poll_timeout_ms
        self.max_poll_records = max_poll_records
        self.redelivery_backoff_seconds = redelivery_backoff_seconds
        self.metrics = metrics
        self.logger = get_logger("notifications.kafka.consumer")
        self.consumer: Optional[kafka.KafkaConsumer] = None
        self.assigned_partitions: Set[TopicPartition] = set()
        self.paused_partitions: Dict[TopicPartition, float] = {}
        self.running = False
        self._consumer_task: Optional[asyncio.Task] = None
        self._consumer_lock = asyncio.Lock()
        self._in_flight: Optional[asyncio.Future] = None

    @staticmethod
    async def _await_if_needed(result):
        if asyncio.iscoroutine(result):
            return await result
        return result

    async def _call_consumer(self, method: Callable, *args, **kwargs):
        """Run one KafkaConsumer call off the event loop, never two at once."""
        loop = asyncio.get_running_loop()
        async with self._consumer_lock:
            self._in_flight = loop.run_in_executor(None, functools.partial(method, *args, **kwargs))
            # A cancelled caller must not hide a call the client is still inside
            result = await asyncio.shield(self._in_flight)
        return await self._await_if_needed(result)

    async def start(self, start_loop: bool = False):
        """Create the consumer and join the group."""
        try:
            self.consumer = kafka.KafkaConsumer(
                bootstrap_servers=self.bootstrap_servers,
                group_id=self.group_id,
                auto_offset_reset='earliest',
                enable_auto_commit=False,
                max_poll_records=self.max_poll_records,
                session_timeout_ms=30000,
                heartbeat_interval_ms=10000
            )
            await self._await_if_needed(
                self.consumer.subscribe([self.topic], listener=_PartitionTracker(self))
            )

            self.running = True
            if start_loop:
                self._consumer_task = asyncio.create_task(self._consume_loop())
            self.logger.info("Kafka consumer started", group_id=self.group_id, topic=self.topic)

        except Exception as e:
            self.logger.error("Failed to start Kafka consumer", group_id=self.group_id, error=str(e))
            raise PipelineException("KAFKA_CONSUMER_START_FAILED", str(e))

    async def stop(self, drain_timeout_seconds: float = 30.0):
        """Stop polling, let in-flight records finish, then leave the group."""
        self.running = False
        if self._consumer_task:
            try:
                await asyncio.wait_for(self._consumer_task, timeout=drain_timeout_seconds)
            except asyncio.TimeoutError:
                self.logger.warning("Consumer drain timed out", group_id=self.group_id)
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        # close() must not overlap a poll or commit abandoned by the drain timeout
        if self._in_flight is not None and not self._in_flight.done():
            await asyncio.wait([self._in_flight])

        if self.consumer:
            await self._call_consumer(self.consumer.close)
            self.consumer = None
            self.assigned_partitions.clear()
            self.paused_partitions.clear()
            self.logger.info("Kafka consumer stopped", group_id=self.group_id)

    async def _consume_loop(self):
        """Main consumption loop."""
        while self.running:
            try:
                await self._poll_and_process()

            except KafkaError as e:
                self.logger.error("Kafka error in consume loop", group_id=self.group_id, error=str(e))
                await asyncio.sleep(5)  # Back off on errors

            except asyncio.CancelledError:
                break

            except Exception as e:
                self.logger.error("Unexpected error in consume loop", group_id=self.group_id, error=str(e))
                await asyncio.sleep(1)

    async def _poll_and_process(self) -> int:
        """Poll once and handle the batch. Returns the number of committed records."""
        if not self.consumer:
            raise PipelineException("KAFKA_CONSUMER_NOT_STARTED", "Consumer not started")

        await self._resume_due_partitions()

        message_batch = await self._call_consumer(self.consumer.poll, timeout_ms=self.poll_timeout_ms)

        if not message_batch or not isinstance(message_batch, dict):
            return 0

        results = await asyncio.gather(*(
            self._process_partition(topic_partition, messages)
            for topic_partition, messages in message_batch.items()
        ))
        return sum(results)

    async def _process_partition(self, topic_partition: TopicPartition, messages: List[Any]) -> int:
        """Handle one partition's records in offset order."""
        committed = 0

        for message in messages:
            if not self.running:
                # Uncommitted records go to whoever owns the partition next
                break

            record = ConsumedRecord(
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                key=message.key,
                value=message.value,
                timestamp=message.timestamp,
                headers=dict(message.headers) if message.headers else None
            )

            self.logger.info(
                "Message received",
                group_id=self.group_id,
                partition=record.partition,
                offset=record.offset
            )

            try:
                await self.handler(record)
            except Exception as e:
                self.logger.warning(
                    "Processing failed, message left for redelivery",
                    group_id=self.group_id,
                    partition=record.partition,
                    offset=record.offset,
                    error=str(e)
                )
                if self.metrics:
                    self.metrics.increment_counter("redeliveries_total", group=self.group_id)
                await self._call_consumer(self.consumer.seek, topic_partition, record.offset)
                await self._pause(topic_partition)
                break
            finally:
                clear_context()

            if not await self._commit(topic_partition, record.offset):
                if topic_partition in self.assigned_partitions:
                    # Still owned: fetch the rest of the batch again
                    await self._call_consumer(self.consumer.seek, topic_partition, record.offset + 1)
                break
            committed += 1

        return committed

    async def _pause(self, topic_partition: TopicPartition):
        """Hold back one partition for the redelivery backoff."""
        loop = asyncio.get_running_loop()
        self.paused_partitions[topic_partition] = loop.time() + self.redelivery_backoff_seconds
        await self._call_consumer(self.consumer.pause, topic_partition)

    async def _resume_due_partitions(self):
        if not self.paused_partitions:
            return

        now = asyncio.get_running_loop().time()
        due = [tp for tp, resume_at in self.paused_partitions.items() if resume_at <= now]
        if not due:
            return

        for tp in due:
            del self.paused_partitions[tp]
        await self._call_consumer(self.consumer.resume, *due)
        self.logger.debug(
            "Partitions resumed",
            group_id=self.group_id,
            partitions=sorted(tp.partition for tp in due)
        )

    async def _commit(self, topic_partition: TopicPartition, offset: int) -> bool:
        """Commit past offset. False when the commit did not go through."""
        try:
            await self._call_consumer(
                self.consumer.commit,
                {topic_partition: OffsetAndMetadata(offset + 1, "", -1)}
            )
        except KafkaError as e:
            self.logger.warning(
                "Offset commit failed, message will be redelivered",
                group_id=self.group_id,
                partition=topic_partition.partition,
                offset=offset,
                error=str(e)
            )
            return False

        if self.metrics:
            self.metrics.increment_counter("messages_acknowledged_total", group=self.group_id)

        self.logger.debug(
            "Message acknowledged",
            state=MessageState.ACKNOWLEDGED.value,
            group_id=self.group_id,
            partition=topic_partition.partition,
            offset=offset
        )
        return True

    def get_assigned_partitions(self) -> List[int]:
        """Partition numbers currently owned."""
        return sorted(tp.partition for tp in self.assigned_partitions)

    def is_running(self) -> bool:
        """Check if consumer is running."""
        return self.running
