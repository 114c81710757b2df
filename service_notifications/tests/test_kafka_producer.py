"""
Unit tests for the notification Kafka producer.
"""

import pytest
from unittest.mock import patch, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import CollectorRegistry

from service_notifications.app.events.models import NotificationEvent, decode_event
from service_notifications.app.kafka.producer import KafkaProducerManager
from service_notifications.app.kafka.router import PartitionRouter
from shared.errors import PipelineException, PublishError, ValidationError
from shared.metrics import MetricsCollector


class TestKafkaProducerManager:
    """Test cases for KafkaProducerManager."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def producer_manager(self, registry):
        """Create KafkaProducerManager instance."""
        return KafkaProducerManager(
            "localhost:9092",
            "notifications",
            metrics=MetricsCollector("notifications", registry)
        )

    @pytest.fixture
    def mock_producer(self):
        """Mock kafka-python producer with three partitions."""
        producer = MagicMock()
        producer.partitions_for.return_value = {0, 1, 2}
        metadata = MagicMock()
        metadata.partition = 1
        metadata.offset = 42
        producer.send.return_value.get.return_value = metadata
        return producer

    @pytest.fixture
    def started(self, producer_manager, mock_producer):
        producer_manager.producer = mock_producer
        return producer_manager

    @pytest.mark.asyncio
    async def test_start_success(self, producer_manager):
        """Test successful producer start."""
        with patch('service_notifications.app.kafka.producer.KafkaProducer') as mock_producer_class:
            await producer_manager.start()

            assert producer_manager.is_running() is True
            kwargs = mock_producer_class.call_args.kwargs
            assert kwargs["bootstrap_servers"] == "localhost:9092"
            assert kwargs["acks"] == "all"
            assert kwargs["retries"] == 0
            assert kwargs["key_serializer"]("u1") == b"u1"
            assert kwargs["key_serializer"](b"\xffu1") == b"\xffu1"
            assert kwargs["key_serializer"](None) is None

    @pytest.mark.asyncio
    async def test_start_failure(self, producer_manager):
        """Test producer start failure."""
        with patch('service_notifications.app.kafka.producer.KafkaProducer') as mock_producer_class:
            mock_producer_class.side_effect = Exception("Connection failed")

            with pytest.raises(PipelineException) as exc_info:
                await producer_manager.start()

            assert exc_info.value.code == "KAFKA_PRODUCER_START_FAILED"
            assert producer_manager.is_running() is False

    @pytest.mark.asyncio
    async def test_stop_flushes_and_closes(self, started, mock_producer):
        await started.stop()

        mock_producer.flush.assert_called_once()
        mock_producer.close.assert_called_once()
        assert started.is_running() is False

    @pytest.mark.asyncio
    async def test_send_requires_start(self, producer_manager):
        with pytest.raises(PipelineException) as exc_info:
            await producer_manager.send_record("notifications", "u1", b"{}")

        assert exc_info.value.code == "KAFKA_PRODUCER_NOT_STARTED"

    @pytest.mark.asyncio
    async def test_publish_routes_by_entity_id(self, started, mock_producer):
        """Records go to the partition chosen from the user id."""
        event = NotificationEvent(entity_id="u1", kind="order", payload="shipped")

        result = await started.publish(event)

        call = mock_producer.send.call_args
        assert call.args[0] == "notifications"
        assert call.kwargs["key"] == "u1"
        assert call.kwargs["partition"] == PartitionRouter.route("u1", 3)
        assert decode_event(call.kwargs["value"]) == event
        assert result.topic == "notifications"
        assert result.partition == 1
        assert result.offset == 42

    @pytest.mark.asyncio
    async def test_publish_rejects_empty_entity_id(self, started, mock_producer):
        event = NotificationEvent.model_construct(entity_id="", kind="order", payload="")

        with pytest.raises(ValidationError):
            await started.publish(event)

        mock_producer.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_record_encodes_headers(self, started, mock_producer):
        await started.send_record(
            "notifications.DLT",
            "u1",
            b"{}",
            {"x-dead-letter-reason": "rate_limited"}
        )

        headers = mock_producer.send.call_args.kwargs["headers"]
        assert headers == [("x-dead-letter-reason", b"rate_limited")]

    @pytest.mark.asyncio
    async def test_send_record_without_key_lets_client_pick_partition(self, started, mock_producer):
        await started.send_record("notifications.DLT", None, b"\xff")

        assert mock_producer.send.call_args.kwargs["partition"] is None
        mock_producer.partitions_for.assert_not_called()

    @pytest.mark.asyncio
    async def test_broker_failure_raises_publish_error(self, started, mock_producer, registry):
        """A failed acknowledgement surfaces as PublishError."""
        mock_producer.send.return_value.get.side_effect = Exception("NotEnoughReplicas")

        with pytest.raises(PublishError) as exc_info:
            await started.send_record("notifications", "u1", b"{}")

        assert exc_info.value.topic == "notifications"
        assert registry.get_sample_value("publish_failures_total", {"topic": "notifications"}) == 1
        assert registry.get_sample_value("events_published_total", {"topic": "notifications"}) is None

    @pytest.mark.asyncio
    async def test_missing_partitions_raise_publish_error(self, started, mock_producer):
        mock_producer.partitions_for.return_value = None

        with pytest.raises(PublishError):
            await started.send_record("notifications", "u1", b"{}")

        mock_producer.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_is_counted(self, started, registry):
        await started.send_record("notifications", "u1", b"{}")
        await started.send_record("notifications", "u2", b"{}")

        assert registry.get_sample_value("events_published_total", {"topic": "notifications"}) == 2

    @pytest.mark.asyncio
    async def test_send_record_keeps_bytes_key(self, started, mock_producer):
        raw_key = b"\xffu1"

        await started.send_record("notifications.DLT", raw_key, b"\xff")

        call = mock_producer.send.call_args
        assert call.kwargs["key"] == raw_key
        assert call.kwargs["partition"] == PartitionRouter.route(raw_key, 3)
