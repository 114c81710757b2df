"""
Unit tests for topic bootstrap and the simulated delivery provider.
"""

import pytest
from unittest.mock import MagicMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from kafka.errors import TopicAlreadyExistsError

from service_notifications.app.delivery.dispatcher import SimulatedNotificationDispatcher
from service_notifications.app.events.models import NotificationEvent
from service_notifications.app.kafka.topics import ensure_topics
from shared.errors import PipelineException


class TestEnsureTopics:
    """Test cases for ensure_topics."""

    def test_creates_missing_topics(self):
        with patch('service_notifications.app.kafka.topics.KafkaAdminClient') as mock_admin_class:
            admin = MagicMock()
            admin.list_topics.return_value = ["notifications"]
            mock_admin_class.return_value = admin

            status = ensure_topics("localhost:9092", {"notifications": 3, "notifications.DLT": 1})

            assert status == {"notifications": "exists", "notifications.DLT": "created"}
            new_topic = admin.create_topics.call_args.args[0][0]
            assert new_topic.name == "notifications.DLT"
            assert new_topic.num_partitions == 1
            admin.close.assert_called_once()

    def test_concurrent_creation_counts_as_existing(self):
        with patch('service_notifications.app.kafka.topics.KafkaAdminClient') as mock_admin_class:
            admin = MagicMock()
            admin.list_topics.return_value = []
            admin.create_topics.side_effect = TopicAlreadyExistsError()
            mock_admin_class.return_value = admin

            status = ensure_topics("localhost:9092", {"notifications": 3})

            assert status == {"notifications": "exists"}

    def test_admin_connection_failure(self):
        with patch('service_notifications.app.kafka.topics.KafkaAdminClient') as mock_admin_class:
            mock_admin_class.side_effect = Exception("NoBrokersAvailable")

            with pytest.raises(PipelineException) as exc_info:
                ensure_topics("localhost:9092", {"notifications": 3})

            assert exc_info.value.code == "KAFKA_ADMIN_START_FAILED"


class TestSimulatedNotificationDispatcher:
    """Test cases for SimulatedNotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_deliver_waits_for_latency(self):
        dispatcher = SimulatedNotificationDispatcher(latency_ms=20)
        event = NotificationEvent(entity_id="u1", kind="order", payload="shipped")

        with patch('service_notifications.app.delivery.dispatcher.asyncio.sleep') as mock_sleep:
            await dispatcher.deliver(event)

            mock_sleep.assert_awaited_once_with(0.02)
