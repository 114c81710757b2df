"""
Topic bootstrap for the Notification service.
"""

from typing import Dict

from kafka.admin import KafkaAdminClient, NewTopic
from kafka.errors import TopicAlreadyExistsError

from shared.logging import get_logger
from shared.errors import PipelineException


def ensure_topics(bootstrap_servers: str, partitions_by_topic: Dict[str, int], replication_factor: int = 1) -> Dict[str, str]:
    """Create missing topics. Returns topic -> "created" | "exists"."""
    logger = get_logger("notifications.kafka.topics")

    try:
        admin = KafkaAdminClient(bootstrap_servers=bootstrap_servers, client_id="notification-topic-bootstrap")
    except Exception as e:
        logger.error("Failed to connect Kafka admin client", error=str(e))
        raise PipelineException("KAFKA_ADMIN_START_FAILED", str(e))

    status: Dict[str, str] = {}
    try:
        existing = set(admin.list_topics())
        for topic, partitions in partitions_by_topic.items():
            if topic in existing:
                status[topic] = "exists"
                continue
            try:
                admin.create_topics(
                    [NewTopic(name=topic, num_partitions=partitions, replication_factor=replication_factor)]
                )
                status[topic] = "created"
                logger.info("Topic created", topic=topic, partitions=partitions)
            except TopicAlreadyExistsError:
                status[topic] = "exists"
    finally:
        admin.close()

    return status
