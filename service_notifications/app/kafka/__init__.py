"""
Kafka integration: key routing, producer, consumer loop and topic bootstrap.
"""
