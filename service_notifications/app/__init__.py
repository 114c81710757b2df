"""
Notification Service package.

Publishes notification events keyed by user, consumes them under a
per-user sliding-window quota and diverts over-quota events to a
dead-letter topic. Key modules include:

- app.main: FastAPI app, inbound endpoints and component wiring
- app.events: Event model and wire codec
- app.limiter: Sliding-window limiter and its sorted-set store
- app.kafka: Partition routing, producer, manual-commit consumer, topic bootstrap
- app.pipeline: Per-message protocols for the primary and dead-letter groups
- app.delivery: Downstream delivery provider
"""
