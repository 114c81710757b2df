"""
Per-message processing for the primary and dead-letter consumer groups.

Processors never commit offsets themselves; they return when the side
effect is complete and raise when the message must be redelivered.
"""
