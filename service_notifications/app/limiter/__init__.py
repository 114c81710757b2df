"""
Rate limiting package for the Notification service.

Holds the sliding-window limiter and the sorted-set store it runs
against. Limiter state lives entirely in the store so any consumer
instance can pick up a user's traffic after a rebalance.
"""
