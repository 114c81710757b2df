"""
Notification event model and its JSON wire codec.
"""
