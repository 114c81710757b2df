"""
Notification pipeline service.
"""
