"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notification_sink import NotificationSink
from .log_sink import LogNotificationSink

__all__ = ['NotificationSink', 'LogNotificationSink']
