"""
Notifications module - outbox and after-commit dispatch.

Mutating operations collect NotificationEvent descriptors in a
NotificationOutbox while their transaction is open, then call
``outbox.dispatch()`` after commit. Dispatch never raises.
"""

from app.modules.notifications.outbox import NotificationEvent, NotificationOutbox

__all__ = ["NotificationEvent", "NotificationOutbox"]
