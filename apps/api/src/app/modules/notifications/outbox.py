"""
Notification outbox.

Usage inside a mutating operation:

    outbox = NotificationOutbox()
    ... mutate state ...
    outbox.notify_role(org_id, UserRole.DEBTOR_OFFICER, "fee_pending", title, message)
    await db.commit()
    await outbox.dispatch()

Events are only delivered when ``dispatch`` is called, so nothing is sent
for a transaction that rolled back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from app.modules.notifications.models import NotificationPriority
from app.modules.notifications.service import deliver_events
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)


@dataclass
class NotificationEvent:
    """
    Descriptor of a notification to deliver after commit.

    Exactly one of ``user_id`` or ``role`` addresses the event. Role events
    reach every active holder of the role in ``organization_id``.
    """

    organization_id: UUID
    type: str
    title: str
    message: str
    user_id: UUID | None = None
    role: UserRole | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    data: dict[str, Any] = field(default_factory=dict)
    action_url: str | None = None
    send_email: bool = False

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.role is None):
            raise ValueError("NotificationEvent needs exactly one of user_id or role")


class NotificationOutbox:
    """Side list of events collected during a unit of work."""

    def __init__(self) -> None:
        self._events: list[NotificationEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> list[NotificationEvent]:
        return list(self._events)

    def add(self, event: NotificationEvent) -> None:
        self._events.append(event)

    def notify_user(
        self,
        organization_id: UUID,
        user_id: UUID,
        type: str,
        title: str,
        message: str,
        **kwargs: Any,
    ) -> None:
        self.add(
            NotificationEvent(
                organization_id=organization_id,
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                **kwargs,
            )
        )

    def notify_role(
        self,
        organization_id: UUID,
        role: UserRole,
        type: str,
        title: str,
        message: str,
        **kwargs: Any,
    ) -> None:
        self.add(
            NotificationEvent(
                organization_id=organization_id,
                role=role,
                type=type,
                title=title,
                message=message,
                **kwargs,
            )
        )

    def clear(self) -> None:
        """Drop collected events, e.g. after the unit of work rolled back."""
        self._events.clear()

    async def dispatch(self) -> int:
        """
        Deliver and drain collected events.

        Failures are logged and never raised to the caller.

        Returns:
            Number of notifications delivered
        """
        if not self._events:
            return 0

        events, self._events = self._events, []
        try:
            return await deliver_events(events)
        except Exception as e:
            logger.error(
                f"Notification dispatch failed for {len(events)} event(s): {e}",
                exc_info=True,
            )
            return 0
