"""
Notification Service

Delivers outbox events: resolves recipients (role holders are read at send
time), stores Notification rows, and sends optional email copies.

Each event is delivered in its own transaction; one failing event does not
prevent the rest from being delivered.
"""

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from app.core.database import async_session_maker
from app.core.email import send_notification_email
from app.modules.notifications import repository
from app.modules.notifications.models import Notification
from app.modules.users.repository import UserRepository

if TYPE_CHECKING:
    from app.modules.notifications.outbox import NotificationEvent

logger = logging.getLogger(__name__)


async def _resolve_recipients(db, event: "NotificationEvent") -> list[UUID]:
    if event.user_id is not None:
        return [event.user_id]
    return await UserRepository.get_user_ids_with_role(db, event.organization_id, event.role)


async def deliver_events(events: list["NotificationEvent"]) -> int:
    """
    Deliver a batch of events.

    Returns:
        Total number of notification rows stored
    """
    delivered = 0

    for event in events:
        try:
            async with async_session_maker() as db:
                recipients = await _resolve_recipients(db, event)
                if not recipients:
                    logger.info(
                        f"No recipients for '{event.type}' notification in "
                        f"organization {event.organization_id}"
                    )
                    continue

                rows = [
                    Notification(
                        organization_id=event.organization_id,
                        user_id=user_id,
                        type=event.type,
                        priority=event.priority,
                        title=event.title,
                        message=event.message,
                        data=event.data,
                        action_url=event.action_url,
                    )
                    for user_id in recipients
                ]
                delivered += await repository.create_many(db, rows)
                await db.commit()

                emails = await UserRepository.get_emails(db, recipients) if event.send_email else {}

            for email in emails.values():
                await send_notification_email(email, event.title, event.message, event.action_url)

        except Exception as e:
            logger.error(
                f"Failed to deliver '{event.type}' notification for organization "
                f"{event.organization_id}: {e}",
                exc_info=True,
            )

    logger.info(f"Delivered {delivered} notification(s) for {len(events)} event(s)")
    return delivered
