"""
Notification Repository
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.notifications.models import Notification


async def create_many(db: AsyncSession, notifications: list[Notification]) -> int:
    """Stage notification rows and flush them. Returns the number added."""
    if not notifications:
        return 0
    db.add_all(notifications)
    await db.flush()
    return len(notifications)
