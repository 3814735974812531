"""Notification service — in-app notices and the pre-reset notification sink."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_rules.common.constants import NotificationType
from hr_rules.leave.schemas import LeavePolicyConfig
from hr_rules.notifications.models import Notification
from hr_rules.notifications.schemas import NotificationOut

logger = logging.getLogger(__name__)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            is_read=False,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        recipient_id: uuid.UUID,
        *,
        unread_only: bool = False,
    ) -> list[NotificationOut]:
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        result = await db.execute(query.order_by(Notification.created_at.desc()))
        return [NotificationOut.model_validate(n) for n in result.scalars().all()]


# ── Pre-reset notification sink ─────────────────────────────────────
# The accrual engine decides *whether* to notify; a sink decides *how*.


class NotificationSink(Protocol):
    async def notify(
        self,
        employee_id: uuid.UUID,
        policy: LeavePolicyConfig,
        balance: Decimal,
        reset_date: date,
    ) -> None: ...


async def notify_balance_reset(
    db: AsyncSession,
    employee_id: uuid.UUID,
    policy: LeavePolicyConfig,
    balance: Decimal,
    reset_date: date,
) -> Notification:
    """Warn an employee that unused leave will be reset on ``reset_date``."""
    return await NotificationService.create_notification(
        db,
        recipient_id=employee_id,
        type=NotificationType.reminder,
        title=f"{policy.name} Balance Reset",
        message=(
            f"You have {balance} day(s) of {policy.name} remaining. "
            f"Unused leave beyond the carry-forward limit will be reset on "
            f"{reset_date.isoformat()}."
        ),
        entity_type="leave_policy",
        entity_id=policy.id,
    )


class DatabaseNotificationSink:
    """Records each notice as an in-app Notification in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def notify(
        self,
        employee_id: uuid.UUID,
        policy: LeavePolicyConfig,
        balance: Decimal,
        reset_date: date,
    ) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                await notify_balance_reset(db, employee_id, policy, balance, reset_date)
        logger.info(
            "Pre-reset notice sent to employee %s for %s (reset %s)",
            employee_id, policy.code, reset_date,
        )
