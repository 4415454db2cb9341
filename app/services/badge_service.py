"""
Badge Service
=============

Badge definitions and the badges fishers have earned.
"""

import logging
from collections import defaultdict
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, ErrorCodes, NotFoundError
from app.models.reward import BadgeCategory, BadgeDefinition, FisherBadge
from app.models.user import User
from app.schemas.reward import BadgeCreate
from app.utils.helpers import isoformat_or_none, utc_now

logger = logging.getLogger(__name__)


def serialize_badge(badge: BadgeDefinition) -> dict[str, Any]:
    return {
        "id": str(badge.badge_id),
        "name": badge.name,
        "description": badge.description,
        "icon": badge.icon,
        "category": badge.category.value,
        "rarity": badge.rarity.value,
        "requiredValue": badge.required_value,
    }


def serialize_earned(earned: FisherBadge) -> dict[str, Any]:
    return {
        **serialize_badge(earned.badge),
        "earnedAt": isoformat_or_none(earned.earned_at),
    }


class BadgeService:
    """Badge definitions and awards."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_badge(self, data: BadgeCreate) -> BadgeDefinition:
        existing = await self.db.execute(
            select(BadgeDefinition.badge_id).where(BadgeDefinition.name == data.name)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                code=ErrorCodes.BADGE_EXISTS,
                message=f"Badge '{data.name}' already exists",
            )

        badge = BadgeDefinition(**data.model_dump())
        self.db.add(badge)
        await self.db.flush()
        logger.info("Badge %r created", badge.name)
        return badge

    async def get_user_badges(
        self,
        user_id: uuid.UUID,
        category: Optional[BadgeCategory] = None,
    ) -> dict[str, Any]:
        stmt = (
            select(FisherBadge)
            .join(BadgeDefinition, BadgeDefinition.badge_id == FisherBadge.badge_id)
            .where(FisherBadge.user_id == user_id)
        )
        if category:
            stmt = stmt.where(BadgeDefinition.category == category)

        result = await self.db.execute(stmt.order_by(FisherBadge.earned_at.desc()))
        earned = list(result.scalars().all())

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        by_rarity: dict[str, int] = defaultdict(int)
        serialized = []
        for item in earned:
            entry = serialize_earned(item)
            serialized.append(entry)
            grouped[item.badge.category.value].append(entry)
            by_rarity[item.badge.rarity.value] += 1

        return {
            "badges": serialized,
            "grouped": dict(grouped),
            "stats": {
                "total": len(earned),
                "byCategory": {key: len(value) for key, value in grouped.items()},
                "byRarity": dict(by_rarity),
                "latest": serialized[0] if serialized else None,
            },
        }

    async def award_badge(self, user_id: uuid.UUID, badge_id: uuid.UUID) -> FisherBadge:
        badge = await self.db.get(BadgeDefinition, badge_id)
        if badge is None:
            raise NotFoundError(code=ErrorCodes.NOT_FOUND, message="Badge not found")

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(code=ErrorCodes.USER_NOT_FOUND, message="User not found")

        existing = await self.db.execute(
            select(FisherBadge.fisher_badge_id).where(
                FisherBadge.user_id == user_id,
                FisherBadge.badge_id == badge_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                code=ErrorCodes.BADGE_ALREADY_EARNED,
                message="User already has this badge",
            )

        earned = FisherBadge(user_id=user_id, badge_id=badge_id, earned_at=utc_now())
        earned.badge = badge
        self.db.add(earned)
        await self.db.flush()

        logger.info("Badge %s awarded to %s", badge.name, user_id)
        return earned
