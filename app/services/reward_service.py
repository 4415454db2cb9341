"""
Reward Service
==============

Reward inventory, distribution history and automatic distribution of
trophies and badges when competitions and seasons end.

Competition placements:
    1st      GOLD TROPHY (EPIC)
    2nd      SILVER TROPHY (RARE)
    3rd      BRONZE TROPHY (UNCOMMON)
    4th-5th  BRONZE BADGE (COMMON), "Top 5"
    others   BRONZE BADGE (COMMON), participation

Seasons award the top 10% by points (at least one participant) a
PLATINUM LEGENDARY champion trophy.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorCodes, ForbiddenError, NotFoundError, ValidationError
from app.models.reward import (
    Competition,
    CompetitionStatus,
    DistributionStatus,
    Rarity,
    Reward,
    RewardDistribution,
    RewardInventory,
    RewardSourceType,
    RewardTier,
    RewardType,
    Season,
    SeasonStatus,
)
from app.models.user import User
from app.utils.helpers import isoformat_or_none, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardSpec:
    suffix: str
    type: RewardType
    tier: RewardTier
    rarity: Rarity


PLACEMENT_REWARDS = {
    1: RewardSpec("Gold Trophy", RewardType.TROPHY, RewardTier.GOLD, Rarity.EPIC),
    2: RewardSpec("Silver Trophy", RewardType.TROPHY, RewardTier.SILVER, Rarity.RARE),
    3: RewardSpec("Bronze Trophy", RewardType.TROPHY, RewardTier.BRONZE, Rarity.UNCOMMON),
}
TOP_FIVE_REWARD = RewardSpec("Top 5 Badge", RewardType.BADGE, RewardTier.BRONZE, Rarity.COMMON)
PARTICIPATION_REWARD = RewardSpec(
    "Participant Badge", RewardType.BADGE, RewardTier.BRONZE, Rarity.COMMON
)
SEASON_CHAMPION_REWARD = RewardSpec(
    "Season Champion", RewardType.TROPHY, RewardTier.PLATINUM, Rarity.LEGENDARY
)
SEASON_CHAMPION_SHARE = 0.1


def ordinal(n: int) -> str:
    """1 -> "1st", 12 -> "12th", 22 -> "22nd"."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def competition_reward_for_rank(rank: int) -> tuple[RewardSpec, str]:
    """Reward spec and reason template for a final placement."""
    if rank in PLACEMENT_REWARDS:
        return PLACEMENT_REWARDS[rank], f"{ordinal(rank)} place in {{name}}"
    if rank <= 5:
        return TOP_FIVE_REWARD, f"{ordinal(rank)} place (Top 5) in {{name}}"
    return PARTICIPATION_REWARD, "Participated in {name}"


def season_champion_count(participants: int) -> int:
    if participants == 0:
        return 0
    return max(1, int(participants * SEASON_CHAMPION_SHARE))


def serialize_inventory_item(item: RewardInventory) -> dict[str, Any]:
    reward = item.reward
    return {
        "id": str(item.inventory_id),
        "rewardId": str(item.reward_id),
        "name": reward.name,
        "description": reward.description,
        "type": reward.type.value,
        "tier": reward.tier.value,
        "rarity": reward.rarity.value,
        "icon": reward.icon,
        "quantity": item.quantity,
        "isActive": item.is_active,
        "isDisplayed": item.is_displayed,
        "displayOrder": item.display_order,
        "category": item.category,
        "firstObtainedAt": isoformat_or_none(item.first_obtained_at),
        "lastObtainedAt": isoformat_or_none(item.last_obtained_at),
    }


def inventory_stats(items: list[RewardInventory]) -> dict[str, Any]:
    """Counts weighted by quantity."""
    by_tier: dict[str, int] = defaultdict(int)
    by_type: dict[str, int] = defaultdict(int)
    by_rarity: dict[str, int] = defaultdict(int)
    for item in items:
        by_tier[item.reward.tier.value] += item.quantity
        by_type[item.reward.type.value] += item.quantity
        by_rarity[item.reward.rarity.value] += item.quantity

    return {
        "total": sum(i.quantity for i in items),
        "active": sum(i.quantity for i in items if i.is_active),
        "displayed": sum(i.quantity for i in items if i.is_displayed),
        "byTier": dict(by_tier),
        "byType": dict(by_type),
        "byRarity": dict(by_rarity),
    }


class RewardService:
    """Reward inventory and distribution."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def get_inventory(
        self,
        user_id: uuid.UUID,
        is_active: Optional[bool] = None,
        is_displayed: Optional[bool] = None,
        category: Optional[str] = None,
        reward_type: Optional[RewardType] = None,
        reward_tier: Optional[RewardTier] = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        stmt = (
            select(RewardInventory)
            .join(Reward, Reward.reward_id == RewardInventory.reward_id)
            .where(RewardInventory.user_id == user_id)
        )
        if is_active is not None:
            stmt = stmt.where(RewardInventory.is_active.is_(is_active))
        if is_displayed is not None:
            stmt = stmt.where(RewardInventory.is_displayed.is_(is_displayed))
        if category:
            stmt = stmt.where(RewardInventory.category == category)
        if reward_type:
            stmt = stmt.where(Reward.type == reward_type)
        if reward_tier:
            stmt = stmt.where(Reward.tier == reward_tier)

        result = await self.db.execute(
            stmt.order_by(
                RewardInventory.display_order.asc(),
                RewardInventory.first_obtained_at.desc(),
            ).limit(limit)
        )
        items = list(result.scalars().all())

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        serialized = []
        for item in items:
            entry = serialize_inventory_item(item)
            serialized.append(entry)
            grouped[item.category or "uncategorized"].append(entry)

        return {
            "items": serialized,
            "grouped": dict(grouped),
            "stats": inventory_stats(items),
        }

    async def update_inventory_item(
        self,
        user: User,
        inventory_id: uuid.UUID,
        is_displayed: Optional[bool] = None,
        display_order: Optional[int] = None,
        category: Optional[str] = None,
    ) -> RewardInventory:
        result = await self.db.execute(
            select(RewardInventory).where(RewardInventory.inventory_id == inventory_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(code=ErrorCodes.REWARD_NOT_FOUND, message="Inventory item not found")
        if item.user_id != user.user_id:
            raise ForbiddenError(message="Not allowed to modify this inventory item")

        if is_displayed is not None:
            item.is_displayed = is_displayed
        if display_order is not None:
            item.display_order = display_order
        if category is not None:
            item.category = category

        await self.db.flush()
        return item

    async def get_history(self, user_id: uuid.UUID) -> dict[str, Any]:
        result = await self.db.execute(
            select(RewardDistribution)
            .where(RewardDistribution.user_id == user_id)
            .order_by(RewardDistribution.created_at.desc())
        )
        distributions = list(result.scalars().all())

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for d in distributions:
            grouped[d.source_type.value].append({
                "id": str(d.distribution_id),
                "rewardName": d.reward.name,
                "tier": d.reward.tier.value,
                "type": d.reward.type.value,
                "rarity": d.reward.rarity.value,
                "sourceId": str(d.source_id) if d.source_id else None,
                "reason": d.reason,
                "status": d.status.value,
                "distributedAt": isoformat_or_none(d.distributed_at),
            })

        return {"history": dict(grouped), "total": len(distributions)}

    # -------------------------------------------------------------------------
    # Distribution
    # -------------------------------------------------------------------------

    async def ensure_reward(self, name: str, spec: RewardSpec) -> Reward:
        """Fetch a reward by name, creating it on first use."""
        result = await self.db.execute(select(Reward).where(Reward.name == name))
        reward = result.scalar_one_or_none()
        if reward is None:
            reward = Reward(
                name=name,
                description=name,
                type=spec.type,
                tier=spec.tier,
                rarity=spec.rarity,
                is_active=True,
            )
            self.db.add(reward)
            await self.db.flush()
            logger.info("Created reward %r", name)
        return reward

    async def grant(
        self,
        reward: Reward,
        user_id: uuid.UUID,
        source_type: RewardSourceType,
        source_id: Optional[uuid.UUID],
        reason: str,
    ) -> None:
        """Record the distribution and add one to the user's inventory."""
        now = utc_now()
        self.db.add(RewardDistribution(
            reward_id=reward.reward_id,
            user_id=user_id,
            source_type=source_type,
            source_id=source_id,
            reason=reason,
            status=DistributionStatus.DISTRIBUTED,
            distributed_at=now,
        ))

        result = await self.db.execute(
            select(RewardInventory)
            .where(
                RewardInventory.user_id == user_id,
                RewardInventory.reward_id == reward.reward_id,
            )
            .with_for_update()
        )
        item = result.scalar_one_or_none()
        if item is None:
            self.db.add(RewardInventory(
                user_id=user_id,
                reward_id=reward.reward_id,
                quantity=1,
                first_obtained_at=now,
                last_obtained_at=now,
            ))
        else:
            item.quantity += 1
            item.last_obtained_at = now
        await self.db.flush()

    async def _distribute(
        self,
        plan: list[tuple[uuid.UUID, str, RewardSpec, str]],
        source_type: RewardSourceType,
        source_id: uuid.UUID,
        dry_run: bool,
    ) -> list[dict[str, Any]]:
        distributions = []
        for user_id, reward_name, spec, reason in plan:
            if not dry_run:
                reward = await self.ensure_reward(reward_name, spec)
                await self.grant(reward, user_id, source_type, source_id, reason)
            distributions.append({
                "userId": str(user_id),
                "rewardName": reward_name,
                "tier": spec.tier.value,
                "type": spec.type.value,
                "rarity": spec.rarity.value,
                "reason": reason,
            })
        return distributions

    async def distribute_competition(
        self,
        competition_id: Optional[uuid.UUID],
        dry_run: bool = False,
    ) -> list[dict[str, Any]]:
        if competition_id is None:
            raise ValidationError(message="competition_id is required", field="competition_id")

        result = await self.db.execute(
            select(Competition).where(Competition.competition_id == competition_id)
        )
        competition = result.scalar_one_or_none()
        if competition is None:
            raise NotFoundError(code=ErrorCodes.COMPETITION_NOT_FOUND, message="Competition not found")
        if competition.status != CompetitionStatus.COMPLETED:
            raise ValidationError(
                message="Competition must be completed before distributing rewards",
                code=ErrorCodes.REWARD_EVENT_INVALID,
            )

        ranked = sorted(
            (p for p in competition.participants if p.rank is not None),
            key=lambda p: p.rank,
        )
        plan = []
        for participant in ranked:
            spec, reason = competition_reward_for_rank(participant.rank)
            plan.append((
                participant.user_id,
                f"{competition.category} {spec.suffix}",
                spec,
                reason.format(name=competition.name),
            ))

        return await self._distribute(
            plan, RewardSourceType.COMPETITION, competition.competition_id, dry_run
        )

    async def distribute_season(
        self,
        season_id: Optional[uuid.UUID],
        dry_run: bool = False,
    ) -> list[dict[str, Any]]:
        if season_id is None:
            raise ValidationError(message="season_id is required", field="season_id")

        result = await self.db.execute(select(Season).where(Season.season_id == season_id))
        season = result.scalar_one_or_none()
        if season is None:
            raise NotFoundError(code=ErrorCodes.SEASON_NOT_FOUND, message="Season not found")
        if season.status != SeasonStatus.COMPLETED:
            raise ValidationError(
                message="Season must be completed before distributing rewards",
                code=ErrorCodes.REWARD_EVENT_INVALID,
            )

        participants = sorted(season.participants, key=lambda p: p.points, reverse=True)
        champions = participants[:season_champion_count(len(participants))]
        reward_name = f"{season.type.value} {SEASON_CHAMPION_REWARD.suffix}"

        plan = [
            (p.user_id, reward_name, SEASON_CHAMPION_REWARD, f"{season.name} Champion")
            for p in champions
        ]
        return await self._distribute(plan, RewardSourceType.SEASON, season.season_id, dry_run)

    async def auto_distribute(
        self,
        user: User,
        event_type: str,
        competition_id: Optional[uuid.UUID] = None,
        season_id: Optional[uuid.UUID] = None,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        if not user.is_admin:
            raise ForbiddenError(message="Admin access required")

        if event_type == "COMPETITION_END":
            distributions = await self.distribute_competition(competition_id, dry_run)
        elif event_type == "SEASON_END":
            distributions = await self.distribute_season(season_id, dry_run)
        else:
            distributions = []

        logger.info(
            "Auto-distribution %s (dry_run=%s): %d rewards",
            event_type,
            dry_run,
            len(distributions),
        )
        return {
            "eventType": event_type,
            "dryRun": dry_run,
            "distributions": distributions,
            "count": len(distributions),
        }
