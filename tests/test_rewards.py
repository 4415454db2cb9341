"""
Reward Tests
============

Placement rules, inventory statistics, automatic distribution and badges.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.core.errors import ConflictError, ErrorCodes, ForbiddenError, NotFoundError, ValidationError
from app.models.reward import (
    BadgeCategory,
    BadgeDefinition,
    CompetitionStatus,
    FisherBadge,
    Rarity,
    RewardDistribution,
    RewardInventory,
    RewardTier,
    RewardType,
    SeasonStatus,
    SeasonType,
)
from app.schemas.reward import BadgeCreate
from app.services.badge_service import BadgeService
from app.services.reward_service import (
    PARTICIPATION_REWARD,
    TOP_FIVE_REWARD,
    RewardService,
    competition_reward_for_rank,
    inventory_stats,
    ordinal,
    season_champion_count,
)


def scalar(item):
    result = MagicMock()
    result.scalar_one_or_none.return_value = item
    return result


def inventory_item(tier, reward_type, rarity, quantity=1, is_active=True, is_displayed=False):
    return SimpleNamespace(
        reward=SimpleNamespace(tier=tier, type=reward_type, rarity=rarity),
        quantity=quantity,
        is_active=is_active,
        is_displayed=is_displayed,
    )


def competition(status=CompetitionStatus.COMPLETED, ranks=(1, 2, 3, 4, 6)):
    return SimpleNamespace(
        competition_id=uuid.uuid4(),
        name="Spring Pike Open",
        category="Pike",
        status=status,
        participants=[SimpleNamespace(user_id=uuid.uuid4(), rank=r) for r in ranks]
        + [SimpleNamespace(user_id=uuid.uuid4(), rank=None)],
    )


class TestPlacementRules:
    def test_ordinal(self):
        assert [ordinal(n) for n in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101)] == [
            "1st", "2nd", "3rd", "4th", "11th", "12th", "13th", "21st", "22nd", "101st",
        ]

    def test_podium(self):
        spec, reason = competition_reward_for_rank(1)
        assert spec.tier == RewardTier.GOLD
        assert spec.rarity == Rarity.EPIC
        assert reason.format(name="Cup") == "1st place in Cup"

        assert competition_reward_for_rank(3)[0].tier == RewardTier.BRONZE
        assert competition_reward_for_rank(3)[0].type == RewardType.TROPHY

    def test_top_five_and_participation(self):
        spec, reason = competition_reward_for_rank(4)
        assert spec == TOP_FIVE_REWARD
        assert reason.format(name="Cup") == "4th place (Top 5) in Cup"
        assert competition_reward_for_rank(6)[0] == PARTICIPATION_REWARD

    def test_season_champion_count(self):
        assert season_champion_count(0) == 0
        assert season_champion_count(5) == 1
        assert season_champion_count(25) == 2


class TestInventoryStats:
    def test_counts_are_weighted_by_quantity(self):
        items = [
            inventory_item(RewardTier.GOLD, RewardType.TROPHY, Rarity.EPIC, quantity=2, is_displayed=True),
            inventory_item(RewardTier.BRONZE, RewardType.BADGE, Rarity.COMMON, quantity=3, is_active=False),
        ]
        stats = inventory_stats(items)

        assert stats["total"] == 5
        assert stats["active"] == 2
        assert stats["displayed"] == 2
        assert stats["byTier"] == {"GOLD": 2, "BRONZE": 3}
        assert stats["byType"] == {"TROPHY": 2, "BADGE": 3}

    def test_empty_inventory(self):
        assert inventory_stats([])["total"] == 0


class TestDistribution:
    @pytest.mark.asyncio
    async def test_requires_admin(self, mock_db, captain):
        with pytest.raises(ForbiddenError):
            await RewardService(mock_db).auto_distribute(captain, "COMPETITION_END", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_competition_dry_run_plans_every_ranked_participant(self, mock_db, admin):
        event = competition()
        mock_db.execute.return_value = scalar(event)

        result = await RewardService(mock_db).auto_distribute(
            admin, "COMPETITION_END", competition_id=event.competition_id, dry_run=True,
        )

        assert result["count"] == 5
        names = [d["rewardName"] for d in result["distributions"]]
        assert names[0] == "Pike Gold Trophy"
        assert names[3] == "Pike Top 5 Badge"
        assert names[4] == "Pike Participant Badge"
        assert result["distributions"][4]["reason"] == "Participated in Spring Pike Open"
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unfinished_competition_is_rejected(self, mock_db, admin):
        mock_db.execute.return_value = scalar(competition(status=CompetitionStatus.ACTIVE))
        with pytest.raises(ValidationError) as exc_info:
            await RewardService(mock_db).auto_distribute(admin, "COMPETITION_END", uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.REWARD_EVENT_INVALID

    @pytest.mark.asyncio
    async def test_missing_competition_id(self, mock_db, admin):
        with pytest.raises(ValidationError):
            await RewardService(mock_db).auto_distribute(admin, "COMPETITION_END")

    @pytest.mark.asyncio
    async def test_season_rewards_top_ten_percent(self, mock_db, admin):
        participants = [SimpleNamespace(user_id=uuid.uuid4(), points=p) for p in range(25)]
        season = SimpleNamespace(
            season_id=uuid.uuid4(),
            name="Summer 2025",
            type=SeasonType.SUMMER,
            status=SeasonStatus.COMPLETED,
            participants=participants,
        )
        mock_db.execute.return_value = scalar(season)

        result = await RewardService(mock_db).auto_distribute(
            admin, "SEASON_END", season_id=season.season_id, dry_run=True,
        )

        assert result["count"] == 2
        assert [d["userId"] for d in result["distributions"]] == [
            str(participants[24].user_id), str(participants[23].user_id),
        ]
        assert result["distributions"][0]["rewardName"] == "SUMMER Season Champion"

    @pytest.mark.asyncio
    async def test_unknown_event_distributes_nothing(self, mock_db, admin):
        result = await RewardService(mock_db).auto_distribute(admin, "MILESTONE")
        assert result["count"] == 0

    @pytest.mark.asyncio
    async def test_grant_creates_reward_and_inventory(self, mock_db, admin):
        event = competition(ranks=(1,))
        mock_db.execute.side_effect = [scalar(event), scalar(None), scalar(None)]

        result = await RewardService(mock_db).auto_distribute(
            admin, "COMPETITION_END", competition_id=event.competition_id,
        )

        assert result["count"] == 1
        added = [call.args[0] for call in mock_db.add.call_args_list]
        assert added[0].name == "Pike Gold Trophy"
        assert isinstance(added[1], RewardDistribution)
        assert added[1].reason == "1st place in Spring Pike Open"
        assert isinstance(added[2], RewardInventory)
        assert added[2].quantity == 1

    @pytest.mark.asyncio
    async def test_grant_increments_existing_inventory(self, mock_db):
        item = SimpleNamespace(quantity=2, last_obtained_at=None)
        mock_db.execute.return_value = scalar(item)
        reward = SimpleNamespace(reward_id=uuid.uuid4())

        await RewardService(mock_db).grant(reward, uuid.uuid4(), "COMPETITION", None, "again")

        assert item.quantity == 3
        assert item.last_obtained_at is not None


def badge(**overrides):
    values = dict(
        badge_id=uuid.uuid4(),
        name="First Catch",
        icon="hook",
        category=BadgeCategory.ACHIEVEMENT,
        rarity=Rarity.COMMON,
    )
    values.update(overrides)
    return BadgeDefinition(**values)


class TestBadgeService:
    @pytest.mark.asyncio
    async def test_duplicate_name(self, mock_db):
        mock_db.execute.return_value = scalar(uuid.uuid4())
        data = BadgeCreate(name="First Catch", icon="hook", category=BadgeCategory.ACHIEVEMENT)

        with pytest.raises(ConflictError) as exc_info:
            await BadgeService(mock_db).create_badge(data)
        assert exc_info.value.detail["code"] == ErrorCodes.BADGE_EXISTS
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_create(self, mock_db):
        mock_db.execute.return_value = scalar(None)
        data = BadgeCreate(name="Deep Sea", icon="anchor", category=BadgeCategory.ACHIEVEMENT, rarity=Rarity.RARE)

        created = await BadgeService(mock_db).create_badge(data)

        assert created.name == "Deep Sea"
        assert created.rarity == Rarity.RARE
        mock_db.add.assert_called_once_with(created)

    @pytest.mark.asyncio
    async def test_award_unknown_badge(self, mock_db):
        mock_db.get.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            await BadgeService(mock_db).award_badge(uuid.uuid4(), uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.NOT_FOUND

    @pytest.mark.asyncio
    async def test_award_to_unknown_user(self, mock_db):
        mock_db.get.side_effect = [badge(), None]

        with pytest.raises(NotFoundError) as exc_info:
            await BadgeService(mock_db).award_badge(uuid.uuid4(), uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_badge_already_earned(self, mock_db, participant):
        mock_db.get.side_effect = [badge(), participant]
        mock_db.execute.return_value = scalar(uuid.uuid4())

        with pytest.raises(ConflictError) as exc_info:
            await BadgeService(mock_db).award_badge(participant.user_id, uuid.uuid4())
        assert exc_info.value.detail["code"] == ErrorCodes.BADGE_ALREADY_EARNED

    @pytest.mark.asyncio
    async def test_award(self, mock_db, participant):
        definition = badge()
        mock_db.get.side_effect = [definition, participant]
        mock_db.execute.return_value = scalar(None)

        earned = await BadgeService(mock_db).award_badge(participant.user_id, definition.badge_id)

        assert isinstance(earned, FisherBadge)
        assert earned.badge is definition
        assert earned.earned_at is not None
        mock_db.add.assert_called_once_with(earned)
