"""
Competition Service
===================

Lifecycle of the competitions and seasons that reward distribution reads,
plus the fisher leaderboard.

Competitions move UPCOMING -> ACTIVE -> COMPLETED (or CANCELLED before
completion); seasons move UPCOMING -> ACTIVE -> COMPLETED. Completing either
one fixes the final ranks: highest score (or points) first, ties share a
rank and the next rank skips ("1, 1, 3").
"""

import logging
from typing import Any, Callable, Iterable, Optional, TypeVar
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError, ErrorCodes, NotFoundError
from app.models.reward import (
    Competition,
    CompetitionParticipant,
    CompetitionStatus,
    Season,
    SeasonParticipant,
    SeasonStatus,
)
from app.models.user import FisherProfile, User
from app.schemas.reward import CompetitionCreate, SeasonCreate
from app.utils.helpers import isoformat_or_none

logger = logging.getLogger(__name__)

T = TypeVar("T")

COMPETITION_TRANSITIONS = {
    CompetitionStatus.UPCOMING: {CompetitionStatus.ACTIVE, CompetitionStatus.CANCELLED},
    CompetitionStatus.ACTIVE: {CompetitionStatus.COMPLETED, CompetitionStatus.CANCELLED},
}
SEASON_TRANSITIONS = {
    SeasonStatus.UPCOMING: {SeasonStatus.ACTIVE},
    SeasonStatus.ACTIVE: {SeasonStatus.COMPLETED},
}
OPEN_COMPETITION = {CompetitionStatus.UPCOMING, CompetitionStatus.ACTIVE}
OPEN_SEASON = {SeasonStatus.UPCOMING, SeasonStatus.ACTIVE}

LEADERBOARD_COLUMNS = {
    "rating": FisherProfile.rating,
    "completedTrips": FisherProfile.completed_trips,
    "totalFishCaught": FisherProfile.total_fish_caught,
    "reliability": FisherProfile.reliability,
}


def assign_ranks(entries: Iterable[T], key: Callable[[T], float]) -> list[T]:
    """Set ``rank`` on each entry by ``key`` descending; returns them in rank order."""
    ordered = sorted(entries, key=key, reverse=True)
    previous = None
    rank = 0
    for position, entry in enumerate(ordered, start=1):
        value = key(entry)
        if value != previous:
            rank = position
            previous = value
        entry.rank = rank
    return ordered


def check_transition(current, target, allowed: dict) -> None:
    if target not in allowed.get(current, set()):
        raise ConflictError(
            code=ErrorCodes.INVALID_STATUS_TRANSITION,
            message=f"Cannot move from {current.value} to {target.value}",
        )


def serialize_competition(competition: Competition, include_standings: bool = False) -> dict[str, Any]:
    data = {
        "id": str(competition.competition_id),
        "name": competition.name,
        "category": competition.category,
        "status": competition.status.value,
        "startsAt": isoformat_or_none(competition.starts_at),
        "endsAt": isoformat_or_none(competition.ends_at),
        "participantCount": len(competition.participants),
    }
    if include_standings:
        ordered = sorted(
            competition.participants,
            key=lambda p: (p.rank is None, p.rank or 0, -p.score),
        )
        data["standings"] = [
            {
                "userId": str(p.user_id),
                "name": p.user.name if p.user is not None else None,
                "score": p.score,
                "rank": p.rank,
            }
            for p in ordered
        ]
    return data


def serialize_season(season: Season, include_standings: bool = False) -> dict[str, Any]:
    data = {
        "id": str(season.season_id),
        "name": season.name,
        "type": season.type.value,
        "status": season.status.value,
        "startsAt": isoformat_or_none(season.starts_at),
        "endsAt": isoformat_or_none(season.ends_at),
        "participantCount": len(season.participants),
    }
    if include_standings:
        ordered = sorted(season.participants, key=lambda p: p.points, reverse=True)
        data["standings"] = [
            {"userId": str(p.user_id), "points": p.points, "rank": p.rank}
            for p in ordered
        ]
    return data


class CompetitionService:
    """Competitions, seasons and the leaderboard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # -------------------------------------------------------------------------
    # Competitions
    # -------------------------------------------------------------------------

    async def _get_competition(self, competition_id: uuid.UUID, lock: bool = False) -> Competition:
        stmt = select(Competition).where(Competition.competition_id == competition_id)
        if lock:
            stmt = stmt.with_for_update(of=Competition).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        competition = result.scalar_one_or_none()
        if competition is None:
            raise NotFoundError(code=ErrorCodes.COMPETITION_NOT_FOUND, message="Competition not found")
        return competition

    async def create_competition(self, data: CompetitionCreate) -> Competition:
        competition = Competition(**data.model_dump(), status=CompetitionStatus.UPCOMING)
        competition.participants = []
        self.db.add(competition)
        await self.db.flush()
        logger.info("Competition %r created (%s)", competition.name, competition.category)
        return competition

    async def list_competitions(
        self,
        status: Optional[CompetitionStatus] = None,
        category: Optional[str] = None,
        limit: int = 20,
    ) -> list[Competition]:
        stmt = select(Competition)
        if status:
            stmt = stmt.where(Competition.status == status)
        if category:
            stmt = stmt.where(Competition.category == category)
        result = await self.db.execute(stmt.order_by(Competition.starts_at.desc().nulls_last()).limit(limit))
        return list(result.scalars().all())

    async def get_competition(self, competition_id: uuid.UUID) -> Competition:
        return await self._get_competition(competition_id)

    async def join_competition(self, user: User, competition_id: uuid.UUID) -> CompetitionParticipant:
        competition = await self._get_competition(competition_id, lock=True)
        if competition.status not in OPEN_COMPETITION:
            raise ConflictError(
                code=ErrorCodes.EVENT_CLOSED,
                message=f"Competition is {competition.status.value.lower()}",
            )
        if any(p.user_id == user.user_id for p in competition.participants):
            raise ConflictError(
                code=ErrorCodes.ALREADY_ENROLLED,
                message="Already taking part in this competition",
            )

        participant = CompetitionParticipant(
            competition_id=competition.competition_id,
            user_id=user.user_id,
            score=0.0,
        )
        self.db.add(participant)
        competition.participants.append(participant)
        await self.db.flush()
        return participant

    async def set_score(self, competition_id: uuid.UUID, user_id: uuid.UUID, score: float) -> Competition:
        competition = await self._get_competition(competition_id, lock=True)
        if competition.status not in OPEN_COMPETITION:
            raise ConflictError(
                code=ErrorCodes.EVENT_CLOSED,
                message="Scores are frozen once a competition ends",
            )

        participant = next((p for p in competition.participants if p.user_id == user_id), None)
        if participant is None:
            raise NotFoundError(code=ErrorCodes.NOT_ENROLLED, message="User is not in this competition")

        participant.score = score
        await self.db.flush()
        return competition

    async def update_competition_status(
        self,
        competition_id: uuid.UUID,
        status: CompetitionStatus,
    ) -> Competition:
        competition = await self._get_competition(competition_id, lock=True)
        check_transition(competition.status, status, COMPETITION_TRANSITIONS)

        competition.status = status
        if status == CompetitionStatus.COMPLETED:
            assign_ranks(competition.participants, key=lambda p: p.score)

        await self.db.flush()
        logger.info("Competition %s is now %s", competition.competition_id, status.value)
        return competition

    # -------------------------------------------------------------------------
    # Seasons
    # -------------------------------------------------------------------------

    async def _get_season(self, season_id: uuid.UUID, lock: bool = False) -> Season:
        stmt = select(Season).where(Season.season_id == season_id)
        if lock:
            stmt = stmt.with_for_update(of=Season).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        season = result.scalar_one_or_none()
        if season is None:
            raise NotFoundError(code=ErrorCodes.SEASON_NOT_FOUND, message="Season not found")
        return season

    async def create_season(self, data: SeasonCreate) -> Season:
        season = Season(**data.model_dump(), status=SeasonStatus.UPCOMING)
        season.participants = []
        self.db.add(season)
        await self.db.flush()
        logger.info("Season %r created (%s)", season.name, season.type.value)
        return season

    async def list_seasons(self, status: Optional[SeasonStatus] = None, limit: int = 20) -> list[Season]:
        stmt = select(Season)
        if status:
            stmt = stmt.where(Season.status == status)
        result = await self.db.execute(stmt.order_by(Season.starts_at.desc().nulls_last()).limit(limit))
        return list(result.scalars().all())

    async def get_season(self, season_id: uuid.UUID) -> Season:
        return await self._get_season(season_id)

    async def join_season(self, user: User, season_id: uuid.UUID) -> SeasonParticipant:
        season = await self._get_season(season_id, lock=True)
        if season.status not in OPEN_SEASON:
            raise ConflictError(code=ErrorCodes.EVENT_CLOSED, message="Season has ended")
        if any(p.user_id == user.user_id for p in season.participants):
            raise ConflictError(code=ErrorCodes.ALREADY_ENROLLED, message="Already enrolled in this season")

        participant = SeasonParticipant(season_id=season.season_id, user_id=user.user_id, points=0)
        self.db.add(participant)
        season.participants.append(participant)
        await self.db.flush()
        return participant

    async def award_points(
        self,
        season_id: uuid.UUID,
        user_id: uuid.UUID,
        points: int,
        reason: Optional[str] = None,
    ) -> SeasonParticipant:
        season = await self._get_season(season_id, lock=True)
        if season.status != SeasonStatus.ACTIVE:
            raise ConflictError(code=ErrorCodes.EVENT_CLOSED, message="Points can only change during an active season")

        participant = next((p for p in season.participants if p.user_id == user_id), None)
        if participant is None:
            raise NotFoundError(code=ErrorCodes.NOT_ENROLLED, message="User is not enrolled in this season")

        participant.points = max(0, participant.points + points)
        await self.db.flush()
        logger.info("Season %s: %+d points to %s (%s)", season_id, points, user_id, reason or "no reason")
        return participant

    async def update_season_status(self, season_id: uuid.UUID, status: SeasonStatus) -> Season:
        season = await self._get_season(season_id, lock=True)
        check_transition(season.status, status, SEASON_TRANSITIONS)

        season.status = status
        if status == SeasonStatus.COMPLETED:
            assign_ranks(season.participants, key=lambda p: p.points)

        await self.db.flush()
        logger.info("Season %s is now %s", season.season_id, status.value)
        return season

    # -------------------------------------------------------------------------
    # Leaderboard
    # -------------------------------------------------------------------------

    async def leaderboard(
        self,
        order_by: str = "rating",
        limit: int = 50,
        current_user_id: Optional[uuid.UUID] = None,
    ) -> dict[str, Any]:
        """Fishers ranked by one profile metric, best first."""
        column = LEADERBOARD_COLUMNS[order_by]

        result = await self.db.execute(
            select(FisherProfile, User)
            .join(User, User.user_id == FisherProfile.user_id)
            .order_by(column.desc(), FisherProfile.created_at)
            .limit(limit)
        )
        players = [
            {
                "position": position,
                "userId": str(profile.user_id),
                "name": user.name or "Anonymous Fisher",
                "avatar": user.image,
                "rating": float(profile.rating),
                "completedTrips": profile.completed_trips,
                "totalFishCaught": profile.total_fish_caught,
                "reliability": float(profile.reliability),
            }
            for position, (profile, user) in enumerate(result.all(), start=1)
        ]

        total = (await self.db.execute(select(func.count()).select_from(FisherProfile))).scalar_one()

        current_position = None
        if current_user_id is not None:
            own = (
                await self.db.execute(select(column).where(FisherProfile.user_id == current_user_id))
            ).scalar_one_or_none()
            if own is not None:
                better = (
                    await self.db.execute(
                        select(func.count()).select_from(FisherProfile).where(column > own)
                    )
                ).scalar_one()
                current_position = better + 1

        return {
            "orderBy": order_by,
            "players": players,
            "currentUserPosition": current_position,
            "totalPlayers": total,
        }
