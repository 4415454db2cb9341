"""
Profile Tests
=============

Profile reads (cached) and updates split across the user and fisher profile.
"""

import json
from unittest.mock import MagicMock

import pytest

from app.models.user import ExperienceLevel, FisherProfile
from app.services.cache import CacheKeys


def one(item):
    result = MagicMock()
    result.scalar_one_or_none.return_value = item
    return result


PROFILE_DEFAULTS = dict(
    experience_level=ExperienceLevel.BEGINNER,
    specialties=[],
    rating=5.0,
    reliability=100.0,
    completed_trips=0,
    created_trips=0,
    total_reviews=0,
    positive_reviews=0,
    cancellation_rate=0.0,
    avg_response_time_hours=0.0,
    total_fish_caught=0,
)


def with_profile(user, **overrides):
    values = dict(
        PROFILE_DEFAULTS,
        user_id=user.user_id,
        experience_level=ExperienceLevel.INTERMEDIATE,
        specialties=["Pike"],
        rating=4.6,
        reliability=97.5,
        completed_trips=12,
        total_reviews=9,
        positive_reviews=8,
        avg_response_time_hours=1.5,
        total_fish_caught=64,
    )
    values.update(overrides)
    user.profile = FisherProfile(**values)
    return user


class TestGetProfile:
    @pytest.mark.asyncio
    async def test_profile_is_loaded_and_cached(self, client, login, participant, mock_db, fake_redis):
        login(participant)
        mock_db.execute.return_value = one(with_profile(participant))

        response = await client.get("/api/v1/profile")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["email"] == participant.email
        assert data["user"]["role"] == "PARTICIPANT"
        assert data["profile"]["total_fish_caught"] == 64
        assert data["subscription"] is None

        key, ttl, payload = fake_redis.setex.await_args.args
        assert key == CacheKeys.profile(str(participant.user_id))
        assert json.loads(payload) == data

    @pytest.mark.asyncio
    async def test_cached_profile_skips_database(self, client, login, participant, mock_db, fake_redis):
        login(participant)
        fake_redis.get.return_value = json.dumps({"user": {"name": "Cached"}, "profile": {}, "subscription": None})

        response = await client.get("/api/v1/profile")

        assert response.status_code == 200
        assert response.json()["data"]["user"]["name"] == "Cached"
        mock_db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deleted_user_is_404(self, client, login, participant, mock_db):
        login(participant)
        mock_db.execute.return_value = one(None)

        response = await client.get("/api/v1/profile")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_missing_fisher_profile_is_created(self, client, login, participant, mock_db):
        login(participant)
        mock_db.execute.return_value = one(participant)

        async def fill_defaults(instance, *args):
            for field, value in PROFILE_DEFAULTS.items():
                setattr(instance, field, value)

        mock_db.refresh.side_effect = fill_defaults

        response = await client.get("/api/v1/profile")

        assert response.status_code == 200
        created = mock_db.add.call_args.args[0]
        assert isinstance(created, FisherProfile)
        assert created.user_id == participant.user_id


class TestUpdateProfile:
    @pytest.mark.asyncio
    async def test_updates_user_and_fisher_fields(self, client, login, participant, mock_db, fake_redis):
        login(participant)
        mock_db.execute.return_value = one(with_profile(participant))

        response = await client.put("/api/v1/profile", json={
            "name": "Ana Ribar",
            "bio": "Fly fishing on the Soca",
            "experience_level": "ADVANCED",
            "city": "Kobarid",
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["name"] == "Ana Ribar"
        assert data["profile"]["experience_level"] == "ADVANCED"
        assert data["profile"]["city"] == "Kobarid"
        assert data["profile"]["specialties"] == ["Pike"]
        mock_db.commit.assert_awaited()
        deleted = [call.args[0] for call in fake_redis.delete.await_args_list]
        assert CacheKeys.profile(str(participant.user_id)) in deleted

    @pytest.mark.asyncio
    async def test_unknown_experience_level_is_400(self, client, login, participant):
        login(participant)
        response = await client.put("/api/v1/profile", json={"experience_level": "LEGENDARY"})

        assert response.status_code == 400
