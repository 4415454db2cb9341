"""
Profile API Endpoints
=====================

Handles user and fisher profile retrieval and updates.
"""

from typing import Any

from fastapi import APIRouter

from app.core.errors import ErrorCodes, NotFoundError
from app.dependencies import CurrentUser, DBSession
from app.models.user import FisherProfile, User
from app.schemas.common import ErrorResponse
from app.schemas.profile import (
    FisherProfileInfo,
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    UserInfo,
)
from app.services.auth_service import AuthService
from app.services.cache import CacheInvalidator, CacheKeys, CacheManager

router = APIRouter()

PROFILE_FIELDS = ("bio", "experience_level", "specialties", "country", "city")


async def _load_user(db, user_id) -> User:
    """Reload the caller with profile and subscription attached to the session."""
    user = await AuthService(db).get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(code=ErrorCodes.USER_NOT_FOUND, message="User not found")
    if user.profile is None:
        user.profile = FisherProfile(user_id=user.user_id)
        db.add(user.profile)
        await db.flush()
        await db.refresh(user.profile)
    return user


def _profile_payload(user: User) -> dict[str, Any]:
    subscription = None
    if user.subscription:
        subscription = {
            "tier": user.subscription.tier.value,
            "status": user.subscription.status.value,
            "current_period_end": (
                user.subscription.current_period_end.isoformat()
                if user.subscription.current_period_end else None
            ),
            "cancel_at_period_end": user.subscription.cancel_at_period_end,
        }

    return {
        "user": UserInfo(
            user_id=user.user_id,
            email=user.email,
            name=user.name,
            image=user.image,
            role=user.role.value,
            created_at=user.created_at,
        ).model_dump(mode="json"),
        "profile": FisherProfileInfo.model_validate(user.profile).model_dump(mode="json"),
        "subscription": subscription,
    }


@router.get(
    "",
    response_model=ProfileResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_profile(
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Get complete user profile.

    Includes user info, fisher reputation and subscription status.
    """
    user_id_str = str(current_user.user_id)

    cached = await CacheManager.get(CacheKeys.profile(user_id_str))
    if cached:
        return ProfileResponse(success=True, data=cached)

    user = await _load_user(db, current_user.user_id)
    profile_data = _profile_payload(user)

    await CacheManager.set(
        CacheKeys.profile(user_id_str),
        profile_data,
        ttl=CacheManager.TTL_SHORT,
    )

    return ProfileResponse(success=True, data=profile_data)


@router.put(
    "",
    response_model=ProfileUpdateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_profile(
    profile_data: ProfileUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Update user profile.

    Allows updating name and image on the user, and bio, experience level,
    specialties and location on the fisher profile.
    """
    user = await _load_user(db, current_user.user_id)
    changes = profile_data.model_dump(exclude_unset=True)

    if changes.get("name") is not None:
        user.name = changes["name"]
    if changes.get("image") is not None:
        user.image = changes["image"]

    for field in PROFILE_FIELDS:
        if changes.get(field) is not None:
            setattr(user.profile, field, changes[field])

    await db.flush()
    await db.refresh(user)

    await db.commit()
    await CacheInvalidator.on_profile_update(str(user.user_id))

    return ProfileUpdateResponse(
        success=True,
        data=_profile_payload(user),
        message="Profile updated successfully",
    )
