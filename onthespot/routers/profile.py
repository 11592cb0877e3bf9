# 프로필 / 인앱 알림 API
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.schemas.profile import Profile, ProfileResponse, ProfileUpdateBody
from onthespot.services.app_services import AppServices
from onthespot.services.profile_store import level_for_points, progress_for_points

router = APIRouter(tags=["Profile"])


def _profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.user_id,
        name=profile.name,
        bio=profile.bio,
        home_location=profile.home_location,
        avatar=profile.avatar,
        tags=profile.tags,
        contribution_points=profile.contribution_points,
        spots_added=profile.spots_added,
        level=level_for_points(profile.contribution_points),
        progress_to_next_level=progress_for_points(profile.contribution_points),
    )


@router.get("/profile", response_model=ProfileResponse)
async def get_my_profile(services: AppServices = Depends(get_services)) -> ProfileResponse:
    """내 프로필 + 레벨. 로그인하지 않았으면 401."""
    try:
        services.session.require_user()
        return _profile_response(services.profile.profile.value)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/profile", response_model=ProfileResponse)
async def update_my_profile(
    body: ProfileUpdateBody, services: AppServices = Depends(get_services)
) -> ProfileResponse:
    try:
        services.session.require_user()
        updated = services.profile.save_profile(
            body.name, body.bio, body.home_location, body.tags, body.avatar
        )
        return _profile_response(updated)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/profile/{user_id}", response_model=ProfileResponse)
async def get_user_profile(user_id: str, services: AppServices = Depends(get_services)) -> ProfileResponse:
    """다른 사용자의 공개 프로필. 문서가 없으면 "Unknown User"."""
    try:
        return _profile_response(await services.profile.fetch_user_profile(user_id))
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/notifications", tags=["Notifications"])
async def list_notifications(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    items = services.feed.items.value
    return {
        "unread_count": services.feed.unread_count,
        "items": [
            {
                "id": item.id,
                "title": item.title,
                "message": item.message,
                "icon_name": item.icon_name,
                "timestamp": item.timestamp.isoformat(),
                "is_read": item.is_read,
            }
            for item in items
        ],
    }


@router.post("/notifications/read", tags=["Notifications"])
async def read_notifications(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    services.feed.mark_all_read()
    return {"message": "read", "unread_count": services.feed.unread_count}


@router.delete("/notifications", tags=["Notifications"])
async def clear_notifications(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    services.feed.clear()
    return {"message": "cleared"}
