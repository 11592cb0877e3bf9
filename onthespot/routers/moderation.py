# 숨김/차단/신고 API
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.schemas.moderation import ReportBody
from onthespot.services.app_services import AppServices

router = APIRouter(prefix="/moderation", tags=["Moderation"])


@router.get("")
async def get_moderation(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    return {
        "hidden_spots": sorted(services.moderation.hidden_spot_ids.value),
        "blocked_users": sorted(services.moderation.blocked_user_ids.value),
    }


@router.post("/hidden/{spot_id}")
async def hide(spot_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    return {"changed": services.moderation.hide_location(spot_id)}


@router.delete("/hidden/{spot_id}")
async def unhide(spot_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    return {"changed": services.moderation.unhide_location(spot_id)}


@router.post("/blocked/{user_id}")
async def block(user_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """단방향 차단. 상대의 스팟/plan/메시지가 이후 조회에서 빠진다."""
    try:
        return {"changed": services.moderation.block_user(user_id)}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/reports")
async def report(body: ReportBody, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        record = services.moderation.report(body.content_id, body.kind, body.reason)
        return {"message": "reported", "report": record.model_dump(mode="json")}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
