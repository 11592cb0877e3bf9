# 스팟별 plan 생성/조회/참여/나가기/삭제 API
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.realtime.sse import SSE_HEADERS, stream_live_query
from onthespot.schemas.plan import MembershipBody, Plan, PlanCreate, PlanResponse
from onthespot.services.app_services import AppServices

router = APIRouter(prefix="/plans", tags=["Plans"])


def _member(body: Optional[MembershipBody]) -> Optional[str]:
    return body.user_id if body is not None else None


@router.post("", response_model=PlanResponse)
async def create_plan(body: PlanCreate, services: AppServices = Depends(get_services)) -> PlanResponse:
    """plan 생성. 호스트는 세션 사용자, 참여자는 호스트 1명으로 시작."""
    try:
        host_id = services.session.require_user()
        plan = Plan(
            host_id=host_id,
            host_name=services.profile.display_name,
            participants=[host_id],
            **body.model_dump(),
        )
        created = await services.plans.create(plan)
        return PlanResponse.from_plan(created)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[PlanResponse])
async def list_plans(
    location_id: str = Query(..., min_length=1),
    services: AppServices = Depends(get_services),
) -> List[PlanResponse]:
    """스팟의 plan 목록 (시작 시각 순, 차단한 호스트의 plan 제외)."""
    try:
        live = await services.plans.list_for_location(location_id)
        try:
            plans = await live.first()
        finally:
            await live.close()
        return [PlanResponse.from_plan(p) for p in plans]
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/stream")
async def stream_plans(
    location_id: str = Query(..., min_length=1),
    services: AppServices = Depends(get_services),
) -> StreamingResponse:
    """
    스팟의 plan 목록 SSE. 변경마다 전체 목록을 `event: plans` 로 전달.
    연결 해제(CancelledError) 시 스토어 구독 해제.
    """
    live = await services.plans.list_for_location(location_id)
    return StreamingResponse(
        stream_live_query(
            live,
            "plans",
            lambda plans: [PlanResponse.from_plan(p).model_dump(mode="json") for p in plans],
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(plan_id: str, services: AppServices = Depends(get_services)) -> PlanResponse:
    try:
        return PlanResponse.from_plan(await services.plans.get(plan_id))
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{plan_id}/join", response_model=PlanResponse)
async def join_plan(
    plan_id: str,
    body: Optional[MembershipBody] = Body(None),
    services: AppServices = Depends(get_services),
) -> PlanResponse:
    """참여. 정원이 찼으면 409, 이미 참여 중이면 그대로 반환."""
    try:
        plan = await services.plans.join(plan_id, _member(body))
        return PlanResponse.from_plan(plan)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{plan_id}/leave")
async def leave_plan(
    plan_id: str,
    body: Optional[MembershipBody] = Body(None),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """나가기. 호스트가 나가면 가장 먼저 참여한 사람이 호스트, 마지막 사람이 나가면 plan 삭제."""
    try:
        plan = await services.plans.leave(plan_id, _member(body))
        if plan is None:
            return {"message": "left", "deleted": True, "plan": None}
        return {"message": "left", "deleted": False, "plan": PlanResponse.from_plan(plan)}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{plan_id}")
async def delete_plan(plan_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """plan 삭제 (호스트만)."""
    try:
        user_id = services.session.require_user()
        plan = await services.plans.get(plan_id)
        if plan.host_id != user_id:
            raise HTTPException(status_code=403, detail="Only the host can delete this plan")
        await services.plans.delete(plan_id)
        return {"message": "deleted"}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
