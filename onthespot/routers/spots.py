# 스팟 목록/추가/상태 보고/수정/숨김/삭제 API + 장소 검색
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.integrations.place_search import search_places
from onthespot.realtime.sse import SSE_HEADERS, stream_events
from onthespot.schemas.location import (
    Location,
    LocationCreate,
    LocationEditBody,
    LocationResponse,
    StatusUpdateBody,
)
from onthespot.services.app_services import AppServices

router = APIRouter(prefix="/spots", tags=["Spots"])
places_router = APIRouter(prefix="/places", tags=["Places"])


def _responses(locations: List[Location]) -> List[LocationResponse]:
    return [LocationResponse.from_location(loc) for loc in locations]


@router.get("", response_model=List[LocationResponse])
async def list_spots(services: AppServices = Depends(get_services)) -> List[LocationResponse]:
    """현재 viewer 에게 보이는 스팟 (숨김/차단 작성자 제외). 로그인 없이도 조회 가능."""
    return _responses(services.directory.list())


@router.post("", response_model=LocationResponse)
async def create_spot(body: LocationCreate, services: AppServices = Depends(get_services)) -> LocationResponse:
    """스팟 추가. 상태를 생략하면 카테고리 축의 기본 상태. 추가한 사용자에게 +50 points."""
    try:
        location = Location.new(body.name, body.category, body.lat, body.lng, body.current_status)
        created = services.directory.add(location)
        return LocationResponse.from_location(created)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/search", response_model=List[LocationResponse])
async def search_spots(
    text: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    vibe: Optional[str] = Query(None),
    services: AppServices = Depends(get_services),
) -> List[LocationResponse]:
    """텍스트/카테고리/vibe 필터. status score 내림차순."""
    return _responses(services.directory.search(text=text, category=category, vibe=vibe))


@router.get("/nearby", response_model=List[LocationResponse])
async def nearby_spots(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: float = Query(500.0, gt=0),
    services: AppServices = Depends(get_services),
) -> List[LocationResponse]:
    """사용자 좌표 기준 반경 내 스팟. distance_m 포함, 가까운 순 정렬."""
    return [
        LocationResponse.from_location(loc, distance_m=round(dist, 1))
        for loc, dist in services.directory.nearby(lat, lng, radius_m)
    ]


@router.get("/stream")
async def stream_spots(services: AppServices = Depends(get_services)) -> StreamingResponse:
    """
    스팟 목록 SSE. 연결 직후 현재 목록 1회, 이후 변경마다 `event: spots`.
    15초 heartbeat, 원격 구독이 끊기면 `event: stale`.
    """
    locations = services.directory.locations
    return StreamingResponse(
        stream_events(
            locations.watch(),
            "spots",
            lambda snapshot: [r.model_dump(mode="json") for r in _responses(snapshot)],
            is_stale=lambda: locations.stale,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/{location_id}", response_model=LocationResponse)
async def get_spot(location_id: str, services: AppServices = Depends(get_services)) -> LocationResponse:
    try:
        return LocationResponse.from_location(services.directory.get(location_id))
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{location_id}/status", response_model=LocationResponse)
async def report_status(
    location_id: str, body: StatusUpdateBody, services: AppServices = Depends(get_services)
) -> LocationResponse:
    """상태 보고. 즉시 반영되고 원격 쓰기는 백그라운드. 보고한 사용자에게 +10 points."""
    try:
        updated = services.directory.update_status(location_id, body.status)
        return LocationResponse.from_location(updated)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{location_id}", response_model=LocationResponse)
async def edit_spot(
    location_id: str, body: LocationEditBody, services: AppServices = Depends(get_services)
) -> LocationResponse:
    try:
        updated = services.directory.edit(location_id, name=body.name, category=body.category)
        return LocationResponse.from_location(updated)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{location_id}/hide")
async def hide_spot(location_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """내 화면에서만 숨김. 이미 숨겼거나 로그인하지 않았으면 changed=false."""
    try:
        services.directory.get(location_id)
        changed = services.directory.hide(location_id)
        return {"message": "hidden", "changed": changed}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{location_id}")
async def delete_spot(location_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """모든 사용자에게서 삭제. 로그인 필요."""
    try:
        services.session.require_user()
        services.directory.delete(location_id)
        return {"message": "deleted"}
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@places_router.get("/search")
async def search_place_candidates(
    query: str = Query(..., min_length=1),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
) -> Dict[str, Any]:
    """스팟 추가 화면의 장소 후보 검색 (Kakao Local 키워드 검색)."""
    try:
        places = await search_places(query, lat, lng)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"query": query, "places": places}
