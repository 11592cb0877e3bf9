# 장소 키워드 검색 (Kakao Local) - 스팟 추가 시 이름/좌표 후보 조회

import os
from typing import Any, Dict, List, Optional

import httpx

PLACE_SEARCH_API_KEY = os.getenv("PLACE_SEARCH_API_KEY", "")
PLACE_SEARCH_BASE_URL = os.getenv("PLACE_SEARCH_BASE_URL", "https://dapi.kakao.com")
PLACE_SEARCH_RADIUS_M = int(os.getenv("PLACE_SEARCH_RADIUS_M", "2000"))
KEYWORD_SEARCH_PATH = "/v2/local/search/keyword.json"


def _standardize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """검색 결과 문서를 통일 필드(name, category, address, lat, lng, provider)로 변환."""
    return {
        "name": doc.get("place_name") or "",
        "category": doc.get("category_group_name") or doc.get("category_name") or "",
        "address": doc.get("road_address_name") or doc.get("address_name") or "",
        "lat": float(doc.get("y") or 0),
        "lng": float(doc.get("x") or 0),
        "provider": "kakao",
    }


async def search_places(
    query: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[Dict[str, Any]]:
    """
    키워드로 장소 후보 검색. lat/lng 가 있으면 그 주변 반경으로 제한.
    빈 query 는 호출 없이 []. API 키가 없으면 ValueError, HTTP 오류는 RuntimeError.
    """
    if not query or not query.strip():
        return []
    if not PLACE_SEARCH_API_KEY:
        raise ValueError("PLACE_SEARCH_API_KEY is not set")

    url = f"{PLACE_SEARCH_BASE_URL.rstrip('/')}{KEYWORD_SEARCH_PATH}"
    params: Dict[str, Any] = {"query": query.strip(), "size": 15}
    if lat is not None and lng is not None:
        params.update({"x": str(lng), "y": str(lat), "radius": PLACE_SEARCH_RADIUS_M})
    headers = {"Authorization": f"KakaoAK {PLACE_SEARCH_API_KEY}"}

    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        resp = await client.get(url, params=params, headers=headers)
        if resp.status_code != 200:
            raise RuntimeError(f"Place search error: HTTP {resp.status_code}")
        data = resp.json()
        if "documents" not in data:
            return []
        return [_standardize(d) for d in data["documents"]]
