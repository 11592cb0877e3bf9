# 스팟 검색/필터: 텍스트, 카테고리, vibe 로 거르고 "열려 있는" 순으로 정렬

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from onthespot.models.location_status import LocationStatus
from onthespot.schemas.location import Location


@dataclass(frozen=True)
class Vibe:
    title: str
    icon: str
    related_statuses: Tuple[LocationStatus, ...]


VIBES: Tuple[Vibe, ...] = (
    Vibe("Quiet / Chill", "waveform.path.ecg", (LocationStatus.QUIET, LocationStatus.JUST_RIGHT)),
    Vibe(
        "Quick / Open",
        "figure.walk",
        (LocationStatus.NO_LINE, LocationStatus.SHORT_LINE, LocationStatus.AVAILABLE),
    ),
    Vibe("Busy / Full", "flame.fill", (LocationStatus.LONG_LINE, LocationStatus.NOISY, LocationStatus.IN_USE)),
)

CATEGORIES = ("Study Spot", "Fast Food", "Canteen", "Cafe", "Terminal", "Parking", "Facility", "Laundry")


def find_vibe(title: str) -> Optional[Vibe]:
    return next((v for v in VIBES if v.title == title), None)


def filter_spots(
    locations: Sequence[Location],
    text: Optional[str] = None,
    category: Optional[str] = None,
    vibe: Optional[str] = None,
) -> List[Location]:
    """
    - text: 이름 또는 카테고리에 대소문자 무시 부분 일치
    - category: 정확히 일치
    - vibe: VIBES 제목. 모르는 vibe 는 무시
    결과는 status score 내림차순 (동점은 입력 순서 유지).
    """
    result = list(locations)
    if text:
        needle = text.casefold()
        result = [
            loc for loc in result
            if needle in loc.name.casefold() or needle in loc.category.casefold()
        ]
    if category:
        result = [loc for loc in result if loc.category == category]
    if vibe:
        selected = find_vibe(vibe)
        if selected is not None:
            result = [loc for loc in result if loc.current_status in selected.related_statuses]
    return sorted(result, key=lambda loc: loc.current_status.score, reverse=True)


def trending(locations: Sequence[Location], n: int = 3) -> List[Location]:
    return list(locations[:n])


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """두 위경도 사이 거리(미터) 근사."""
    R = 6371000  # 지구 반경 m
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def nearby(
    locations: Sequence[Location], lat: float, lng: float, radius_m: float
) -> List[Tuple[Location, float]]:
    """반경 내 스팟과 거리(m), 가까운 순."""
    hits = []
    for loc in locations:
        d = haversine_m(lat, lng, loc.coordinate.latitude, loc.coordinate.longitude)
        if d <= radius_m:
            hits.append((loc, d))
    return sorted(hits, key=lambda pair: pair[1])
