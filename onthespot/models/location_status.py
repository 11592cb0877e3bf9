# LocationStatus / CategoryClass: 스팟 상태 값과 카테고리별 상태 축

from enum import Enum as PyEnum
from typing import Dict, List, Tuple


class LocationStatus(str, PyEnum):
    """
    스팟의 현재 상태. 세 개의 축 중 하나에 속한다.

    - ambience: quiet / justRight / noisy
    - queue: noLine / shortLine / longLine
    - availability: available / inUse

    MODERATE, OCCUPIED 는 값이 같은 멤버라 Enum alias 로 동작한다.
    """

    QUIET = "quiet"
    JUST_RIGHT = "justRight"
    NOISY = "noisy"
    NO_LINE = "noLine"
    SHORT_LINE = "shortLine"
    LONG_LINE = "longLine"
    AVAILABLE = "available"
    IN_USE = "inUse"

    MODERATE = "shortLine"
    OCCUPIED = "inUse"

    @property
    def title(self) -> str:
        return _DISPLAY[self][0]

    @property
    def icon_name(self) -> str:
        return _DISPLAY[self][1]

    @property
    def color(self) -> str:
        return _DISPLAY[self][2]

    @property
    def score(self) -> int:
        """Openness score used for search ordering (3 = most open)."""
        return _DISPLAY[self][3]


# status -> (title, icon, color, score)
_DISPLAY: Dict[LocationStatus, Tuple[str, str, str, int]] = {
    LocationStatus.QUIET: ("Quiet", "waveform.path.ecg", "accent", 3),
    LocationStatus.JUST_RIGHT: ("Moderate", "person.2.fill", "yellow", 2),
    LocationStatus.NOISY: ("Busy", "speaker.wave.3.fill", "red", 1),
    LocationStatus.NO_LINE: ("No Queue", "figure.walk", "accent", 3),
    LocationStatus.SHORT_LINE: ("Short Wait", "hourglass", "yellow", 2),
    LocationStatus.LONG_LINE: ("Long Wait", "person.3.sequence.fill", "red", 1),
    LocationStatus.AVAILABLE: ("Available", "checkmark.circle.fill", "accent", 3),
    LocationStatus.IN_USE: ("Occupied", "xmark.circle.fill", "red", 1),
}


class CategoryClass(str, PyEnum):
    """카테고리가 어떤 상태 축을 쓰는지. 스팟 생성/수정 시 한 번 결정해서 저장."""

    QUEUE_BASED = "queueBased"
    AVAILABILITY_BASED = "availabilityBased"
    AMBIENCE_BASED = "ambienceBased"


QUEUE_CATEGORIES = {"cafe", "fast food", "canteen", "terminal", "marketplace"}
AVAILABILITY_CATEGORIES = {"laundry", "parking", "facility"}

# 축별 허용 상태. 첫 번째 값이 새 스팟의 기본 상태.
STATUSES_BY_CLASS: Dict[CategoryClass, List[LocationStatus]] = {
    CategoryClass.QUEUE_BASED: [
        LocationStatus.NO_LINE,
        LocationStatus.SHORT_LINE,
        LocationStatus.LONG_LINE,
    ],
    CategoryClass.AVAILABILITY_BASED: [
        LocationStatus.AVAILABLE,
        LocationStatus.IN_USE,
    ],
    CategoryClass.AMBIENCE_BASED: [
        LocationStatus.QUIET,
        LocationStatus.JUST_RIGHT,
        LocationStatus.NOISY,
    ],
}


def classify_category(category: str) -> CategoryClass:
    """자유 입력 카테고리 문자열 → CategoryClass. 대소문자/앞뒤 공백 무시, 나머지는 ambience."""
    key = (category or "").strip().lower()
    if key in QUEUE_CATEGORIES:
        return CategoryClass.QUEUE_BASED
    if key in AVAILABILITY_CATEGORIES:
        return CategoryClass.AVAILABILITY_BASED
    return CategoryClass.AMBIENCE_BASED


def allowed_statuses(category_class: CategoryClass) -> List[LocationStatus]:
    return list(STATUSES_BY_CLASS[category_class])


def default_status(category_class: CategoryClass) -> LocationStatus:
    return STATUSES_BY_CLASS[category_class][0]


def is_status_allowed(category_class: CategoryClass, status: LocationStatus) -> bool:
    return status in STATUSES_BY_CLASS[category_class]
