# 알림 싱크: 스팟 상태 변경마다 (title, body, icon) 을 전달받는 협력자
# 실제 전송(로컬 배너 / 푸시)은 범위 밖. 기본 구현은 최신순 인앱 피드.

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Protocol

from onthespot.models.location_status import LocationStatus
from onthespot.realtime.live import LiveValue
from onthespot.schemas.location import Location, utc_now


class NotificationSink(Protocol):
    def deliver(self, title: str, body: str, icon_hint: str) -> None:
        ...


@dataclass
class NotificationItem:
    title: str
    message: str
    icon_name: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_read: bool = False


def status_change_notification(location: Location) -> tuple:
    """스팟 상태 변경 알림 문구: ("Status Update: {name}", "is now marked as {TITLE}", icon)."""
    status: LocationStatus = location.current_status
    return (
        f"Status Update: {location.name}",
        f"is now marked as {status.title.upper()}",
        status.icon_name,
    )


class NotificationFeed:
    """인앱 알림 목록. 새 알림은 맨 앞에 추가."""

    def __init__(self, welcome: bool = True):
        initial: List[NotificationItem] = []
        if welcome:
            initial.append(NotificationItem("Welcome", "Start spotting!", "star.fill"))
        self.items: LiveValue[List[NotificationItem]] = LiveValue(initial)

    def deliver(self, title: str, body: str, icon_hint: str) -> None:
        self.items.set([NotificationItem(title, body, icon_hint)] + self.items.value)

    def clear(self) -> None:
        self.items.set([])

    def mark_all_read(self) -> None:
        for item in self.items.value:
            item.is_read = True
        self.items.set(list(self.items.value))

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self.items.value if not item.is_read)
