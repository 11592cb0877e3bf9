# ProfileStore: 현재 사용자의 비정규화 프로필 + 게이미피케이션 카운터
# 로컬 수정은 즉시 원격 쓰기, 원격 리스너 업데이트는 로컬 필드를 덮어씀 (last-remote-write-wins)

import asyncio
import logging
from typing import List, Optional

from onthespot.errors import ValidationError
from onthespot.realtime.live import LiveValue
from onthespot.schemas.profile import Profile
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.session import SessionContext
from onthespot.store.base import Document, RemoteStore, Subscription

logger = logging.getLogger(__name__)

USERS = "users"

POINTS_NEW_SPOT = 50
POINTS_STATUS_UPDATE = 10
LEVEL_BAND = 200


def level_for_points(points: int) -> str:
    if points > 500:
        return "Campus Legend"
    if points > 200:
        return "Pro Spotter"
    return "Rookie"


def progress_for_points(points: int) -> float:
    """현재 200점 구간 안에서의 진행률, [0, 1)."""
    return (points % LEVEL_BAND) / LEVEL_BAND


class ProfileStore:
    def __init__(self, store: RemoteStore, session: SessionContext, writes: PendingWriteLog):
        self.store = store
        self.session = session
        self.writes = writes
        self.profile: LiveValue[Profile] = LiveValue(Profile())
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def contribution_points(self) -> int:
        return self.profile.value.contribution_points

    @property
    def spots_added(self) -> int:
        return self.profile.value.spots_added

    @property
    def user_level(self) -> str:
        return level_for_points(self.contribution_points)

    @property
    def progress_to_next_level(self) -> float:
        return progress_for_points(self.contribution_points)

    @property
    def display_name(self) -> str:
        return self.profile.value.name or "Unknown"

    # --- 원격 동기화 ---

    async def start(self) -> None:
        user_id = self.session.current_user_id()
        if user_id is None or self._subscription is not None:
            return
        self.profile.set(Profile(user_id=user_id))
        self._subscription = await self.store.subscribe_document(USERS, user_id)
        self._task = asyncio.create_task(self._pump(user_id, self._subscription))

    async def _pump(self, user_id: str, subscription: Subscription) -> None:
        try:
            async for doc in subscription:
                if doc is not None:
                    self._apply_remote(user_id, doc)
        except Exception as e:
            logger.warning("profile store: listener failed, data is stale: %s", e)
            self.profile.mark_stale()

    def _apply_remote(self, user_id: str, doc: Document) -> None:
        remote = Profile.from_doc(doc)
        remote.user_id = user_id
        self.profile.mark_fresh()
        if remote != self.profile.value:
            self.profile.set(remote)

    async def stop(self) -> None:
        """로그아웃: 구독 해제 후 프로필과 카운터 초기화."""
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            await subscription.close()
        if task is not None:
            await task
        self.profile.set(Profile())

    # --- 카운터 ---

    def _increment(self, user_id: str, field_name: str, amount: int) -> None:
        async def _write() -> None:
            await self.store.increment(USERS, user_id, field_name, amount, create_missing=True)

        self.writes.submit(f"increment users/{user_id}.{field_name} by {amount}", _write)

    def _is_local(self, user_id: str) -> bool:
        return user_id == self.session.current_user_id()

    def apply_points_delta(self, amount: int, user_id: Optional[str] = None) -> bool:
        """
        contribution points 의 유일한 변경 경로. 음수는 허용하지 않음.
        user_id 는 점수를 받을 사용자 (기본: 현재 사용자). 그 사이 로그아웃했다면 원격에만 반영.
        """
        if amount < 0:
            raise ValidationError("Points can only increase")
        user_id = user_id or self.session.current_user_id()
        if user_id is None or amount == 0:
            return False
        if self._is_local(user_id):
            current = self.profile.value
            self.profile.set(current.model_copy(update={"contribution_points": current.contribution_points + amount}))
        self._increment(user_id, "points", amount)
        return True

    def record_status_update(self, user_id: Optional[str] = None) -> bool:
        return self.apply_points_delta(POINTS_STATUS_UPDATE, user_id)

    def record_spot_added(self, user_id: Optional[str] = None) -> bool:
        user_id = user_id or self.session.current_user_id()
        if not self.apply_points_delta(POINTS_NEW_SPOT, user_id):
            return False
        if self._is_local(user_id):
            current = self.profile.value
            self.profile.set(current.model_copy(update={"spots_added": current.spots_added + 1}))
        self._increment(user_id, "spotsAdded", 1)
        return True

    # --- 프로필 편집 ---

    def save_profile(
        self,
        name: str,
        bio: str = "",
        home_location: str = "",
        tags: Optional[List[str]] = None,
        avatar: Optional[str] = None,
    ) -> Optional[Profile]:
        user_id = self.session.current_user_id()
        if user_id is None:
            return None
        if not name.strip():
            raise ValidationError("Name is required")

        fields = {
            "name": name.strip(),
            "bio": bio,
            "home_location": home_location,
            "tags": list(tags or []),
        }
        if avatar is not None:
            fields["avatar"] = avatar
        updated = self.profile.value.model_copy(update={**fields, "user_id": user_id})
        self.profile.set(updated)

        doc = updated.model_dump(mode="json", by_alias=True, include=set(fields))

        async def _write() -> None:
            await self.store.set(USERS, user_id, doc, merge=True)

        self.writes.submit(f"save profile users/{user_id}", _write, key=(USERS, user_id))
        return updated

    async def fetch_user_profile(self, user_id: str) -> Profile:
        """다른 사용자의 공개 프로필. 문서가 없으면 기본값."""
        doc = await self.store.get(USERS, user_id)
        if doc is None:
            return Profile(user_id=user_id, name="Unknown User", bio="No Bio")
        profile = Profile.from_doc(doc)
        profile.user_id = user_id
        return profile
