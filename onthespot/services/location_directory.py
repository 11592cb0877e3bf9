# LocationDirectory: 알려진 스팟 목록 + 숨김/차단 필터 + 생성/상태변경/수정/숨김/삭제
# 낙관적 로컬 변경 → PendingWriteLog 로 원격 쓰기 → spots 구독이 원격 변경을 다시 반영

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from onthespot.errors import NotFoundError, PermissionDenied, ValidationError
from onthespot.models.location_status import (
    LocationStatus,
    classify_category,
    default_status,
    is_status_allowed,
)
from onthespot.realtime.live import LiveValue
from onthespot.schemas.location import Location, utc_now
from onthespot.services import spot_search
from onthespot.services.moderation_ledger import ModerationLedger
from onthespot.services.notifications import NotificationSink, status_change_notification
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.profile_store import ProfileStore
from onthespot.services.session import SessionContext
from onthespot.store.base import Document, Query, RemoteStore, Subscription

logger = logging.getLogger(__name__)

SPOTS = "spots"

StatusListener = Callable[[Location], None]


class LocationDirectory:
    """
    스팟 목록의 소유자.

    - locations: 현재 viewer 에게 보이는 스팟 (숨김/차단 작성자 제외), 원격 변경 시 갱신
    - 상태 변경은 스토어 도착 순서 기준 last-writer-wins. 원격 스냅샷이 그대로 반영되고,
      내 쓰기가 아직 진행 중인 스팟만 로컬 값을 유지한다.
    - 포인트는 스팟 쓰기가 스토어에 반영된 뒤에 지급한다 (실패한 쓰기에는 지급 없음).
    - delete 는 모든 사용자에게서 지우는 전역 삭제, hide 는 내 화면에서만 숨김.
    """

    def __init__(
        self,
        store: RemoteStore,
        session: SessionContext,
        moderation: ModerationLedger,
        profile: ProfileStore,
        writes: PendingWriteLog,
        notifier: Optional[NotificationSink] = None,
    ):
        self.store = store
        self.session = session
        self.moderation = moderation
        self.profile = profile
        self.writes = writes
        self.notifier = notifier
        self.locations: LiveValue[List[Location]] = LiveValue([])
        self._all: Dict[str, Location] = {}
        # 원격 확인 전인 추가/삭제 (원격 스냅샷이 먼저 도착해도 로컬 상태 유지)
        self._pending_adds: Dict[str, Location] = {}
        self._pending_deletes: set = set()
        # 스팟별 진행 중인 상태/수정 쓰기 수, 마지막으로 받은 원격 값
        self._in_flight: Dict[str, int] = {}
        self._remote: Dict[str, Location] = {}
        self._status_listeners: List[StatusListener] = []
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        moderation.hidden_spot_ids.observe(lambda _: self._refilter())
        moderation.blocked_user_ids.observe(lambda _: self._refilter())

    # --- 원격 동기화 ---

    async def start(self) -> None:
        """spots 전체 구독 시작 (공개 읽기라 로그인 불필요)."""
        if self._subscription is not None:
            return
        self._subscription = await self.store.subscribe(Query(SPOTS))
        self._task = asyncio.create_task(self._pump(self._subscription))
        logger.info("location directory: listening to %s", SPOTS)

    async def _pump(self, subscription: Subscription) -> None:
        try:
            async for docs in subscription:
                self._apply_remote(docs)
        except Exception as e:
            logger.warning("location directory: listener failed, data is stale: %s", e)
            self.locations.mark_stale()

    def _apply_remote(self, docs: List[Document]) -> None:
        remote: Dict[str, Location] = {}
        for doc in docs:
            try:
                location = Location.from_doc(doc)
            except Exception as e:
                logger.warning("skipping malformed spot %s: %s", doc.get("id"), e)
                continue
            remote[location.id] = location
        self._remote = dict(remote)
        for location_id in self._in_flight:
            local = self._all.get(location_id)
            if local is not None and location_id in remote:
                remote[location_id] = local
        for location_id, location in self._pending_adds.items():
            remote.setdefault(location_id, location)
        for location_id in self._pending_deletes:
            remote.pop(location_id, None)
        self._all = remote
        self.locations.mark_fresh()
        self._refilter()

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            await subscription.close()
        if task is not None:
            await task

    # --- 조회 ---

    def _is_visible(self, location: Location) -> bool:
        if self.moderation.is_hidden(location.id):
            return False
        return not self.moderation.is_blocked(location.created_by)

    def _refilter(self) -> None:
        self.locations.set([loc for loc in self._all.values() if self._is_visible(loc)])

    def list(self, viewer_id: Optional[str] = None) -> List[Location]:
        """
        viewer 에게 보이는 스팟 목록.
        숨김/차단 목록은 현재 세션 viewer 의 것만 로컬에 있으므로 다른 viewer 는 거부.
        """
        if viewer_id is not None and viewer_id != self.session.current_user_id():
            raise PermissionDenied("Can only list spots for the signed-in viewer")
        return list(self.locations.value)

    def get(self, location_id: str) -> Location:
        location = self._all.get(location_id)
        if location is None:
            raise NotFoundError(f"Spot {location_id} not found")
        return location

    def search(
        self, text: Optional[str] = None, category: Optional[str] = None, vibe: Optional[str] = None
    ) -> List[Location]:
        return spot_search.filter_spots(self.list(), text=text, category=category, vibe=vibe)

    def nearby(self, lat: float, lng: float, radius_m: float) -> List[Tuple[Location, float]]:
        return spot_search.nearby(self.list(), lat, lng, radius_m)

    def on_status_changed(self, listener: StatusListener) -> Callable[[], None]:
        """상태 변경 이벤트 구독 (알림 협력자용). 해제 함수를 반환."""
        self._status_listeners.append(listener)
        return lambda: self._status_listeners.remove(listener)

    # --- 낙관적 변경 헬퍼 ---

    def _put_local(self, location: Location) -> None:
        self._all[location.id] = location
        self._refilter()

    def _restore(self, expected: Location, previous: Optional[Location]) -> Callable[[], None]:
        """
        rollback: 이후의 로컬 변경이 덮어쓰지 않았을 때만 복원.
        쓰는 동안 받은 원격 값이 있으면 그쪽이 스토어의 현재 상태다.
        """

        def _rollback() -> None:
            current = self._all.get(expected.id)
            if current is None or current.model_dump() != expected.model_dump():
                return
            restored = self._remote.get(expected.id, previous)
            if restored is None:
                self._all.pop(expected.id, None)
                self._refilter()
            else:
                self._put_local(restored)

        return _rollback

    def _submit_spot_write(
        self,
        location_id: str,
        description: str,
        write: Callable[[], Awaitable[None]],
        rollback: Callable[[], None],
    ) -> None:
        """같은 스팟의 쓰기는 제출 순서대로. 끝날 때까지 원격 스냅샷이 로컬 값을 덮지 않는다."""
        self._in_flight[location_id] = self._in_flight.get(location_id, 0) + 1

        def _settled(_task) -> None:
            remaining = self._in_flight.get(location_id, 1) - 1
            if remaining > 0:
                self._in_flight[location_id] = remaining
            else:
                self._in_flight.pop(location_id, None)

        entry = self.writes.submit(description, write, rollback, key=(SPOTS, location_id))
        entry.task.add_done_callback(_settled)

    # --- 변경 ---

    def add(self, location: Location) -> Location:
        """
        새 스팟 추가. id 가 없으면 부여, 카테고리 축 결정, 작성자/시각 기록.
        스토어에 반영되면 추가한 사용자에게 +50 points, spotsAdded +1.
        """
        user_id = self.session.require_user()
        if not location.name.strip():
            raise ValidationError("Spot name is required")
        category_class = classify_category(location.category)
        if not is_status_allowed(category_class, location.current_status):
            raise ValidationError(f"{location.current_status.value} is not valid for {location.category}")

        created = location.model_copy(
            update={
                "id": location.id or str(uuid.uuid4()),
                "name": location.name.strip(),
                "category_class": category_class,
                "last_update": utc_now(),
                "created_by": user_id,
            }
        )
        if created.id in self._all:
            raise ValidationError(f"Spot {created.id} already exists")

        self._put_local(created)
        self._pending_adds[created.id] = created
        doc = created.to_doc()
        restore = self._restore(created, None)

        async def _write() -> None:
            await self.store.set(SPOTS, created.id, doc)
            self._pending_adds.pop(created.id, None)
            self.profile.record_spot_added(user_id)

        def _rollback() -> None:
            self._pending_adds.pop(created.id, None)
            restore()

        self._submit_spot_write(created.id, f"add spot {created.id}", _write, _rollback)
        return created

    def update_status(self, location_id: str, new_status: LocationStatus) -> Location:
        """
        상태 보고. 로컬에는 즉시 반영(원격 확인 대기 없음), 반영되면 +10 points,
        상태 변경 이벤트와 알림 싱크 deliver 를 발생시킨다.
        """
        user_id = self.session.require_user()
        current = self.get(location_id)
        new_status = LocationStatus(new_status)
        if not is_status_allowed(current.category_class, new_status):
            raise ValidationError(
                f"{new_status.value} is not valid for a {current.category_class.value} spot"
            )

        now = utc_now()
        last_update: datetime = max(now, current.last_update)
        updated = current.model_copy(update={"current_status": new_status, "last_update": last_update})
        self._put_local(updated)

        fields = {
            "currentStatus": new_status.value,
            "lastUpdate": updated.to_doc()["lastUpdate"],
        }

        async def _write() -> None:
            await self.store.update(SPOTS, location_id, fields)
            self.profile.record_status_update(user_id)

        self._submit_spot_write(
            location_id, f"update status of spot {location_id}", _write, self._restore(updated, current)
        )
        self._emit_status_changed(updated)
        return updated

    def _emit_status_changed(self, location: Location) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(location)
            except Exception:
                logger.exception("status listener failed")
        if self.notifier is not None:
            title, body, icon = status_change_notification(location)
            self.notifier.deliver(title, body, icon)

    def edit(self, location_id: str, name: Optional[str] = None, category: Optional[str] = None) -> Location:
        """
        이름/카테고리 수정. 카테고리가 바뀌면 축을 다시 결정하고,
        현재 상태가 새 축에 없으면 새 축의 기본 상태로 바꾼다.
        """
        self.session.require_user()
        current = self.get(location_id)
        changes: Document = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Spot name is required")
            changes["name"] = name.strip()
        if category is not None and category != current.category:
            category_class = classify_category(category)
            changes["category"] = category
            changes["category_class"] = category_class
            if not is_status_allowed(category_class, current.current_status):
                changes["current_status"] = default_status(category_class)
                changes["last_update"] = max(utc_now(), current.last_update)
        if not changes:
            return current

        updated = current.model_copy(update=changes)
        self._put_local(updated)
        doc = updated.to_doc()
        fields = {key: doc[key] for key in doc if key in {
            "name", "category", "categoryClass", "currentStatus", "lastUpdate"
        }}

        async def _write() -> None:
            await self.store.update(SPOTS, location_id, fields)

        self._submit_spot_write(
            location_id, f"edit spot {location_id}", _write, self._restore(updated, current)
        )
        return updated

    def hide(self, location_id: str, viewer_id: Optional[str] = None) -> bool:
        """
        viewer 의 숨김 목록에 추가하고 목록에서 즉시 제거 (원격 확인 대기 없음).
        이미 숨긴 스팟이면 no-op. 로그인하지 않았으면 no-op.
        """
        if viewer_id is not None and viewer_id != self.session.current_user_id():
            raise PermissionDenied("Can only hide spots for the signed-in viewer")
        return self.moderation.hide_location(location_id)

    def delete(self, location_id: str) -> None:
        """공유 스토어에서 문서 자체를 삭제 (모든 viewer 에게서 사라짐). 권한 검사는 호출자 몫."""
        current = self.get(location_id)
        self._all.pop(location_id, None)
        self._pending_adds.pop(location_id, None)
        self._pending_deletes.add(location_id)
        self._refilter()

        async def _write() -> None:
            await self.store.delete(SPOTS, location_id)
            self._pending_deletes.discard(location_id)

        def _rollback() -> None:
            self._pending_deletes.discard(location_id)
            if location_id not in self._all:
                self._put_local(current)

        self._submit_spot_write(location_id, f"delete spot {location_id}", _write, _rollback)
