# ModerationLedger: 사용자별 숨김 스팟 / 차단 사용자 집합 + 신고
# users/{uid}.hiddenSpots / users/{uid}.blockedUsers 와 양방향 동기화

import asyncio
import logging
from typing import Dict, FrozenSet, Optional, Set, Tuple

from onthespot.errors import ValidationError
from onthespot.realtime.live import LiveValue
from onthespot.schemas.moderation import Report
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.session import SessionContext
from onthespot.store.base import Document, RemoteStore, Subscription

logger = logging.getLogger(__name__)

USERS = "users"
REPORTS = "reports"
HIDDEN_FIELD = "hiddenSpots"
BLOCKED_FIELD = "blockedUsers"


class ModerationLedger:
    """
    보는 사람(viewer) 기준의 필터 목록. 전역 삭제가 아니라 내 화면에서만 거른다.

    로컬 집합은 낙관적으로 먼저 바뀌고 원격 쓰기는 PendingWriteLog 로 보낸다.
    원격 스냅샷이 도착하면 로컬 집합을 교체하되, 아직 쓰는 중인 변경은 유지한다.
    로그인하지 않은 상태의 변경 요청은 no-op (False 반환).
    """

    def __init__(self, store: RemoteStore, session: SessionContext, writes: PendingWriteLog):
        self.store = store
        self.session = session
        self.writes = writes
        self.hidden_spot_ids: LiveValue[FrozenSet[str]] = LiveValue(frozenset())
        self.blocked_user_ids: LiveValue[FrozenSet[str]] = LiveValue(frozenset())
        # field -> (추가 중인 값, 제거 중인 값)
        self._in_flight = {
            HIDDEN_FIELD: (set(), set()),
            BLOCKED_FIELD: (set(), set()),
        }
        # (field, value) 별 마지막 로컬 변경 번호. 뒤에 바뀐 값은 앞선 쓰기가 건드리지 않는다
        self._generation: Dict[Tuple[str, str], int] = {}
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    def _live(self, field_name: str) -> LiveValue[FrozenSet[str]]:
        return self.hidden_spot_ids if field_name == HIDDEN_FIELD else self.blocked_user_ids

    # --- 원격 동기화 ---

    async def start(self) -> None:
        user_id = self.session.current_user_id()
        if user_id is None or self._subscription is not None:
            return
        self._subscription = await self.store.subscribe_document(USERS, user_id)
        self._task = asyncio.create_task(self._pump(self._subscription))
        logger.info("moderation ledger: listening to users/%s", user_id)

    async def _pump(self, subscription: Subscription) -> None:
        try:
            async for doc in subscription:
                self._apply_remote(doc)
        except Exception as e:
            logger.warning("moderation ledger: listener failed, data is stale: %s", e)
            self.hidden_spot_ids.mark_stale()
            self.blocked_user_ids.mark_stale()

    def _apply_remote(self, doc: Optional[Document]) -> None:
        for field_name in (HIDDEN_FIELD, BLOCKED_FIELD):
            adding, removing = self._in_flight[field_name]
            remote: Set[str] = set((doc or {}).get(field_name) or [])
            merged = frozenset((remote | adding) - removing)
            live = self._live(field_name)
            live.mark_fresh()
            if merged != live.value:
                live.set(merged)

    async def stop(self) -> None:
        """로그아웃 시 구독 해제 + 로컬 집합 초기화."""
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            await subscription.close()
        if task is not None:
            await task
        for adding, removing in self._in_flight.values():
            adding.clear()
            removing.clear()
        self.hidden_spot_ids.set(frozenset())
        self.blocked_user_ids.set(frozenset())

    # --- 변경 ---

    def _change(self, field_name: str, value: str, adding: bool) -> bool:
        user_id = self.session.current_user_id()
        if user_id is None:
            return False
        live = self._live(field_name)
        if (value in live.value) == adding:
            return False

        generation = self._generation.get((field_name, value), 0) + 1
        self._generation[(field_name, value)] = generation
        in_adding, in_removing = self._in_flight[field_name]
        (in_adding if adding else in_removing).add(value)
        (in_removing if adding else in_adding).discard(value)
        live.set(live.value | {value} if adding else live.value - {value})

        async def _write() -> None:
            if adding:
                await self.store.add_to_set(USERS, user_id, field_name, value, create_missing=True)
            else:
                await self.store.remove_from_set(USERS, user_id, field_name, value, create_missing=True)
            if self._is_latest(field_name, value, generation):
                (in_adding if adding else in_removing).discard(value)

        def _rollback() -> None:
            if not self._is_latest(field_name, value, generation):
                return
            (in_adding if adding else in_removing).discard(value)
            current = live.value
            live.set(current - {value} if adding else current | {value})

        verb = "add" if adding else "remove"
        self.writes.submit(
            f"{verb} {value} in users/{user_id}.{field_name}", _write, _rollback, key=(USERS, user_id)
        )
        return True

    def _is_latest(self, field_name: str, value: str, generation: int) -> bool:
        return self._generation.get((field_name, value)) == generation

    def hide_location(self, spot_id: str) -> bool:
        """숨김 목록에 추가. 이미 숨긴 스팟이면 no-op."""
        return self._change(HIDDEN_FIELD, spot_id, adding=True)

    def unhide_location(self, spot_id: str) -> bool:
        return self._change(HIDDEN_FIELD, spot_id, adding=False)

    def block_user(self, user_id: str) -> bool:
        """
        단방향 차단. 상대의 기존 콘텐츠를 지우지 않고 이후 읽기에서만 거른다.
        """
        if user_id == self.session.current_user_id():
            raise ValidationError("You cannot block yourself")
        return self._change(BLOCKED_FIELD, user_id, adding=True)

    def is_blocked(self, user_id: Optional[str]) -> bool:
        return user_id is not None and user_id in self.blocked_user_ids.value

    def is_hidden(self, spot_id: str) -> bool:
        return spot_id in self.hidden_spot_ids.value

    def report(self, content_id: str, kind: str, reason: str, reporter_id: Optional[str] = None) -> Report:
        """신고 기록을 reports 에 추가 (fire-and-forget, 다시 읽지 않음)."""
        if not content_id or not reason.strip():
            raise ValidationError("content_id and reason are required")
        report = Report(
            content_id=content_id,
            kind=kind,
            reason=reason.strip(),
            reporter_id=reporter_id or self.session.current_user_id() or "anon",
        )
        doc = report.to_doc()

        async def _write() -> None:
            await self.store.add(REPORTS, doc)

        self.writes.submit(f"report {kind} {content_id}", _write)
        return report
