# AppServices: 한 기기 세션의 서비스 묶음 (전역 싱글톤 없이 store + session 으로 명시적 구성)

import asyncio
import logging
from typing import Optional, Set

from onthespot.services.chat_channel import ChatChannel
from onthespot.services.location_directory import LocationDirectory
from onthespot.services.moderation_ledger import ModerationLedger
from onthespot.services.notifications import NotificationFeed
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.plan_registry import PlanRegistry
from onthespot.services.profile_store import ProfileStore
from onthespot.services.session import SessionContext
from onthespot.store.base import RemoteStore

logger = logging.getLogger(__name__)


class AppServices:
    """
    로그인/로그아웃 시 사용자 범위 리스너(모더레이션, 프로필)를 다시 붙인다.
    spots 구독은 공개 읽기라 세션과 무관하게 유지.
    """

    def __init__(
        self,
        store: RemoteStore,
        session: Optional[SessionContext] = None,
        writes: Optional[PendingWriteLog] = None,
    ):
        self.store = store
        self.session = session or SessionContext()
        self.writes = writes or PendingWriteLog()
        self.feed = NotificationFeed()
        self.moderation = ModerationLedger(store, self.session, self.writes)
        self.profile = ProfileStore(store, self.session, self.writes)
        self.directory = LocationDirectory(
            store, self.session, self.moderation, self.profile, self.writes, notifier=self.feed
        )
        self.plans = PlanRegistry(store, self.session, self.moderation)
        self.chat = ChatChannel(store, self.session, self.moderation, self.profile, self.writes)
        self._remove_auth_listener = None
        self._auth_tasks: Set[asyncio.Task] = set()

    async def start(self) -> None:
        await self.directory.start()
        await self._start_user_listeners()
        self._remove_auth_listener = self.session.add_listener(self._on_auth_changed)

    async def _start_user_listeners(self) -> None:
        await self.moderation.start()
        await self.profile.start()

    async def _restart_user_listeners(self) -> None:
        await self.moderation.stop()
        await self.profile.stop()
        await self._start_user_listeners()

    def _on_auth_changed(self, user_id: Optional[str]) -> None:
        logger.info("auth changed (user=%s), restarting user listeners", user_id)
        task = asyncio.get_running_loop().create_task(self._restart_user_listeners())
        self._auth_tasks.add(task)
        task.add_done_callback(self._auth_tasks.discard)

    async def settle(self) -> None:
        """진행 중인 리스너 재시작과 쓰기가 끝날 때까지 대기."""
        while self._auth_tasks:
            await asyncio.gather(*list(self._auth_tasks))
        await self.writes.drain()

    async def stop(self) -> None:
        if self._remove_auth_listener is not None:
            self._remove_auth_listener()
            self._remove_auth_listener = None
        await self.settle()
        await self.directory.stop()
        await self.moderation.stop()
        await self.profile.stop()
        logger.info("services stopped")
