import asyncio
from typing import Optional, Set

import pytest

from onthespot.errors import OnTheSpotError, RemoteWriteFailure
from onthespot.services.app_services import AppServices
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.session import SessionContext, StaticIdentityProvider
from onthespot.store.memory_store import MemoryStore


class FlakyStore(MemoryStore):
    """
    쓰기 실패/지연을 흉내내는 MemoryStore.
    failures 회 만큼 error 를 던진 뒤 정상 동작. only 가 주어지면 그 컬렉션의 쓰기에만 적용.
    """

    def __init__(
        self,
        failures: int = 0,
        error: Optional[OnTheSpotError] = None,
        delay: float = 0.0,
        only: Optional[Set[str]] = None,
        bounded_add: bool = True,
    ):
        super().__init__(bounded_add=bounded_add)
        self.failures = failures
        self.error = error or RemoteWriteFailure("store unavailable")
        self.delay = delay
        self.only = only
        self.write_attempts = 0

    async def _maybe_fail(self, collection: str) -> None:
        if self.only is not None and collection not in self.only:
            return
        self.write_attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise self.error

    async def set(self, collection, doc_id, doc, merge=False):
        await self._maybe_fail(collection)
        return await super().set(collection, doc_id, doc, merge)

    async def update(self, collection, doc_id, fields):
        await self._maybe_fail(collection)
        return await super().update(collection, doc_id, fields)

    async def delete(self, collection, doc_id):
        await self._maybe_fail(collection)
        return await super().delete(collection, doc_id)

    async def add_to_set(self, collection, doc_id, field_name, value, limit_field=None, create_missing=False):
        await self._maybe_fail(collection)
        return await super().add_to_set(collection, doc_id, field_name, value, limit_field, create_missing)

    async def remove_from_set(self, collection, doc_id, field_name, value, create_missing=False):
        await self._maybe_fail(collection)
        return await super().remove_from_set(collection, doc_id, field_name, value, create_missing)

    async def increment(self, collection, doc_id, field_name, amount, create_missing=False):
        await self._maybe_fail(collection)
        return await super().increment(collection, doc_id, field_name, amount, create_missing)


async def settle(services: AppServices, rounds: int = 10) -> None:
    """백그라운드 쓰기를 끝내고, 구독 pump 가 스냅샷을 처리할 때까지 루프를 양보."""
    await services.settle()
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_writes() -> PendingWriteLog:
    return PendingWriteLog(timeout=1.0, max_attempts=3, backoff=0.001)


async def start_services(store: MemoryStore, user_id: Optional[str] = "alice") -> AppServices:
    session = SessionContext(StaticIdentityProvider(user_id))
    services = AppServices(store, session, make_writes())
    await services.start()
    await settle(services)
    return services


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
async def services(store):
    services = await start_services(store, "alice")
    yield services
    await services.stop()


@pytest.fixture
async def other_device(store):
    """같은 스토어를 보는 두 번째 기기 (bob)."""
    services = await start_services(store, "bob")
    yield services
    await services.stop()
