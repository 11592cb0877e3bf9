# 관찰 가능한 로컬 상태
# - LiveValue: 서비스가 소유한 값 (스팟 목록, 모더레이션 집합, 프로필 ...)
# - LiveQuery: 스토어 구독을 도메인 객체 스냅샷으로 변환해 전달 (plan 목록, 채팅 기록)

import asyncio
import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

from onthespot.store.base import Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")

Observer = Callable[[Any], None]

_NOTHING = object()


class LiveValue(Generic[T]):
    """
    값 + 옵저버 목록. set() 은 소유 서비스만 호출한다 (단일 이벤트 루프 → 락 불필요).

    stale=True 는 원격 구독이 끊겨 값이 더 이상 갱신되지 않는다는 뜻.
    """

    def __init__(self, value: T):
        self._value = value
        self._observers: List[Observer] = []
        self.stale = False

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._emit()

    def mark_stale(self) -> None:
        self.stale = True
        self._emit()

    def mark_fresh(self) -> None:
        self.stale = False

    def observe(self, observer: Observer) -> Callable[[], None]:
        """옵저버 등록. 해제 함수를 반환."""
        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    def _emit(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self._value)
            except Exception:
                logger.exception("live value observer failed")

    async def watch(self):
        """현재 값 1회 + 변경마다 값을 내보내는 async generator (SSE 용)."""
        queue: asyncio.Queue = asyncio.Queue()
        remove = self.observe(queue.put_nowait)
        try:
            yield self._value
            while True:
                yield await queue.get()
        finally:
            remove()


class LiveQuery(Generic[T]):
    """
    Subscription 의 원시 스냅샷을 transform 으로 변환해 전달.

    변경마다 전체 목록을 다시 전달한다 (증분 diff 아님).
    전달 오류가 나면 stale=True 로 표시하고 iteration 을 끝낸다.
    """

    def __init__(self, subscription: Subscription, transform: Callable[[Any], T]):
        self._subscription = subscription
        self._transform = transform
        self._raw: Any = _NOTHING
        self.latest: Optional[T] = None
        self.stale = False

    def refresh(self) -> Optional[T]:
        """필터 조건(차단 목록 등)이 바뀌었을 때 마지막 원시 스냅샷을 다시 변환."""
        if self._raw is not _NOTHING:
            self.latest = self._transform(self._raw)
        return self.latest

    def __aiter__(self) -> "LiveQuery[T]":
        return self

    async def __anext__(self) -> T:
        try:
            raw = await self._subscription.__anext__()
        except StopAsyncIteration:
            raise
        except Exception as e:
            logger.warning("live query went stale: %s", e)
            self.stale = True
            raise StopAsyncIteration
        self._raw = raw
        self.latest = self._transform(raw)
        return self.latest

    async def first(self) -> T:
        """첫 스냅샷을 기다려 반환 (구독 직후 초기 스냅샷)."""
        return await self.__anext__()

    async def close(self) -> None:
        await self._subscription.close()

    @property
    def closed(self) -> bool:
        return self._subscription.closed

