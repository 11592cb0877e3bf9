# RemoteStore: 원격 문서 스토어 어댑터 인터페이스 + 라이브 구독 객체

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

Document = Dict[str, Any]

_CLOSED = object()


@dataclass(frozen=True)
class Query:
    """컬렉션 + equality 필터. 정렬은 호출자가 담당."""

    collection: str
    filters: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def where(cls, collection: str, **filters: Any) -> "Query":
        return cls(collection, tuple(sorted(filters.items())))

    def matches(self, doc: Document) -> bool:
        return all(doc.get(k) == v for k, v in self.filters)


def messages_collection(plan_id: str) -> str:
    return f"plans/{plan_id}/messages"


class Subscription:
    """
    라이브 구독. 변경이 있을 때마다 전체 스냅샷을 async iterator 로 전달한다.

    - close(): 구독 해제 (이후 iteration 종료)
    - fail(exc): 전달 오류로 구독 종료. iteration 은 exc 를 raise 하고 error 에 남는다.
    """

    def __init__(self, on_close: Optional[Callable[[], Awaitable[None]]] = None):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self.closed = False
        self.error: Optional[BaseException] = None

    def push(self, snapshot: Any) -> None:
        if not self.closed:
            self._queue.put_nowait(snapshot)

    def fail(self, exc: BaseException) -> None:
        if self.closed:
            return
        self.error = exc
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    async def close(self) -> None:
        if self.closed and self._on_close is None:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            await on_close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            if self.error is not None:
                raise self.error
            raise StopAsyncIteration
        return item


class RemoteStore(ABC):
    """
    원격 문서 스토어. 모든 연산은 코루틴이며 코어는 동기 완료를 가정하지 않는다.

    set 계열 필드(participants, hiddenSpots, blockedUsers)는 삽입 순서를 보존하는 list 로 저장.
    add_to_set / remove_from_set / increment 는 스토어 쪽에서 원자적으로 수행되어야 한다.
    """

    # add_to_set(limit_field=...) 의 정원 검사를 스토어가 원자적으로 평가할 수 있는지
    supports_bounded_add: bool = True

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, doc: Document, merge: bool = False) -> None:
        ...

    @abstractmethod
    async def add(self, collection: str, doc: Document) -> str:
        """스토어가 id 를 부여해 문서 추가, 부여된 id 반환."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        """부분 갱신. 문서가 없으면 NotFoundError."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    async def add_to_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        limit_field: Optional[str] = None,
        create_missing: bool = False,
    ) -> bool:
        """
        원자적 set-union. 이미 있으면 False.

        limit_field 가 주어지면 len(field) >= doc[limit_field] 일 때 CapacityExceededError
        (supports_bounded_add=False 인 스토어는 limit_field 를 무시).
        문서가 없으면 create_missing 일 때 새로 만들고, 아니면 NotFoundError.
        """

    @abstractmethod
    async def remove_from_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        create_missing: bool = False,
    ) -> bool:
        """원자적 set-difference. 없던 값이면 False."""

    @abstractmethod
    async def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        amount: int,
        create_missing: bool = False,
    ) -> int:
        """원자적 증가. 증가 후 값 반환."""

    @abstractmethod
    async def query(self, query: Query) -> List[Document]:
        """1회 조회. 각 문서에 "id" 키 포함."""

    @abstractmethod
    async def subscribe(self, query: Query) -> Subscription:
        """쿼리 결과 전체 스냅샷(list)을 초기 1회 + 변경마다 전달."""

    @abstractmethod
    async def subscribe_document(self, collection: str, doc_id: str) -> Subscription:
        """단일 문서(dict 또는 None)를 초기 1회 + 변경마다 전달."""

    async def close(self) -> None:
        return None
