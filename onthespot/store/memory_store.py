# MemoryStore: 프로세스 내 RemoteStore 구현 (테스트 / STORE_BACKEND=memory 오프라인 모드)

import asyncio
import copy
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from onthespot.errors import CapacityExceededError, NotFoundError
from onthespot.store.base import Document, Query, RemoteStore, Subscription

logger = logging.getLogger(__name__)


class MemoryStore(RemoteStore):
    """
    dict 기반 문서 스토어.

    각 연산은 진입 시 한 번 양보(await asyncio.sleep(0))한 뒤 await 없이 끝까지 실행되므로
    이벤트 루프 안에서 원자적이다. 동시 요청은 실제 네트워크처럼 서로 끼어들 수 있다.

    bounded_add=False 로 만들면 add_to_set 의 limit_field 를 평가하지 않는다
    (서버측 조건부 쓰기가 없는 스토어 흉내).
    """

    def __init__(self, bounded_add: bool = True):
        self.supports_bounded_add = bounded_add
        self._docs: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._query_subs: Dict[str, List[Tuple[Query, Subscription]]] = defaultdict(list)
        self._doc_subs: Dict[Tuple[str, str], List[Subscription]] = defaultdict(list)

    # --- 내부 헬퍼 ---

    def _snapshot(self, query: Query) -> List[Document]:
        docs = self._docs.get(query.collection, {})
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in docs.items()
            if query.matches(doc)
        ]

    def _doc_snapshot(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._docs.get(collection, {}).get(doc_id)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": doc_id}

    def _notify(self, collection: str, doc_id: str) -> None:
        for query, sub in list(self._query_subs.get(collection, [])):
            sub.push(self._snapshot(query))
        for sub in list(self._doc_subs.get((collection, doc_id), [])):
            sub.push(self._doc_snapshot(collection, doc_id))

    def _existing(self, collection: str, doc_id: str, create_missing: bool) -> Document:
        docs = self._docs[collection]
        if doc_id not in docs:
            if not create_missing:
                raise NotFoundError(f"{collection}/{doc_id} not found")
            docs[doc_id] = {}
        return docs[doc_id]

    # --- RemoteStore ---

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await asyncio.sleep(0)
        return self._doc_snapshot(collection, doc_id)

    async def set(self, collection: str, doc_id: str, doc: Document, merge: bool = False) -> None:
        await asyncio.sleep(0)
        payload = copy.deepcopy({k: v for k, v in doc.items() if k != "id"})
        docs = self._docs[collection]
        if merge and doc_id in docs:
            docs[doc_id].update(payload)
        else:
            docs[doc_id] = payload
        self._notify(collection, doc_id)

    async def add(self, collection: str, doc: Document) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, doc)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        await asyncio.sleep(0)
        existing = self._existing(collection, doc_id, create_missing=False)
        existing.update(copy.deepcopy(fields))
        self._notify(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.sleep(0)
        if self._docs[collection].pop(doc_id, None) is not None:
            self._notify(collection, doc_id)

    async def add_to_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        limit_field: Optional[str] = None,
        create_missing: bool = False,
    ) -> bool:
        await asyncio.sleep(0)
        doc = self._existing(collection, doc_id, create_missing)
        values = doc.setdefault(field_name, [])
        if value in values:
            return False
        if limit_field is not None and self.supports_bounded_add:
            limit = doc.get(limit_field)
            if limit is not None and len(values) >= limit:
                raise CapacityExceededError(f"{collection}/{doc_id} is full")
        values.append(value)
        self._notify(collection, doc_id)
        return True

    async def remove_from_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        create_missing: bool = False,
    ) -> bool:
        await asyncio.sleep(0)
        doc = self._existing(collection, doc_id, create_missing)
        values = doc.setdefault(field_name, [])
        if value not in values:
            return False
        values.remove(value)
        self._notify(collection, doc_id)
        return True

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        amount: int,
        create_missing: bool = False,
    ) -> int:
        await asyncio.sleep(0)
        doc = self._existing(collection, doc_id, create_missing)
        doc[field_name] = (doc.get(field_name) or 0) + amount
        self._notify(collection, doc_id)
        return doc[field_name]

    async def query(self, query: Query) -> List[Document]:
        await asyncio.sleep(0)
        return self._snapshot(query)

    async def subscribe(self, query: Query) -> Subscription:
        entry: List[Tuple[Query, Subscription]] = self._query_subs[query.collection]

        async def _unsubscribe() -> None:
            entry[:] = [(q, s) for q, s in entry if s is not sub]

        sub = Subscription(on_close=_unsubscribe)
        entry.append((query, sub))
        sub.push(self._snapshot(query))
        logger.debug("memory store: subscribed to %s", query.collection)
        return sub

    async def subscribe_document(self, collection: str, doc_id: str) -> Subscription:
        entry = self._doc_subs[(collection, doc_id)]

        async def _unsubscribe() -> None:
            if sub in entry:
                entry.remove(sub)

        sub = Subscription(on_close=_unsubscribe)
        entry.append(sub)
        sub.push(self._doc_snapshot(collection, doc_id))
        return sub
