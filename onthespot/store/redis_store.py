# RedisStore: Redis 위의 RemoteStore 구현
# - 문서: Redis HASH ({prefix}doc:{collection}:{id}), 필드마다 값을 JSON 으로 따로 저장
# - 컬렉션 인덱스: Redis SET ({prefix}idx:{collection})
# - 변경 알림: Pub/Sub ({prefix}chan:{collection}) → 구독자는 스냅샷을 다시 읽어 전달
# 모든 변경 연산은 Lua 스크립트 1회로 실행 → 서버에서 원자적으로 평가 (정원 검사 포함)
# 스크립트는 바꾸는 필드만 건드린다. 좌표 같은 나머지 필드는 받은 JSON 그대로 남는다 (cjson 재인코딩 없음)

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from onthespot.errors import CapacityExceededError, NotFoundError, RemoteWriteFailure
from onthespot.store.base import Document, Query, RemoteStore, Subscription

logger = logging.getLogger(__name__)

# 구독 read() 가 "이번 변경은 무관" 을 알리는 표식
_SKIP = object()

# KEYS[1]=doc, KEYS[2]=idx, KEYS[3]=chan / ARGV[1]=id, ARGV[2]=merge(0/1), ARGV[3..]=field, json 쌍
_SET_LUA = """
if ARGV[2] ~= '1' then redis.call('DEL', KEYS[1]) end
if #ARGV > 2 then redis.call('HSET', KEYS[1], unpack(ARGV, 3)) end
redis.call('SADD', KEYS[2], ARGV[1])
redis.call('PUBLISH', KEYS[3], ARGV[1])
return 1
"""

# ARGV[2..]=field, json 쌍
_UPDATE_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then return redis.error_reply('not_found') end
if #ARGV > 1 then redis.call('HSET', KEYS[1], unpack(ARGV, 2)) end
redis.call('PUBLISH', KEYS[3], ARGV[1])
return 1
"""

_DELETE_LUA = """
local removed = redis.call('DEL', KEYS[1])
redis.call('SREM', KEYS[2], ARGV[1])
if removed > 0 then redis.call('PUBLISH', KEYS[3], ARGV[1]) end
return removed
"""

# ARGV[2]=field, ARGV[3]=value json, ARGV[4]=limit field ('' = 없음), ARGV[5]=create_missing(0/1)
_ADD_TO_SET_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  if ARGV[5] ~= '1' then return redis.error_reply('not_found') end
  redis.call('SADD', KEYS[2], ARGV[1])
end
local raw = redis.call('HGET', KEYS[1], ARGV[2])
local values = {}
if raw then values = cjson.decode(raw) end
if type(values) ~= 'table' then values = {} end
local value = cjson.decode(ARGV[3])
for _, v in ipairs(values) do
  if v == value then return 0 end
end
if ARGV[4] ~= '' then
  local limit = tonumber(redis.call('HGET', KEYS[1], ARGV[4]))
  if limit and #values >= limit then return redis.error_reply('capacity_exceeded') end
end
table.insert(values, value)
redis.call('HSET', KEYS[1], ARGV[2], cjson.encode(values))
redis.call('PUBLISH', KEYS[3], ARGV[1])
return 1
"""

# ARGV[2]=field, ARGV[3]=value json, ARGV[4]=create_missing
_REMOVE_FROM_SET_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  if ARGV[4] ~= '1' then return redis.error_reply('not_found') end
  redis.call('SADD', KEYS[2], ARGV[1])
  redis.call('HSET', KEYS[1], ARGV[2], '[]')
  return 0
end
local raw = redis.call('HGET', KEYS[1], ARGV[2])
local values = {}
if raw then values = cjson.decode(raw) end
if type(values) ~= 'table' then values = {} end
local value = cjson.decode(ARGV[3])
local kept = {}
local removed = 0
for _, v in ipairs(values) do
  if v == value then removed = 1 else table.insert(kept, v) end
end
if removed == 0 then return 0 end
if #kept == 0 then
  redis.call('HSET', KEYS[1], ARGV[2], '[]')
else
  redis.call('HSET', KEYS[1], ARGV[2], cjson.encode(kept))
end
redis.call('PUBLISH', KEYS[3], ARGV[1])
return 1
"""

# ARGV[2]=field, ARGV[3]=amount, ARGV[4]=create_missing
_INCREMENT_LUA = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  if ARGV[4] ~= '1' then return redis.error_reply('not_found') end
  redis.call('SADD', KEYS[2], ARGV[1])
end
local updated = redis.call('HINCRBY', KEYS[1], ARGV[2], ARGV[3])
redis.call('PUBLISH', KEYS[3], ARGV[1])
return updated
"""


def encode_fields(doc: Document) -> List[str]:
    """문서 → HSET 인자 (field, json, field, json, ...)."""
    args: List[str] = []
    for key, value in doc.items():
        if key == "id":
            continue
        args.extend([key, json.dumps(value)])
    return args


def decode_document(fields: Dict[str, str]) -> Document:
    """
    HASH 필드별 JSON → 문서.
    Lua cjson 은 빈 table 을 {} 로 인코딩한다. 저장 문서에는 map 필드가 없으므로 {} 는 빈 배열로 읽는다.
    """
    doc: Document = {}
    for key, raw in fields.items():
        value = json.loads(raw)
        doc[key] = [] if value == {} else value
    return doc


class RedisStore(RemoteStore):
    supports_bounded_add = True

    def __init__(self, client: "redis.Redis", key_prefix: str = "onthespot:"):
        self.client = client
        self.key_prefix = key_prefix
        self._set = client.register_script(_SET_LUA)
        self._update = client.register_script(_UPDATE_LUA)
        self._delete = client.register_script(_DELETE_LUA)
        self._add_to_set = client.register_script(_ADD_TO_SET_LUA)
        self._remove_from_set = client.register_script(_REMOVE_FROM_SET_LUA)
        self._increment = client.register_script(_INCREMENT_LUA)

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "onthespot:") -> "RedisStore":
        return cls(redis.from_url(url, decode_responses=True), key_prefix)

    # --- 키 ---

    def doc_key(self, collection: str, doc_id: str) -> str:
        return f"{self.key_prefix}doc:{collection}:{doc_id}"

    def index_key(self, collection: str) -> str:
        return f"{self.key_prefix}idx:{collection}"

    def channel(self, collection: str) -> str:
        return f"{self.key_prefix}chan:{collection}"

    def _keys(self, collection: str, doc_id: str) -> List[str]:
        return [self.doc_key(collection, doc_id), self.index_key(collection), self.channel(collection)]

    async def _run(self, script, collection: str, doc_id: str, *args: Any) -> Any:
        try:
            return await script(keys=self._keys(collection, doc_id), args=[doc_id, *args])
        except ResponseError as e:
            if "not_found" in str(e):
                raise NotFoundError(f"{collection}/{doc_id} not found")
            if "capacity_exceeded" in str(e):
                raise CapacityExceededError(f"{collection}/{doc_id} is full")
            raise RemoteWriteFailure(f"Redis script error on {collection}/{doc_id}: {e}")
        except RedisError as e:
            raise RemoteWriteFailure(f"Redis unavailable: {e}")

    # --- 읽기 ---

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            fields = await self.client.hgetall(self.doc_key(collection, doc_id))
        except RedisError as e:
            raise RemoteWriteFailure(f"Redis unavailable: {e}")
        if not fields:
            return None
        return {**decode_document(fields), "id": doc_id}

    async def query(self, query: Query) -> List[Document]:
        try:
            ids = sorted(await self.client.smembers(self.index_key(query.collection)))
            if not ids:
                return []
            pipe = self.client.pipeline(transaction=False)
            for doc_id in ids:
                pipe.hgetall(self.doc_key(query.collection, doc_id))
            hashes = await pipe.execute()
        except RedisError as e:
            raise RemoteWriteFailure(f"Redis unavailable: {e}")
        docs: List[Document] = []
        for doc_id, fields in zip(ids, hashes):
            if not fields:
                continue
            doc = decode_document(fields)
            if query.matches(doc):
                docs.append({**doc, "id": doc_id})
        return docs

    # --- 쓰기 ---

    async def set(self, collection: str, doc_id: str, doc: Document, merge: bool = False) -> None:
        await self._run(self._set, collection, doc_id, "1" if merge else "0", *encode_fields(doc))

    async def add(self, collection: str, doc: Document) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, doc)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        await self._run(self._update, collection, doc_id, *encode_fields(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._run(self._delete, collection, doc_id)

    async def add_to_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        limit_field: Optional[str] = None,
        create_missing: bool = False,
    ) -> bool:
        result = await self._run(
            self._add_to_set,
            collection,
            doc_id,
            field_name,
            json.dumps(value),
            limit_field or "",
            "1" if create_missing else "0",
        )
        return int(result) == 1

    async def remove_from_set(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        value: Any,
        create_missing: bool = False,
    ) -> bool:
        result = await self._run(
            self._remove_from_set,
            collection,
            doc_id,
            field_name,
            json.dumps(value),
            "1" if create_missing else "0",
        )
        return int(result) == 1

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        amount: int,
        create_missing: bool = False,
    ) -> int:
        result = await self._run(
            self._increment,
            collection,
            doc_id,
            field_name,
            str(int(amount)),
            "1" if create_missing else "0",
        )
        return int(result)

    # --- 구독 ---

    async def _listen(self, channel: str, sub: Subscription, read) -> None:
        """
        컬렉션 채널 구독 → 메시지마다 read() 로 스냅샷을 다시 읽어 전달.
        long-lived 루프라 예외 시 구독을 fail 로 닫아 호출자가 stale 을 알 수 있게 한다.
        """
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(channel)
            sub.push(await read())
            while not sub.closed:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message.get("type") == "message":
                    snapshot = await read(message.get("data"))
                    if snapshot is not _SKIP:
                        sub.push(snapshot)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("redis store: subscription on %s failed: %s", channel, e)
            sub.fail(RemoteWriteFailure(f"Subscription on {channel} failed: {e}", retryable=True))
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.close()
            except RedisError:
                pass

    def _start(self, channel: str, read) -> Subscription:
        task: Optional[asyncio.Task] = None

        async def _stop() -> None:
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        sub = Subscription(on_close=_stop)
        task = asyncio.create_task(self._listen(channel, sub, read))
        return sub

    async def subscribe(self, query: Query) -> Subscription:
        async def read(changed_id: Optional[str] = None):
            return await self.query(query)

        return self._start(self.channel(query.collection), read)

    async def subscribe_document(self, collection: str, doc_id: str) -> Subscription:
        async def read(changed_id: Optional[str] = None):
            if changed_id is not None and changed_id != doc_id:
                return _SKIP
            return await self.get(collection, doc_id)

        return self._start(self.channel(collection), read)

    async def close(self) -> None:
        await self.client.aclose()
