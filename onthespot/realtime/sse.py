# SSE: LiveValue / LiveQuery 변경을 text/event-stream 으로 푸시
# long-lived connection 이므로 heartbeat + 연결 해제(CancelledError) 처리 필수

import asyncio
import json
import os
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Optional

from onthespot.realtime.live import LiveQuery

HEARTBEAT_INTERVAL = float(os.getenv("SSE_HEARTBEAT_SEC", "15"))

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event_name: str, data: Any) -> str:
    payload = {"type": event_name, "data": data, "ts": datetime.now(timezone.utc).isoformat()}
    return f"event: {event_name}\ndata: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


async def stream_events(
    source: AsyncIterator[Any],
    event_name: str,
    encode: Callable[[Any], Any],
    on_close: Optional[Callable[[], Any]] = None,
    is_stale: Optional[Callable[[], bool]] = None,
) -> AsyncGenerator[str, None]:
    """
    source 에서 나오는 스냅샷마다 `event: {event_name}` 를 내보낸다.
    HEARTBEAT_INTERVAL 동안 변경이 없으면 ": ping" 주석을 보낸다.
    source 가 끝났는데 is_stale() 이 참이면 마지막으로 `event: stale` 을 보낸다.
    """
    iterator = source.__aiter__()
    pending: Optional[asyncio.Task] = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=HEARTBEAT_INTERVAL)
            if not done:
                yield ": ping\n\n"
                continue
            task, pending = pending, None
            try:
                snapshot = task.result()
            except StopAsyncIteration:
                if is_stale is not None and is_stale():
                    yield format_event("stale", None)
                break
            yield format_event(event_name, encode(snapshot))
    except asyncio.CancelledError:
        pass
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
            # 취소가 source 까지 전달되어야 watch() 의 옵저버가 해제됨
            try:
                await pending
            except (asyncio.CancelledError, StopAsyncIteration):
                pass
        if on_close is not None:
            result = on_close()
            if asyncio.iscoroutine(result):
                await result


def stream_live_query(live: LiveQuery, event_name: str, encode: Callable[[Any], Any]) -> AsyncGenerator[str, None]:
    """plan 목록 / 채팅 기록 구독 → SSE. 클라이언트가 끊으면 구독 해제."""
    return stream_events(live, event_name, encode, on_close=live.close, is_stale=lambda: live.stale)
