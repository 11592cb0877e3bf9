# PendingWriteLog: fire-and-forget 원격 쓰기의 작업 로그
# 낙관적 로컬 변경 → 백그라운드 쓰기 (타임아웃 + 재시도) → 최종 실패 시 rollback + RemoteWriteFailure 표면화

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Hashable, List, Optional

from onthespot.errors import OnTheSpotError, RemoteWriteFailure

logger = logging.getLogger(__name__)

WRITE_TIMEOUT_SEC = float(os.getenv("WRITE_TIMEOUT_SEC", "10"))
WRITE_MAX_ATTEMPTS = int(os.getenv("WRITE_MAX_ATTEMPTS", "3"))
WRITE_RETRY_BACKOFF_SEC = float(os.getenv("WRITE_RETRY_BACKOFF_SEC", "0.5"))

WriteFn = Callable[[], Awaitable[object]]
RollbackFn = Callable[[], None]
FailureListener = Callable[[RemoteWriteFailure], None]


@dataclass
class PendingWrite:
    op_id: str
    description: str
    attempts: int = 0
    done: bool = False
    error: Optional[RemoteWriteFailure] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class PendingWriteLog:
    """
    작업 id 로 관리되는 진행 중 쓰기 목록.

    - RemoteWriteFailure(retryable) / 타임아웃 → backoff 후 재시도 (max_attempts 회까지)
    - 그 외 OnTheSpotError (NotFound 등) 또는 재시도 소진 → rollback 실행, failures 에 기록
    이미 보낸 쓰기는 취소할 수 없다 (이후 쓰기로 덮어쓸 뿐).
    """

    def __init__(
        self,
        timeout: float = WRITE_TIMEOUT_SEC,
        max_attempts: int = WRITE_MAX_ATTEMPTS,
        backoff: float = WRITE_RETRY_BACKOFF_SEC,
    ):
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.pending: Dict[str, PendingWrite] = {}
        self.failures: List[RemoteWriteFailure] = []
        self._listeners: List[FailureListener] = []
        # key -> 그 key 로 마지막에 제출된 쓰기 task
        self._tails: Dict[Hashable, asyncio.Task] = {}

    def on_failure(self, listener: FailureListener) -> None:
        self._listeners.append(listener)

    def submit(
        self,
        description: str,
        write: WriteFn,
        rollback: Optional[RollbackFn] = None,
        key: Optional[Hashable] = None,
    ) -> PendingWrite:
        """
        실행 중인 이벤트 루프에 쓰기 작업을 띄우고 바로 반환 (호출자는 기다리지 않음).
        key 가 주어지면 같은 key 의 앞선 쓰기가 끝난 뒤에 시작한다.
        """
        entry = PendingWrite(op_id=uuid.uuid4().hex, description=description)
        self.pending[entry.op_id] = entry
        previous = self._tails.get(key) if key is not None else None
        task = asyncio.get_running_loop().create_task(self._run(entry, write, rollback, previous))
        entry.task = task
        if key is not None:
            self._tails[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        return entry

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _run(
        self,
        entry: PendingWrite,
        write: WriteFn,
        rollback: Optional[RollbackFn],
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        try:
            if previous is not None:
                # 앞선 쓰기의 성공/실패와 무관하게 순서만 맞춘다
                await asyncio.wait({previous})
            while True:
                entry.attempts += 1
                try:
                    await asyncio.wait_for(write(), timeout=self.timeout)
                    return
                except asyncio.TimeoutError:
                    error = RemoteWriteFailure(
                        f"{entry.description}: timed out after {self.timeout}s", op_id=entry.op_id
                    )
                except RemoteWriteFailure as e:
                    error = RemoteWriteFailure(f"{entry.description}: {e.message}", e.retryable, entry.op_id)
                except OnTheSpotError as e:
                    error = RemoteWriteFailure(f"{entry.description}: {e.message}", False, entry.op_id)
                except Exception as e:
                    logger.exception("pending write %s crashed", entry.op_id)
                    error = RemoteWriteFailure(f"{entry.description}: {e}", False, entry.op_id)

                if error.retryable and entry.attempts < self.max_attempts:
                    logger.info("retrying %s (attempt %d): %s", entry.op_id, entry.attempts, error.message)
                    await asyncio.sleep(self.backoff * (2 ** (entry.attempts - 1)))
                    continue

                self._fail(entry, error, rollback)
                return
        finally:
            entry.done = True
            self.pending.pop(entry.op_id, None)

    def _fail(self, entry: PendingWrite, error: RemoteWriteFailure, rollback: Optional[RollbackFn]) -> None:
        entry.error = error
        logger.warning("remote write failed (%s): %s", entry.op_id, error.message)
        if rollback is not None:
            try:
                rollback()
                logger.info("rolled back optimistic change for %s", entry.op_id)
            except Exception:
                logger.exception("rollback failed for %s", entry.op_id)
        self.failures.append(error)
        for listener in list(self._listeners):
            listener(error)

    async def drain(self) -> None:
        """진행 중인 모든 쓰기가 끝날 때까지 대기 (종료 시 / 테스트)."""
        while self.pending:
            tasks = [p.task for p in list(self.pending.values()) if p.task is not None]
            if not tasks:
                break
            await asyncio.gather(*tasks, return_exceptions=True)

    def clear_failures(self) -> None:
        self.failures.clear()
