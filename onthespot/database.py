import logging
import os

from dotenv import load_dotenv
from fastapi import Request

# .env 파일에서 환경 변수 로드 (각 모듈이 import 시점에 os.getenv 를 읽으므로 먼저)
load_dotenv()

from onthespot.services.app_services import AppServices  # noqa: E402
from onthespot.store.base import RemoteStore  # noqa: E402
from onthespot.store.memory_store import MemoryStore  # noqa: E402
from onthespot.store.redis_store import RedisStore  # noqa: E402

logger = logging.getLogger(__name__)

# STORE_BACKEND: redis (기본, 여러 기기가 공유하는 원격 스토어) | memory (단일 프로세스, 개발/테스트용)
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")

# REDIS_URL 예시:
# redis://redis:6379/0
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# 같은 Redis 를 다른 서비스와 나눠 쓸 때 키 충돌 방지
KEY_PREFIX = os.getenv("STORE_KEY_PREFIX", "onthespot:")


def build_store(backend: str = STORE_BACKEND) -> RemoteStore:
    """
    설정된 백엔드로 RemoteStore 생성.

    - redis: 연결은 첫 명령 시점에 맺어짐 (여기서 Redis 가 떠 있을 필요 없음)
    - memory: 프로세스 안에서만 공유되는 스토어
    """
    if backend == "memory":
        logger.info("store backend: memory")
        return MemoryStore()
    if backend == "redis":
        logger.info("store backend: redis (%s, prefix=%s)", REDIS_URL, KEY_PREFIX)
        return RedisStore.from_url(REDIS_URL, KEY_PREFIX)
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def get_services(request: Request) -> AppServices:
    """
    FastAPI 의존성 주입에서 사용할 서비스 묶음 제공 함수 (lifespan 에서 생성)

    Usage 예시:

    @router.get("/spots")
    async def list_spots(services: AppServices = Depends(get_services)):
        ...
    """
    return request.app.state.services
