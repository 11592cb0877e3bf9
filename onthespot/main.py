import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from onthespot.database import build_store
from onthespot.routers.chat import router as chat_router
from onthespot.routers.moderation import router as moderation_router
from onthespot.routers.plans import router as plans_router
from onthespot.routers.profile import router as profile_router
from onthespot.routers.session import router as session_router
from onthespot.routers.spots import places_router, router as spots_router
from onthespot.services.app_services import AppServices
from onthespot.store.base import RemoteStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(store: Optional[RemoteStore] = None) -> FastAPI:
    """
    기기 세션 하나 = 프로세스 하나.
    store 를 넘기지 않으면 STORE_BACKEND 설정으로 생성 (테스트에서는 MemoryStore 주입).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        remote = store if store is not None else build_store()
        services = AppServices(remote)
        await services.start()
        app.state.services = services
        logger.info("OnTheSpot services started")
        try:
            yield
        finally:
            # 남은 백그라운드 쓰기를 마저 보내고 구독 해제
            await services.stop()
            await remote.close()

    app = FastAPI(
        title="OnTheSpot API",
        description="캠퍼스 스팟 실시간 상태 공유 + 즉흥 모임(plan) 앱 OnTheSpot 의 기기 게이트웨이 API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ✅ 라우터 등록은 app 생성 후에!
    app.include_router(session_router)
    app.include_router(spots_router)
    app.include_router(places_router)
    app.include_router(plans_router)
    app.include_router(chat_router)
    app.include_router(moderation_router)
    app.include_router(profile_router)

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        return {"status": "ok"}

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "message": "OnTheSpot API에 오신 것을 환영합니다.",
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("onthespot.main:app", host="0.0.0.0", port=8000, reload=True)
