# 세션 API: 이 기기 세션의 사용자 전환 + 실패한 백그라운드 쓰기 조회
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.schemas.session import SessionResponse, SignInBody, WriteFailureResponse
from onthespot.services.app_services import AppServices

router = APIRouter(prefix="/session", tags=["Session"])


def _session_response(services: AppServices) -> SessionResponse:
    user_id = services.session.current_user_id()
    return SessionResponse(user_id=user_id, signed_in=user_id is not None)


@router.get("", response_model=SessionResponse)
async def get_session(services: AppServices = Depends(get_services)) -> SessionResponse:
    return _session_response(services)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(body: SignInBody, services: AppServices = Depends(get_services)) -> SessionResponse:
    """세션 사용자 지정. 사용자 범위 리스너(숨김/차단, 프로필)가 새 사용자로 다시 붙는다."""
    try:
        services.session.sign_in(body.user_id)
        await services.settle()
        return _session_response(services)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/sign-out", response_model=SessionResponse)
async def sign_out(services: AppServices = Depends(get_services)) -> SessionResponse:
    services.session.sign_out()
    await services.settle()
    return _session_response(services)


@router.get("/failures", response_model=List[WriteFailureResponse])
async def list_failures(services: AppServices = Depends(get_services)) -> List[WriteFailureResponse]:
    """롤백된 백그라운드 쓰기 (재시도 가능 여부 포함)."""
    return [
        WriteFailureResponse(op_id=f.op_id, message=f.message, retryable=f.retryable)
        for f in services.writes.failures
    ]


@router.delete("/failures")
async def clear_failures(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    services.writes.clear_failures()
    return {"message": "cleared"}
