# 세션/쓰기 실패 API 스키마

from typing import Optional

from pydantic import BaseModel, Field


class SignInBody(BaseModel):
    """identity provider 가 확인한 user id (인증 자체는 게이트웨이 밖)."""

    user_id: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    user_id: Optional[str] = None
    signed_in: bool


class WriteFailureResponse(BaseModel):
    op_id: Optional[str] = None
    message: str
    retryable: bool
