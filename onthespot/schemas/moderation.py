# 신고(report) 문서 및 요청 스키마

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from onthespot.schemas.base import StoreDocument
from onthespot.schemas.location import utc_now

ReportKind = Literal["message", "plan", "spot", "user"]


class Report(StoreDocument):
    """reports 컬렉션에 append-only 로 쌓이는 신고 기록. 코어에서는 다시 읽지 않음."""

    content_id: str
    kind: str = Field(alias="type")
    reason: str
    reporter_id: str
    timestamp: datetime = Field(default_factory=utc_now)


class ReportBody(BaseModel):
    content_id: str = Field(..., min_length=1)
    kind: ReportKind
    reason: str = Field(..., min_length=1, max_length=500)
