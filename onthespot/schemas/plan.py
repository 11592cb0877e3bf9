# Plan 문서 및 API 요청 스키마

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from onthespot.schemas.base import StoreDocument


class Plan(StoreDocument):
    """
    스팟에 묶인 즉흥 모임. plans/{id} 에 저장, id 는 스토어가 부여.

    host_name / location_name 은 작성 시점의 스냅샷 (다시 조회하지 않음).
    participants 는 참여 순서가 유지되는 list 지만 의미상 집합.
    """

    id: Optional[str] = None
    host_id: str
    host_name: str
    location_id: str
    location_name: str
    title: str
    start_time: datetime
    end_time: datetime
    max_participants: int
    allow_invites: bool = True
    tag: str = "Social"
    participants: List[str] = Field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.max_participants

    def is_member(self, user_id: str) -> bool:
        return user_id in self.participants


class PlanCreate(BaseModel):
    """Plan 생성 요청. 호스트는 현재 세션 사용자."""

    location_id: str
    location_name: str
    title: str
    start_time: datetime
    end_time: datetime
    max_participants: int = 4
    allow_invites: bool = True
    tag: str = "Social"


class MembershipBody(BaseModel):
    """join/leave 대상 사용자. 생략하면 세션 사용자."""

    user_id: Optional[str] = None


class PlanResponse(BaseModel):
    id: str
    host_id: str
    host_name: str
    location_id: str
    location_name: str
    title: str
    start_time: datetime
    end_time: datetime
    max_participants: int
    allow_invites: bool
    tag: str
    participants: List[str]
    participant_count: int
    is_full: bool

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        return cls(
            **plan.model_dump(),
            participant_count=len(plan.participants),
            is_full=plan.is_full,
        )
