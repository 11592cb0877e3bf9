# PlanRegistry: 스팟 단위 Plan 수명주기 (생성/참여/나가기/삭제)
# 참여/나가기는 로컬 read-modify-write 가 아닌 스토어의 원자적 set-union / set-difference 로 처리
# → 여러 기기의 동시 join 에서도 업데이트 유실 없음

import logging
from typing import List, Optional

from onthespot.errors import CapacityExceededError, InvalidPlanError, NotFoundError
from onthespot.realtime.live import LiveQuery
from onthespot.schemas.plan import Plan
from onthespot.services.moderation_ledger import ModerationLedger
from onthespot.services.session import SessionContext
from onthespot.store.base import Document, Query, RemoteStore, messages_collection

logger = logging.getLogger(__name__)

PLANS = "plans"
USERS = "users"
PARTICIPANTS_FIELD = "participants"
LIMIT_FIELD = "maxParticipants"
MIN_PARTICIPANTS = 2


def validate_new_plan(plan: Plan) -> None:
    """생성 조건 검사. 어떤 쓰기보다 먼저 InvalidPlanError 로 거부."""
    if not plan.title.strip():
        raise InvalidPlanError("Plan title is required")
    if plan.start_time >= plan.end_time:
        raise InvalidPlanError("Plan must start before it ends")
    if plan.max_participants < MIN_PARTICIPANTS:
        raise InvalidPlanError(f"A plan needs room for at least {MIN_PARTICIPANTS} people")
    if plan.participants != [plan.host_id]:
        raise InvalidPlanError("A new plan must start with only its host as participant")


class PlanRegistry:
    """
    Plan 생성/조회/참여/나가기/삭제.

    - 정원 검사는 가능하면 스토어가 원자적으로 평가 (supports_bounded_add)
    - 그렇지 않은 스토어: 무조건 추가 후 다시 읽어, 참여 순서상 정원 밖이면 스스로 나가고 PlanFullError
    - 호스트가 나가면 가장 먼저 참여한 남은 사람이 호스트가 됨. 마지막 사람이 나가면 plan 삭제
    - 삭제 권한(호스트만)은 호출자가 확인
    """

    def __init__(self, store: RemoteStore, session: SessionContext, moderation: ModerationLedger):
        self.store = store
        self.session = session
        self.moderation = moderation

    def _acting_user(self, user_id: Optional[str]) -> str:
        return user_id or self.session.require_user()

    @staticmethod
    def _to_plan(doc: Document) -> Plan:
        plan = Plan.from_doc(doc)
        plan.id = doc["id"]
        return plan

    async def get(self, plan_id: str) -> Plan:
        doc = await self.store.get(PLANS, plan_id)
        if doc is None:
            raise NotFoundError(f"Plan {plan_id} not found")
        return self._to_plan(doc)

    async def create(self, plan: Plan) -> Plan:
        """검증 후 저장. id 는 스토어가 부여하며 저장된 plan 을 반환."""
        validate_new_plan(plan)
        plan_id = await self.store.add(PLANS, plan.to_doc())
        created = plan.model_copy(update={"id": plan_id})
        logger.info("plan %s created at spot %s by %s", plan_id, plan.location_id, plan.host_id)
        return created

    def _visible_plans(self, docs: List[Document]) -> List[Plan]:
        plans = []
        for doc in docs:
            try:
                plan = self._to_plan(doc)
            except Exception as e:
                logger.warning("skipping malformed plan %s: %s", doc.get("id"), e)
                continue
            if not self.moderation.is_blocked(plan.host_id):
                plans.append(plan)
        return sorted(plans, key=lambda p: (p.start_time, p.id or ""))

    async def list_for_location(self, location_id: str) -> LiveQuery[List[Plan]]:
        """스팟 하나의 plan 목록 구독. 변경마다 전체 목록 재전달, 차단한 호스트의 plan 제외."""
        subscription = await self.store.subscribe(Query.where(PLANS, locationId=location_id))
        return LiveQuery(subscription, self._visible_plans)

    async def join(self, plan_id: str, user_id: Optional[str] = None) -> Plan:
        """
        원자적 참여. 이미 참여 중이면 no-op.
        정원이 찼으면 PlanFullError (CapacityExceededError).
        """
        user_id = self._acting_user(user_id)

        if self.store.supports_bounded_add:
            await self.store.add_to_set(PLANS, plan_id, PARTICIPANTS_FIELD, user_id, limit_field=LIMIT_FIELD)
            return await self.get(plan_id)

        # 서버측 조건부 쓰기가 없는 스토어: 추가 후 재확인, 초과 시 자동 되돌림
        added = await self.store.add_to_set(PLANS, plan_id, PARTICIPANTS_FIELD, user_id)
        plan = await self.get(plan_id)
        if not added:
            return plan
        if user_id in plan.participants and plan.participants.index(user_id) >= plan.max_participants:
            logger.info("plan %s overshot capacity, reverting join of %s", plan_id, user_id)
            await self.store.remove_from_set(PLANS, plan_id, PARTICIPANTS_FIELD, user_id)
            raise CapacityExceededError(f"Plan {plan_id} is full")
        return plan

    async def leave(self, plan_id: str, user_id: Optional[str] = None) -> Optional[Plan]:
        """
        원자적 나가기. 호스트가 나가면 남은 사람 중 가장 먼저 참여한 사람을 호스트로 승격.
        아무도 남지 않으면 plan 을 삭제하고 None 반환.
        """
        user_id = self._acting_user(user_id)
        removed = await self.store.remove_from_set(PLANS, plan_id, PARTICIPANTS_FIELD, user_id)
        plan = await self.get(plan_id)
        if not removed or plan.host_id != user_id:
            return plan

        if not plan.participants:
            await self.delete(plan_id)
            logger.info("plan %s deleted after its last member left", plan_id)
            return None

        new_host = plan.participants[0]
        host_doc = await self.store.get(USERS, new_host)
        host_name = (host_doc or {}).get("name") or "Unknown"
        await self.store.update(PLANS, plan_id, {"hostId": new_host, "hostName": host_name})
        logger.info("plan %s host left, promoted %s", plan_id, new_host)
        return plan.model_copy(update={"host_id": new_host, "host_name": host_name})

    async def delete(self, plan_id: str) -> None:
        """plan 과 그 채팅 메시지를 삭제. 호스트 확인은 호출자 몫."""
        for doc in await self.store.query(Query(messages_collection(plan_id))):
            await self.store.delete(messages_collection(plan_id), doc["id"])
        await self.store.delete(PLANS, plan_id)
