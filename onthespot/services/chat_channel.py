# ChatChannel: plan 별 채팅 (plans/{planId}/messages)
# 메시지는 생성 후 불변, (timestamp, id) 로 전체 순서 결정

import asyncio
import logging
import os
from typing import List, Optional, Tuple

from onthespot.errors import ValidationError
from onthespot.realtime.live import LiveQuery
from onthespot.schemas.chat import ChatMessage
from onthespot.services import image_codec
from onthespot.services.moderation_ledger import ModerationLedger
from onthespot.services.pending_writes import PendingWriteLog
from onthespot.services.profile_store import ProfileStore
from onthespot.services.session import SessionContext
from onthespot.store.base import Document, Query, RemoteStore, messages_collection

logger = logging.getLogger(__name__)

IMAGE_MAX_BYTES = int(os.getenv("IMAGE_MAX_BYTES", "700000"))
IMAGE_MESSAGE_TEXT = "Sent an image"


def message_order(message: ChatMessage) -> Tuple:
    return (message.timestamp, message.id)


class ChatChannel:
    def __init__(
        self,
        store: RemoteStore,
        session: SessionContext,
        moderation: ModerationLedger,
        profile: ProfileStore,
        writes: PendingWriteLog,
    ):
        self.store = store
        self.session = session
        self.moderation = moderation
        self.profile = profile
        self.writes = writes

    def _visible_history(self, docs: List[Document]) -> List[ChatMessage]:
        messages = []
        for doc in docs:
            try:
                message = ChatMessage.from_doc(doc)
            except Exception as e:
                logger.warning("skipping malformed message %s: %s", doc.get("id"), e)
                continue
            if not self.moderation.is_blocked(message.sender_id):
                messages.append(message)
        return sorted(messages, key=message_order)

    async def subscribe(self, plan_id: str) -> LiveQuery[List[ChatMessage]]:
        """채팅 기록 구독. 변경마다 (timestamp, id) 오름차순 전체 기록, 차단한 발신자 제외."""
        subscription = await self.store.subscribe(Query(messages_collection(plan_id)))
        return LiveQuery(subscription, self._visible_history)

    async def history(self, plan_id: str) -> List[ChatMessage]:
        return self._visible_history(await self.store.query(Query(messages_collection(plan_id))))

    def _sender(self, sender_id: Optional[str], sender_name: Optional[str]) -> Tuple[str, str]:
        if sender_id is None:
            sender_id = self.session.require_user()
        if sender_name is None:
            if sender_id == self.session.current_user_id():
                sender_name = self.profile.display_name
            else:
                sender_name = "Unknown"
        return sender_id, sender_name

    def _append(self, plan_id: str, message: ChatMessage) -> ChatMessage:
        collection = messages_collection(plan_id)
        doc = message.to_doc()

        async def _write() -> None:
            # id 는 클라이언트가 만든 값 → 재시도해도 같은 문서
            await self.store.set(collection, message.id, doc)

        self.writes.submit(f"send message {message.id} to plan {plan_id}", _write)
        return message

    def send_text(
        self,
        plan_id: str,
        text: str,
        sender_id: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> ChatMessage:
        """텍스트 메시지 전송 (fire-and-forget). 공백뿐인 텍스트는 거부."""
        if not text or not text.strip():
            raise ValidationError("Message text is required")
        sender_id, sender_name = self._sender(sender_id, sender_name)
        message = ChatMessage(sender_id=sender_id, sender_name=sender_name, text=text)
        return self._append(plan_id, message)

    async def send_image(
        self,
        plan_id: str,
        image: bytes,
        sender_id: Optional[str] = None,
        sender_name: Optional[str] = None,
        max_bytes: int = IMAGE_MAX_BYTES,
    ) -> ChatMessage:
        """
        이미지 메시지 전송. 압축 결과가 max_bytes 를 넘으면 ImageTooLargeError,
        이미지가 아니면 EncodingError (둘 다 아무것도 보내지 않음).
        """
        sender_id, sender_name = self._sender(sender_id, sender_name)
        payload = await asyncio.to_thread(image_codec.compress, image, max_bytes)
        message = ChatMessage(
            sender_id=sender_id,
            sender_name=sender_name,
            text=IMAGE_MESSAGE_TEXT,
            image_payload=payload,
        )
        return self._append(plan_id, message)

    @staticmethod
    def gallery(messages: List[ChatMessage]) -> List[ChatMessage]:
        return [m for m in messages if m.has_image]

    def is_mine(self, message: ChatMessage) -> bool:
        return message.sender_id == self.session.current_user_id()
