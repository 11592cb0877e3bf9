# ChatMessage 문서 및 API 요청 스키마

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from onthespot.schemas.base import StoreDocument
from onthespot.schemas.location import utc_now


class ChatMessage(StoreDocument):
    """plans/{planId}/messages/{id}. 생성 후 변경 불가. sender_name 은 전송 시점 스냅샷."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    sender_id: str
    sender_name: str
    text: str
    timestamp: datetime = Field(default_factory=utc_now)
    # base64 JPEG. 기존 문서 호환을 위해 키 이름은 imageUrl
    image_payload: Optional[str] = Field(default=None, alias="imageUrl")

    @property
    def has_image(self) -> bool:
        return bool(self.image_payload)


class TextMessageBody(BaseModel):
    text: str = Field(..., min_length=1)


class ImageMessageBody(BaseModel):
    """이미지 전송 요청. image 는 원본 이미지 바이트의 base64."""

    image: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    sender_name: str
    text: str
    timestamp: datetime
    image_payload: Optional[str] = None
    has_image: bool
    is_mine: bool

    @classmethod
    def from_message(cls, message: ChatMessage, is_mine: bool) -> "MessageResponse":
        return cls(
            **message.model_dump(),
            has_image=message.has_image,
            is_mine=is_mine,
        )
