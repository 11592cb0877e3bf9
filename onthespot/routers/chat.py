# plan 채팅 API (텍스트/이미지 전송, 기록 조회, SSE)
import base64
import binascii
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from onthespot.database import get_services
from onthespot.errors import OnTheSpotError
from onthespot.realtime.sse import SSE_HEADERS, stream_live_query
from onthespot.schemas.chat import ChatMessage, ImageMessageBody, MessageResponse, TextMessageBody
from onthespot.services.app_services import AppServices

router = APIRouter(prefix="/plans/{plan_id}", tags=["Chat"])


def _response(services: AppServices, message: ChatMessage) -> MessageResponse:
    return MessageResponse.from_message(message, is_mine=services.chat.is_mine(message))


@router.get("/messages", response_model=List[MessageResponse])
async def list_messages(plan_id: str, services: AppServices = Depends(get_services)) -> List[MessageResponse]:
    """채팅 기록 (timestamp, id 오름차순, 차단한 발신자 제외)."""
    try:
        return [_response(services, m) for m in await services.chat.history(plan_id)]
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/gallery", response_model=List[MessageResponse])
async def list_gallery(plan_id: str, services: AppServices = Depends(get_services)) -> List[MessageResponse]:
    """이미지가 있는 메시지만."""
    try:
        messages = await services.chat.history(plan_id)
        return [_response(services, m) for m in services.chat.gallery(messages)]
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/messages", response_model=MessageResponse)
async def send_message(
    plan_id: str, body: TextMessageBody, services: AppServices = Depends(get_services)
) -> MessageResponse:
    try:
        await services.plans.get(plan_id)
        return _response(services, services.chat.send_text(plan_id, body.text))
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/images", response_model=MessageResponse)
async def send_image(
    plan_id: str, body: ImageMessageBody, services: AppServices = Depends(get_services)
) -> MessageResponse:
    """이미지 전송. 상한(IMAGE_MAX_BYTES) 아래로 압축하지 못하면 413."""
    try:
        raw = base64.b64decode(body.image, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="image must be base64")
    try:
        await services.plans.get(plan_id)
        message = await services.chat.send_image(plan_id, raw)
        return _response(services, message)
    except OnTheSpotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/messages/stream")
async def stream_messages(plan_id: str, services: AppServices = Depends(get_services)) -> StreamingResponse:
    """채팅 기록 SSE. 새 메시지마다 전체 기록을 `event: messages` 로 전달."""
    live = await services.chat.subscribe(plan_id)
    return StreamingResponse(
        stream_live_query(
            live,
            "messages",
            lambda messages: [_response(services, m).model_dump(mode="json") for m in messages],
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
