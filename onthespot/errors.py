# 코어 예외 계층: message + status_code 를 들고 다니며 라우터에서 HTTPException 으로 변환

from typing import Optional


class OnTheSpotError(Exception):
    """모든 코어 예외의 기반. 라우터는 status_code/message 로 HTTP 응답을 만든다."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(OnTheSpotError):
    """잘못된 입력. 어떤 상태 변경이나 원격 쓰기 이전에 발생."""

    status_code = 422


class InvalidPlanError(ValidationError):
    """Plan 생성 조건(제목, 시간창, 정원, 초기 참여자) 위반."""


class CapacityExceededError(OnTheSpotError):
    """Plan is full."""

    status_code = 409


PlanFullError = CapacityExceededError


class NotFoundError(OnTheSpotError):
    status_code = 404


class EncodingError(OnTheSpotError):
    """이미지를 인코딩할 수 없음 (디코딩 실패 또는 압축 한도 초과)."""

    status_code = 413


class ImageTooLargeError(EncodingError):
    pass


class PermissionDenied(OnTheSpotError):
    """로그인된 사용자가 필요한 작업."""

    status_code = 401


class RemoteStoreError(OnTheSpotError):
    """원격 스토어 I/O 실패 (네트워크, 백엔드 오류)."""

    status_code = 503


class RemoteWriteFailure(RemoteStoreError):
    """
    fire-and-forget 쓰기 실패.

    retryable=True 면 같은 쓰기를 다시 시도해도 된다.
    op_id 는 PendingWriteLog 가 붙인 작업 id (없으면 None).
    """

    def __init__(self, message: str, retryable: bool = True, op_id: Optional[str] = None):
        super().__init__(message)
        self.retryable = retryable
        self.op_id = op_id
