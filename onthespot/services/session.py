# SessionContext: "지금 누가 행동하는가" 의 유일한 출처
# 인증 자체(이메일/OAuth/토큰)는 외부 identity provider 소관 → 여기선 user id 만 다룸

import logging
from typing import Callable, List, Optional, Protocol

from onthespot.errors import PermissionDenied

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[str]], None]


class IdentityProvider(Protocol):
    def current_user_id(self) -> Optional[str]:
        ...


class StaticIdentityProvider:
    """값을 직접 넣어 주는 provider. 게이트웨이의 sign-in 엔드포인트와 테스트에서 사용."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id


class SessionContext:
    def __init__(self, provider: Optional[IdentityProvider] = None):
        self.provider = provider or StaticIdentityProvider()
        self._listeners: List[AuthListener] = []

    def current_user_id(self) -> Optional[str]:
        return self.provider.current_user_id()

    @property
    def is_signed_in(self) -> bool:
        return self.current_user_id() is not None

    def require_user(self) -> str:
        user_id = self.current_user_id()
        if user_id is None:
            raise PermissionDenied("Sign in required")
        return user_id

    def sign_in(self, user_id: str) -> None:
        if not isinstance(self.provider, StaticIdentityProvider):
            raise PermissionDenied("Identity provider does not accept direct sign-in")
        if self.provider.user_id == user_id:
            return
        self.provider.user_id = user_id
        logger.info("session: signed in as %s", user_id)
        self.notify_auth_changed()

    def sign_out(self) -> None:
        if not isinstance(self.provider, StaticIdentityProvider) or self.provider.user_id is None:
            return
        self.provider.user_id = None
        logger.info("session: signed out")
        self.notify_auth_changed()

    def add_listener(self, listener: AuthListener) -> Callable[[], None]:
        """auth state 변경 리스너 등록. 해제 함수를 반환."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def notify_auth_changed(self) -> None:
        """외부 provider 의 상태가 바뀌었을 때도 호출된다."""
        user_id = self.current_user_id()
        for listener in list(self._listeners):
            listener(user_id)
