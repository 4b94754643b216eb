"""プロセス内のセッション保持"""

from __future__ import annotations

from clientdesk.domain.ports import SessionProvider


class InMemorySession(SessionProvider):
    """
    ログイン中ユーザーの user_id とアクセストークンを保持する。

    サインイン処理（このパッケージの範囲外）が set_session を呼び、
    REST / Storage / Functions のアダプタは access_token() を Bearer に使う。
    """

    def __init__(self, user_id: str | None = None, access_token: str | None = None) -> None:
        self._user_id = user_id
        self._access_token = access_token

    def set_session(self, user_id: str, access_token: str | None = None) -> None:
        self._user_id = user_id
        self._access_token = access_token

    def clear(self) -> None:
        self._user_id = None
        self._access_token = None

    def current_user_id(self) -> str | None:
        return self._user_id

    def access_token(self) -> str | None:
        return self._access_token
