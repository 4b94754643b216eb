"""ドメイン固有の例外クラス"""


class ClientDeskError(Exception):
    """ClientDesk の基底例外"""

    pass


class BackendConfigError(ClientDeskError):
    """バックエンド未設定エラー（SUPABASE_URL / SUPABASE_ANON_KEY 未設定）

    status は常に 0。Factory はこのエラーを見て in-memory 実装に切り替える。
    """

    status = 0

    def __init__(self, message: str = "Missing Supabase env (SUPABASE_URL / SUPABASE_ANON_KEY)") -> None:
        super().__init__(message)


class RestError(ClientDeskError):
    """REST / Storage / Functions 呼び出しの失敗（非 2xx ステータス）

    Attributes:
        status: HTTP ステータス（ネットワーク障害時は 0）
        details: レスポンスボディ（診断用）
    """

    def __init__(self, message: str, status: int, details: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.details = details


class EmptyResultError(ClientDeskError):
    """create / update が空の結果を返した（不変条件違反）"""

    pass


class NotFoundError(ClientDeskError):
    """in-memory リポジトリで対象 ID が存在しない"""

    pass


class ValidationError(ClientDeskError):
    """入力値の検証エラー（必須項目の欠落など）"""

    pass
