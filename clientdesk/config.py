"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""
    supabase_url: str = ""
    supabase_anon_key: str = ""
    storage_bucket: str = "documents"
    request_timeout: float = 15.0  # httpx の1リクエストあたり
    store_timeout: float | None = 30.0  # Store の load / 書き込み全体。None で無制限

    @property
    def backend_configured(self) -> bool:
        """REST バックエンドが使えるか（URL と anon key の両方が必要）"""
        return bool(self.supabase_url and self.supabase_anon_key)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        supabase_url = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
        supabase_anon_key = os.getenv("SUPABASE_ANON_KEY", "").strip()

        store_timeout: float | None = _read_float("STORE_TIMEOUT_SECONDS", 30.0)
        if store_timeout == 0:
            store_timeout = None

        return cls(
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            storage_bucket=os.getenv("STORAGE_BUCKET", "documents").strip() or "documents",
            request_timeout=_read_float("REQUEST_TIMEOUT_SECONDS", 15.0),
            store_timeout=store_timeout,
        )
