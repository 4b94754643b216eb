"""Supabase REST クライアント

PostgREST（/rest/v1）、Storage（/storage/v1）、Edge Functions（/functions/v1）への
HTTP 呼び出しを httpx.AsyncClient で行う共通層。

- URL / anon key が未設定なら、ネットワークに触れる前に BackendConfigError
- Authorization はセッションのアクセストークン、無ければ anon key
- 非 2xx は RestError(status, details=レスポンスボディ)
- ネットワーク障害は RestError(status=0)
- 204 / 空ボディは None
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from clientdesk.config import AppConfig
from clientdesk.domain.errors import BackendConfigError, RestError
from clientdesk.domain.ports import SessionProvider

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"

Row = dict[str, Any]


class SupabaseRestClient:
    """
    Supabase への HTTP 呼び出し。

    Example:
        rest = SupabaseRestClient(AppConfig.from_env(), session)
        rows = await rest.select("tasks", {"select": "*", "order": "updated_at.desc"})
        await rest.aclose()
    """

    def __init__(
        self,
        config: AppConfig,
        session: SessionProvider | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            config: アプリケーション設定（URL / anon key / タイムアウト）
            session: アクセストークンの取得元（None なら常に anon key）
            http: テスト用に注入する httpx.AsyncClient（None なら内部で生成）
        """
        self._config = config
        self._session = session
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.request_timeout)

    @property
    def config(self) -> AppConfig:
        return self._config

    def url(self, path: str) -> str:
        return f"{self._config.supabase_url}{path}"

    def auth_headers(self) -> dict[str, str]:
        token = self._session.access_token() if self._session else None
        key = self._config.supabase_anon_key
        return {"apikey": key, "Authorization": f"Bearer {token or key}"}

    async def send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        error_label: str = "Supabase REST error",
    ) -> httpx.Response:
        """1リクエストを送り、成功レスポンスを返す（失敗は RestError）"""
        if not self._config.backend_configured:
            raise BackendConfigError()

        merged = {**self.auth_headers(), **(headers or {})}
        try:
            response = await self._http.request(
                method,
                self.url(path),
                params=params,
                json=json,
                content=content,
                headers=merged,
            )
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise RestError(f"{error_label} (network)", 0, str(e)) from e

        if not response.is_success:
            logger.debug(
                "%s %s -> %d: %s", method, path, response.status_code, response.text
            )
            raise RestError(
                f"{error_label} ({response.status_code})",
                response.status_code,
                response.text,
            )
        return response

    async def request(
        self,
        method: str,
        path: str,
        query: dict[str, str] | None = None,
        body: Any = None,
        return_representation: bool = False,
    ) -> Any:
        """JSON の REST 呼び出し。204 / 空ボディは None、それ以外はパース済み JSON"""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if return_representation:
            headers["Prefer"] = "return=representation"
        response = await self.send(method, path, params=query, json=body, headers=headers)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ── テーブル操作の薄いラッパー ──────────────────────────────────────────

    async def select(self, table: str, params: dict[str, str]) -> list[Row]:
        rows = await self.request("GET", f"{REST_PREFIX}/{table}", query=params)
        return rows or []

    async def insert(
        self, table: str, rows: Row | list[Row], params: dict[str, str] | None = None
    ) -> list[Row]:
        result = await self.request(
            "POST",
            f"{REST_PREFIX}/{table}",
            query=params,
            body=rows,
            return_representation=True,
        )
        return result or []

    async def update(
        self, table: str, filters: dict[str, str], patch: Row, select: str | None = None
    ) -> list[Row]:
        params = dict(filters)
        if select:
            params["select"] = select
        result = await self.request(
            "PATCH",
            f"{REST_PREFIX}/{table}",
            query=params,
            body=patch,
            return_representation=True,
        )
        return result or []

    async def delete(self, table: str, filters: dict[str, str]) -> None:
        await self.request("DELETE", f"{REST_PREFIX}/{table}", query=filters)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
