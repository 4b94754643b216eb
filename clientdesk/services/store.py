"""Store - 画面向けの観測可能な状態コンテナ

1エンティティ種別ごとに items / status / error / query を保持し、
リポジトリ Port を通して読み込み・書き込みを行う。

状態遷移:
    idle → loading → ready | error

- load() は例外を投げない。失敗は error（文字列）と status=ERROR になる
- set_query() はクエリを部分更新するだけで再読み込みしない
- 書き込みは reload_after_write() を通し、成功後に load() で正本を取り直す
- apply_optimistic() は再読み込み前にローカルの1件だけを書き換える
- load() ごとに単調増加のリクエスト番号を振り、古い応答は破棄する
- timeout 秒を超えた呼び出しは error 状態にする（None で無制限）
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Q = TypeVar("Q")
R = TypeVar("R")


class StoreStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def describe_error(error: BaseException) -> str:
    """Store に表示するエラー文字列"""
    if isinstance(error, asyncio.TimeoutError):
        return "Request timed out"
    return str(error) or "Unknown error"


class Store(ABC, Generic[T, Q]):
    """
    Store の基底クラス。

    サブクラスは _fetch(query) を実装し、書き込み系メソッドは
    reload_after_write() を使って「書き込み → 再読み込み」を行う。
    """

    def __init__(self, query: Q, timeout: float | None = 30.0) -> None:
        self.items: list[T] = []
        self.status = StoreStatus.IDLE
        self.error: str | None = None
        self.query: Q = query
        self._timeout = timeout
        self._request_seq = 0

    @property
    def is_loading(self) -> bool:
        return self.status is StoreStatus.LOADING

    def set_query(self, **changes: Any) -> None:
        """クエリを部分更新する（読み込みは呼び出し側が load() で行う）"""
        self.query = dataclasses.replace(self.query, **changes)

    @abstractmethod
    async def _fetch(self, query: Q) -> list[T]:
        """query に対応する一覧をリポジトリから取得する"""

    async def _bounded(self, awaitable: Awaitable[R]) -> R:
        if self._timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self._timeout)

    async def load(self) -> None:
        """現在の query で一覧を読み込む。失敗しても例外は投げない"""
        self._request_seq += 1
        token = self._request_seq
        self.status = StoreStatus.LOADING
        self.error = None

        try:
            items = await self._bounded(self._fetch(self.query))
        except Exception as e:
            if token != self._request_seq:
                logger.debug("%s: discarding stale failure (request %d)", type(self).__name__, token)
                return
            logger.exception("%s: load failed", type(self).__name__)
            self.error = describe_error(e)
            self.status = StoreStatus.ERROR
            return

        if token != self._request_seq:
            logger.debug("%s: discarding stale response (request %d)", type(self).__name__, token)
            return
        self.items = items
        self.status = StoreStatus.READY

    async def reload_after_write(
        self, write: Callable[[], Awaitable[R]], action: str
    ) -> R | None:
        """
        書き込みを実行し、成功したら load() で一覧を取り直す。

        Returns:
            書き込みの戻り値。失敗時は None（error / status に反映、再読み込みはしない）
        """
        try:
            result = await self._bounded(write())
        except Exception as e:
            logger.exception("%s: %s failed", type(self).__name__, action)
            self.error = describe_error(e)
            self.status = StoreStatus.ERROR
            return None

        logger.info("%s: %s succeeded", type(self).__name__, action)
        await self.load()
        return result

    def apply_optimistic(self, item_id: str, **changes: Any) -> bool:
        """id が一致する1件をローカルで書き換える。見つからなければ False"""
        for index, item in enumerate(self.items):
            if getattr(item, "id", None) == item_id:
                self.items[index] = dataclasses.replace(item, **changes)
                return True
        return False
