"""PostgREST クエリ組み立て

ドメインのフィルタを PostgREST 方言のクエリパラメータ {key: str} に変換する。

    column=eq.<value>                       等価
    column=ilike.*<escaped>*                大文字小文字を無視した部分一致
    or=(c1.ilike.*<e>*,c2.ilike.*<e>*)      複数列の OR 部分一致
    order=updated_at.desc / limit=1 / select=...

値が None（または空白のみの検索文字列）の条件はキーごと省略する。
「キーが無い」ことが「この列に条件なし」を意味する。

in-memory リポジトリが同じ意味で絞り込み・並べ替えできるよう、
部分一致の判定（ilike_contains）と order 指定の適用（apply_order）もここに置く。
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")

# ilike パターンと or=(...) の構文で意味を持つ文字。バックスラッシュ自身も含める
_ILIKE_SPECIAL = frozenset("\\%_,()")

# 一覧の並び順（REST / in-memory 共通）。同じ時刻・同じ名前の行は id で並べる
ORDER_BY_UPDATED = "updated_at.desc,id.asc"
ORDER_BY_CREATED = "created_at.desc,id.asc"
ORDER_BY_NAME = "name.asc,id.asc"
ORDER_NOTES_INBOX = "is_resolved.asc,created_at.desc,id.asc"


def escape_ilike(text: str) -> str:
    """ユーザー入力をリテラルとして扱えるよう % _ , ( ) \\ をバックスラッシュでエスケープ"""
    return "".join("\\" + ch if ch in _ILIKE_SPECIAL else ch for ch in text)


def literal(value: Any) -> str:
    """フィルタ値の文字列表現（bool は true/false、Enum は value）"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def eq(value: Any) -> str:
    return f"eq.{literal(value)}"


def ilike(text: str) -> str:
    return f"ilike.*{escape_ilike(text)}*"


def or_ilike(columns: Iterable[str], text: str) -> str:
    pattern = ilike(text)
    return "(" + ",".join(f"{column}.{pattern}" for column in columns) + ")"


class PostgrestQuery:
    """
    クエリパラメータのビルダー。

    Example:
        params = (
            PostgrestQuery(select="id,name")
            .eq("status", query.status)
            .ilike("name", query.search_text)
            .order("updated_at.desc")
            .params()
        )
    """

    def __init__(self, select: str | None = None) -> None:
        self._params: dict[str, str] = {}
        if select:
            self._params["select"] = select

    def select(self, columns: str) -> PostgrestQuery:
        self._params["select"] = columns
        return self

    def eq(self, column: str, value: Any) -> PostgrestQuery:
        if value is not None:
            self._params[column] = eq(value)
        return self

    def ilike(self, column: str, text: str | None) -> PostgrestQuery:
        text = (text or "").strip()
        if text:
            self._params[column] = ilike(text)
        return self

    def or_ilike(self, columns: Iterable[str], text: str | None) -> PostgrestQuery:
        text = (text or "").strip()
        if text:
            self._params["or"] = or_ilike(columns, text)
        return self

    def order(self, order_by: str) -> PostgrestQuery:
        self._params["order"] = order_by
        return self

    def limit(self, count: int | None) -> PostgrestQuery:
        if count:
            self._params["limit"] = str(count)
        return self

    def params(self) -> dict[str, str]:
        return dict(self._params)


# ── in-memory 側の同等セマンティクス ──────────────────────────────────────


def ilike_contains(value: str | None, text: str | None) -> bool:
    """ilike.*text* と同じ意味の判定（text はワイルドカードではなくリテラル）"""
    needle = (text or "").strip().lower()
    if not needle:
        return True
    return value is not None and needle in value.lower()


def apply_order(
    items: list[T],
    order_by: str,
    getter: Callable[[T, str], Any] = getattr,
) -> list[T]:
    """
    order=col.asc,col2.desc と同じ順序に並べ替える。

    PostgreSQL の既定どおり、NULL は asc では末尾、desc では先頭。
    安定ソートを後ろのキーから順に適用する。
    """
    out = list(items)
    for term in reversed([t for t in order_by.split(",") if t]):
        column, _, direction = term.partition(".")
        descending = direction == "desc"

        def key(item: T, column: str = column) -> tuple[bool, Any]:
            value = getter(item, column)
            if isinstance(value, Enum):
                value = value.value
            return (value is None, value if value is not None else 0)

        out.sort(key=key, reverse=descending)
    return out
