"""タイムスタンプ生成"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


class MonotonicClock:
    """
    プロセス内で狭義単調増加する UTC タイムスタンプ。

    同一マイクロ秒内の連続呼び出しでも前回より 1µs 進めるため、
    updated_at による並べ替えが常に一意に決まる。
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> str:
        current = datetime.now(timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current.strftime(ISO_FORMAT)
