"""ClientNotesStore

query.client_id がある場合は「閲覧者がそのクライアントについて書いたメモ」、
無い場合は管理者の受信箱（resolved で絞り込み）を表示する。

解決状態の切り替えだけは、再読み込みの前にローカルの1件を書き換える。
書き込みが成功したら返ってきた正本をその1件に反映し、
失敗した場合はその1件だけを元に戻す。
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from datetime import datetime, timezone

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import ClientNote, ClientNoteInput, ClientNotesQuery
from clientdesk.domain.ports import ClientNotesRepository, SessionProvider
from clientdesk.services.store import Store


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ClientNotesStore(Store[ClientNote, ClientNotesQuery]):
    def __init__(
        self,
        repo: ClientNotesRepository,
        session: SessionProvider | None = None,
        timeout: float | None = 30.0,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        super().__init__(ClientNotesQuery(), timeout)
        self._repo = repo
        self._session = session
        self._clock = clock

    def _viewer(self) -> str | None:
        return self._session.current_user_id() if self._session else None

    async def _fetch(self, query: ClientNotesQuery) -> list[ClientNote]:
        if query.client_id:
            viewer = self._viewer()
            if not viewer:
                return []
            return await self._repo.list_for_client(query.client_id, viewer, query.limit)
        return await self._repo.list_all(query.resolved, query.limit)

    async def create_note(self, data: ClientNoteInput) -> ClientNote | None:
        """閲覧者を作成者としてメモを作成する"""

        async def write() -> ClientNote:
            viewer = self._viewer()
            if not viewer:
                raise ValidationError("Not signed in")
            return await self._repo.create(data, viewer)

        return await self.reload_after_write(write, "create_note")

    async def set_resolved(self, note_id: str, is_resolved: bool) -> ClientNote | None:
        """
        解決状態を切り替える。

        is_resolved と resolved_at / resolved_by は常に揃えて書き換える。
        既に同じ状態のメモはローカルでも再スタンプしない。
        """
        previous = self._find(note_id)
        if previous is not None and previous.is_resolved != is_resolved:
            if is_resolved:
                self.apply_optimistic(
                    note_id, is_resolved=True, resolved_at=self._clock(), resolved_by=self._viewer()
                )
            else:
                self.apply_optimistic(note_id, is_resolved=False, resolved_at=None, resolved_by=None)

        async def write() -> ClientNote:
            updated = await self._repo.set_resolved(note_id, is_resolved, self._viewer())
            self._merge(updated)
            return updated

        result = await self.reload_after_write(write, "set_resolved")
        if result is None and previous is not None:
            self._merge(previous)
        return result

    async def delete_note(self, note_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(note_id)
            return True

        return await self.reload_after_write(write, "delete_note") is True

    def _find(self, note_id: str) -> ClientNote | None:
        return next((note for note in self.items if note.id == note_id), None)

    def _merge(self, note: ClientNote) -> None:
        # 個別取得では client_name が埋め込まれないため、一覧側の値を残す
        current = self._find(note.id)
        if current is None:
            return
        if note.client_name is None:
            note = dataclasses.replace(note, client_name=current.client_name)
        self.items = [note if item.id == note.id else item for item in self.items]
