"""TasksStore

一覧の取得時は常にセッションの user_id を viewer_user_id として渡し、
他人の個人タスクが表示されないようにする。個人タスクの作成時に
owner_user_id が無ければ閲覧者を所有者にする。
"""

from __future__ import annotations

import dataclasses

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import Task, TaskInput, TaskPatch, TaskQuery
from clientdesk.domain.ports import SessionProvider, TaskRepository
from clientdesk.services.store import Store


class TasksStore(Store[Task, TaskQuery]):
    def __init__(
        self,
        repo: TaskRepository,
        session: SessionProvider | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        super().__init__(TaskQuery(), timeout)
        self._repo = repo
        self._session = session

    def _viewer(self) -> str | None:
        return self._session.current_user_id() if self._session else None

    async def _fetch(self, query: TaskQuery) -> list[Task]:
        return await self._repo.list(dataclasses.replace(query, viewer_user_id=self._viewer()))

    async def create_task(self, data: TaskInput) -> Task | None:
        async def write() -> Task:
            payload = data
            if payload.is_personal and not payload.owner_user_id:
                viewer = self._viewer()
                if not viewer:
                    raise ValidationError("Personal tasks require a signed-in user")
                payload = dataclasses.replace(payload, owner_user_id=viewer)
            return await self._repo.create(payload)

        return await self.reload_after_write(write, "create_task")

    async def update_task(self, task_id: str, patch: TaskPatch) -> Task | None:
        return await self.reload_after_write(lambda: self._repo.update(task_id, patch), "update_task")

    async def delete_task(self, task_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(task_id)
            return True

        return await self.reload_after_write(write, "delete_task") is True
