"""TaskCategoriesStore"""

from __future__ import annotations

from clientdesk.domain.models import (
    TaskCategoriesQuery,
    TaskCategory,
    TaskCategoryInput,
    TaskCategoryPatch,
)
from clientdesk.domain.ports import TaskCategoriesRepository
from clientdesk.services.store import Store


class TaskCategoriesStore(Store[TaskCategory, TaskCategoriesQuery]):
    def __init__(self, repo: TaskCategoriesRepository, timeout: float | None = 30.0) -> None:
        super().__init__(TaskCategoriesQuery(), timeout)
        self._repo = repo

    async def _fetch(self, query: TaskCategoriesQuery) -> list[TaskCategory]:
        return await self._repo.list(query)

    async def create_category(self, data: TaskCategoryInput) -> TaskCategory | None:
        return await self.reload_after_write(lambda: self._repo.create(data), "create_category")

    async def update_category(self, category_id: str, patch: TaskCategoryPatch) -> TaskCategory | None:
        return await self.reload_after_write(
            lambda: self._repo.update(category_id, patch), "update_category"
        )

    async def delete_category(self, category_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(category_id)
            return True

        return await self.reload_after_write(write, "delete_category") is True
