"""ProjectsStore"""

from __future__ import annotations

from clientdesk.domain.models import Project, ProjectInput, ProjectPatch, ProjectsQuery
from clientdesk.domain.ports import ProjectsRepository
from clientdesk.services.store import Store


class ProjectsStore(Store[Project, ProjectsQuery]):
    def __init__(self, repo: ProjectsRepository, timeout: float | None = 30.0) -> None:
        super().__init__(ProjectsQuery(), timeout)
        self._repo = repo

    async def _fetch(self, query: ProjectsQuery) -> list[Project]:
        return await self._repo.list(query)

    async def create_project(self, data: ProjectInput) -> Project | None:
        return await self.reload_after_write(lambda: self._repo.create(data), "create_project")

    async def update_project(self, project_id: str, patch: ProjectPatch) -> Project | None:
        return await self.reload_after_write(
            lambda: self._repo.update(project_id, patch), "update_project"
        )

    async def delete_project(self, project_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(project_id)
            return True

        return await self.reload_after_write(write, "delete_project") is True
