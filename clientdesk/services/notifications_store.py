"""NotificationsStore"""

from __future__ import annotations

import dataclasses

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import Notification, NotificationsQuery
from clientdesk.domain.ports import NotificationsRepository, SessionProvider
from clientdesk.services.store import Store


class NotificationsStore(Store[Notification, NotificationsQuery]):
    """閲覧者宛ての通知。既読化も書き込み後に再読み込みする"""

    def __init__(
        self,
        repo: NotificationsRepository,
        session: SessionProvider | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        super().__init__(NotificationsQuery(), timeout)
        self._repo = repo
        self._session = session

    def _viewer(self) -> str | None:
        return self._session.current_user_id() if self._session else None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.items if not n.is_read)

    async def _fetch(self, query: NotificationsQuery) -> list[Notification]:
        return await self._repo.list(dataclasses.replace(query, viewer_user_id=self._viewer()))

    async def mark_read(self, notification_id: str) -> bool:
        async def write() -> bool:
            await self._repo.mark_read(notification_id)
            return True

        return await self.reload_after_write(write, "mark_read") is True

    async def mark_all_read(self) -> bool:
        async def write() -> bool:
            viewer = self._viewer()
            if not viewer:
                raise ValidationError("Not signed in")
            await self._repo.mark_all_read(viewer)
            return True

        return await self.reload_after_write(write, "mark_all_read") is True
