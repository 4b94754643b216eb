"""ClientsStore"""

from __future__ import annotations

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import (
    Client,
    ClientDocument,
    ClientDocumentInput,
    ClientInput,
    ClientLogin,
    ClientPatch,
    ClientsQuery,
)
from clientdesk.domain.ports import ClientsRepository
from clientdesk.services.client_accounts import ClientAccountService
from clientdesk.services.store import Store


class ClientsStore(Store[Client, ClientsQuery]):
    """クライアント一覧。login を渡すとログインアカウントも同時に発行する"""

    def __init__(
        self,
        repo: ClientsRepository,
        accounts: ClientAccountService | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        super().__init__(ClientsQuery(), timeout)
        self._repo = repo
        self._accounts = accounts

    async def _fetch(self, query: ClientsQuery) -> list[Client]:
        return await self._repo.list(query)

    async def create_client(self, data: ClientInput, login: ClientLogin | None = None) -> Client | None:
        async def write() -> Client:
            if login is None:
                return await self._repo.create(data)
            if self._accounts is None:
                raise ValidationError("Login provisioning is not available")
            return await self._accounts.create_client_with_login(data, login)

        return await self.reload_after_write(write, "create_client")

    async def update_client(self, client_id: str, patch: ClientPatch) -> Client | None:
        return await self.reload_after_write(
            lambda: self._repo.update(client_id, patch), "update_client"
        )

    async def delete_client(self, client_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(client_id)
            return True

        return await self.reload_after_write(write, "delete_client") is True

    async def add_document(self, client_id: str, doc: ClientDocumentInput) -> ClientDocument | None:
        return await self.reload_after_write(
            lambda: self._repo.add_document(client_id, doc), "add_document"
        )

    async def remove_document(self, document_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove_document(document_id)
            return True

        return await self.reload_after_write(write, "remove_document") is True
