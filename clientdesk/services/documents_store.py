"""DocumentsStore

アップロードは2段階:
1. ASCII のみのオブジェクトパス（clients/<id>/<ts>.<ext> / general/<ts>.<ext>）で
   ストレージに保存
2. 元のファイル名・タイトルを保持したままドキュメント行を作成（uploaded_by は閲覧者）
"""

from __future__ import annotations

from clientdesk.adapters.supabase_storage import document_object_path
from clientdesk.domain.models import (
    AppDocument,
    DocumentFilter,
    DocumentInput,
    DocumentKind,
    DocumentPatch,
)
from clientdesk.domain.ports import BlobStorage, DocumentsRepository, SessionProvider
from clientdesk.services.store import Store


class DocumentsStore(Store[AppDocument, DocumentFilter]):
    def __init__(
        self,
        repo: DocumentsRepository,
        storage: BlobStorage,
        session: SessionProvider | None = None,
        bucket: str = "documents",
        timeout: float | None = 30.0,
    ) -> None:
        super().__init__(DocumentFilter(), timeout)
        self._repo = repo
        self._storage = storage
        self._session = session
        self._bucket = bucket

    async def _fetch(self, query: DocumentFilter) -> list[AppDocument]:
        return await self._repo.list(query)

    async def upload_document(
        self,
        content: bytes,
        file_name: str,
        title: str,
        kind: DocumentKind = DocumentKind.GENERAL,
        client_id: str | None = None,
        project_id: str | None = None,
        mime_type: str | None = None,
    ) -> AppDocument | None:
        async def write() -> AppDocument:
            uploaded = await self._storage.upload(
                self._bucket,
                document_object_path(client_id, file_name),
                content,
                mime_type,
            )
            return await self._repo.create(
                DocumentInput(
                    title=title,
                    kind=kind,
                    client_id=client_id,
                    project_id=project_id,
                    storage_path=uploaded.object_path,
                    file_name=file_name,
                    mime_type=mime_type,
                    size_bytes=len(content),
                    uploaded_by=self._session.current_user_id() if self._session else None,
                )
            )

        return await self.reload_after_write(write, "upload_document")

    async def update_document(self, document_id: str, patch: DocumentPatch) -> AppDocument | None:
        return await self.reload_after_write(
            lambda: self._repo.update(document_id, patch), "update_document"
        )

    async def delete_document(self, document_id: str) -> bool:
        async def write() -> bool:
            await self._repo.remove(document_id)
            return True

        return await self.reload_after_write(write, "delete_document") is True
