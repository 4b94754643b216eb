"""In-memory Repository Adapter

バックエンド未設定時（およびテスト）に使うリポジトリ Port の in-memory 実装。

REST 実装と同じ行マッパーを通して行（dict）を保存・変換し、
絞り込みと並べ替えも REST と同じ意味（ilike_contains / apply_order）で行う。
各テーブルは InMemoryDatabase に置き、埋め込みリレーション（client_name など）は
同じ InMemoryDatabase 上の他テーブルから解決する。

REST 実装との違い:
- update / remove で ID が存在しない場合は NotFoundError
- ID は <prefix>_<16進タイムスタンプ>_<乱数16進>
"""

from __future__ import annotations

import logging
import secrets
import time
from collections import defaultdict
from typing import Any

from clientdesk.adapters import row_mappers as rm
from clientdesk.adapters.clock import MonotonicClock
from clientdesk.adapters.postgrest_query import (
    ORDER_BY_CREATED,
    ORDER_BY_NAME,
    ORDER_BY_UPDATED,
    ORDER_NOTES_INBOX,
    apply_order,
    ilike_contains,
)
from clientdesk.adapters.supabase_storage import (
    encode_path_segments,
    extension_for,
    note_attachment_path,
    safe_file_name,
)
from clientdesk.domain.errors import NotFoundError, ValidationError
from clientdesk.domain.models import (
    MAX_NOTE_ATTACHMENTS,
    UNSET,
    AppDocument,
    Client,
    ClientDocument,
    ClientDocumentInput,
    ClientInput,
    ClientNote,
    ClientNoteInput,
    ClientPatch,
    ClientsQuery,
    DocumentFilter,
    DocumentInput,
    DocumentPatch,
    Notification,
    NotificationsQuery,
    Project,
    ProjectInput,
    ProjectPatch,
    ProjectsQuery,
    ResolvedFilter,
    Task,
    TaskCategoriesQuery,
    TaskCategory,
    TaskCategoryInput,
    TaskCategoryPatch,
    TaskInput,
    TaskPatch,
    TaskQuery,
    UploadedObject,
)
from clientdesk.domain.ports import (
    BlobStorage,
    ClientNotesRepository,
    ClientsRepository,
    DocumentsRepository,
    IdentityProvisioner,
    NotificationsRepository,
    ProjectsRepository,
    TaskCategoriesRepository,
    TaskRepository,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000):x}_{secrets.token_hex(4)}"


class InMemoryDatabase:
    """
    プロセス内のテーブル群。

    各 in-memory リポジトリは同じインスタンスを共有することで、
    互いの行を埋め込みリレーションとして参照できる。
    """

    def __init__(self, clock: MonotonicClock | None = None) -> None:
        self.clock = clock or MonotonicClock()
        self._tables: dict[str, dict[str, Row]] = defaultdict(dict)

    def rows(self, table: str) -> list[Row]:
        return [dict(row) for row in self._tables[table].values()]

    def get(self, table: str, record_id: str | None) -> Row | None:
        if record_id is None:
            return None
        row = self._tables[table].get(record_id)
        return dict(row) if row is not None else None

    def insert(self, table: str, row: Row, prefix: str) -> Row:
        now = self.clock.now()
        stored = {**row, "id": row.get("id") or new_id(prefix), "created_at": now, "updated_at": now}
        self._tables[table][stored["id"]] = stored
        return dict(stored)

    def update(self, table: str, record_id: str, changes: Row) -> Row | None:
        row = self._tables[table].get(record_id)
        if row is None:
            return None
        row.update(changes)
        row["updated_at"] = self.clock.now()
        return dict(row)

    def delete(self, table: str, record_id: str) -> bool:
        return self._tables[table].pop(record_id, None) is not None

    def delete_where(self, table: str, column: str, value: Any) -> int:
        ids = [rid for rid, row in self._tables[table].items() if row.get(column) == value]
        for rid in ids:
            del self._tables[table][rid]
        return len(ids)

    def embed(self, table: str, record_id: str | None, *columns: str) -> Row | None:
        """to-one の埋め込み（存在しなければ None）"""
        row = self.get(table, record_id)
        if row is None:
            return None
        return {column: row.get(column) for column in columns}

    def children(self, table: str, column: str, value: Any) -> list[Row]:
        """to-many の埋め込み（挿入順）"""
        return [dict(row) for row in self._tables[table].values() if row.get(column) == value]

    def add_user(self, user_id: str, display_name: str) -> None:
        """users テーブル（担当者名・アップロード者名の解決用）に登録"""
        now = self.clock.now()
        self._tables["users"][user_id] = {
            "id": user_id,
            "display_name": display_name,
            "created_at": now,
            "updated_at": now,
        }


class _InMemoryTable:
    table: str = ""
    prefix: str = ""
    not_found: str = "Record not found"

    def __init__(self, db: InMemoryDatabase | None = None) -> None:
        self._db = db or InMemoryDatabase()

    @property
    def db(self) -> InMemoryDatabase:
        return self._db

    def _require(self, record_id: str) -> Row:
        row = self._db.get(self.table, record_id)
        if row is None:
            raise NotFoundError(self.not_found)
        return row

    def _remove(self, record_id: str) -> None:
        if not self._db.delete(self.table, record_id):
            raise NotFoundError(self.not_found)


# ── Clients ─────────────────────────────────────────────────────────────────


class InMemoryClientsRepository(_InMemoryTable, ClientsRepository):
    table = "clients"
    prefix = "c"
    not_found = "Client not found"

    def _with_embeds(self, row: Row, with_documents: bool = False) -> Row:
        row = {**row, "client_contacts": self._db.children("client_contacts", "client_id", row["id"])}
        if with_documents:
            row["documents"] = self._db.children("documents", "client_id", row["id"])
        return row

    async def list(self, query: ClientsQuery | None = None) -> list[Client]:
        query = query or ClientsQuery()
        clients = [rm.row_to_client(self._with_embeds(row)) for row in self._db.rows(self.table)]
        clients = [
            c
            for c in clients
            if ilike_contains(c.name, query.search_text) or ilike_contains(c.notes, query.search_text)
        ]
        return apply_order(clients, ORDER_BY_UPDATED)

    async def get_by_id(self, client_id: str) -> Client | None:
        row = self._db.get(self.table, client_id)
        return rm.row_to_client(self._with_embeds(row, with_documents=True)) if row else None

    async def create(self, data: ClientInput) -> Client:
        row = self._db.insert(self.table, rm.client_to_insert(data), self.prefix)
        self._insert_contacts(row["id"], data.contacts)
        return await self._detail(row["id"])

    async def update(self, client_id: str, patch: ClientPatch) -> Client:
        self._require(client_id)
        columns = rm.client_patch_to_row(patch)
        if columns:
            self._db.update(self.table, client_id, columns)
        if patch.contacts is not UNSET:
            self._db.delete_where("client_contacts", "client_id", client_id)
            self._insert_contacts(client_id, patch.contacts or [])
        return await self._detail(client_id)

    async def remove(self, client_id: str) -> None:
        self._remove(client_id)
        self._db.delete_where("client_contacts", "client_id", client_id)

    async def add_document(self, client_id: str, doc: ClientDocumentInput) -> ClientDocument:
        self._require(client_id)
        row = self._db.insert("documents", rm.client_document_to_insert(client_id, doc), "d")
        return rm.row_to_client_document(row)

    async def remove_document(self, document_id: str) -> None:
        if not self._db.delete("documents", document_id):
            raise NotFoundError("Document not found")

    async def link_auth_user(self, client_id: str, user_id: str) -> None:
        self._require(client_id)
        self._db.update(self.table, client_id, {"client_user_id": user_id})

    def _insert_contacts(self, client_id: str, contacts: list) -> None:
        for row in rm.contacts_to_rows(client_id, contacts):
            self._db.insert("client_contacts", row, "cc")

    async def _detail(self, client_id: str) -> Client:
        client = await self.get_by_id(client_id)
        if client is None:
            raise NotFoundError(self.not_found)
        return client


# ── Projects ────────────────────────────────────────────────────────────────


class InMemoryProjectsRepository(_InMemoryTable, ProjectsRepository):
    table = "projects"
    prefix = "p"
    not_found = "Project not found"

    def _map(self, row: Row) -> Project:
        return rm.row_to_project({**row, "client": self._db.embed("clients", row.get("client_id"), "name")})

    async def list(self, query: ProjectsQuery | None = None) -> list[Project]:
        query = query or ProjectsQuery()
        projects = [self._map(row) for row in self._db.rows(self.table)]
        projects = [
            p
            for p in projects
            if (query.status is None or p.status == query.status)
            and (query.client_id is None or p.client_id == query.client_id)
            and ilike_contains(p.name, query.search_text)
        ]
        return apply_order(projects, ORDER_BY_UPDATED)

    async def get_by_id(self, project_id: str) -> Project | None:
        row = self._db.get(self.table, project_id)
        return self._map(row) if row else None

    async def create(self, data: ProjectInput) -> Project:
        return self._map(self._db.insert(self.table, rm.project_to_insert(data), self.prefix))

    async def update(self, project_id: str, patch: ProjectPatch) -> Project:
        row = self._require(project_id)
        columns = rm.project_patch_to_row(patch)
        if columns:
            row = self._db.update(self.table, project_id, columns)
        return self._map(row)

    async def remove(self, project_id: str) -> None:
        self._remove(project_id)


# ── Tasks ───────────────────────────────────────────────────────────────────


class InMemoryTaskRepository(_InMemoryTable, TaskRepository):
    table = "tasks"
    prefix = "t"
    not_found = "Task not found"

    def _map(self, row: Row) -> Task:
        return rm.row_to_task(
            {
                **row,
                "assignee": self._db.embed("users", row.get("assignee_id"), "display_name"),
                "category": self._db.embed("task_categories", row.get("category_id"), "name", "color"),
            }
        )

    async def list(self, query: TaskQuery | None = None) -> list[Task]:
        query = query or TaskQuery()
        tasks = [self._map(row) for row in self._db.rows(self.table)]
        tasks = [
            t
            for t in tasks
            if (query.status is None or t.status == query.status)
            and (query.assignee_id is None or t.assignee_id == query.assignee_id)
            and (query.client_id is None or t.client_id == query.client_id)
            and (query.project_id is None or t.project_id == query.project_id)
            and (query.category_id is None or t.category_id == query.category_id)
            and ilike_contains(t.description, query.search_text)
            and t.visible_to(query.viewer_user_id)
        ]
        return apply_order(tasks, ORDER_BY_UPDATED)

    async def get_by_id(self, task_id: str) -> Task | None:
        row = self._db.get(self.table, task_id)
        return self._map(row) if row else None

    async def create(self, data: TaskInput) -> Task:
        return self._map(self._db.insert(self.table, rm.task_to_insert(data), self.prefix))

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        row = self._require(task_id)
        columns = rm.task_patch_to_row(patch)
        if columns:
            row = self._db.update(self.table, task_id, columns)
        return self._map(row)

    async def remove(self, task_id: str) -> None:
        self._remove(task_id)


# ── Task categories ─────────────────────────────────────────────────────────


class InMemoryTaskCategoriesRepository(_InMemoryTable, TaskCategoriesRepository):
    table = "task_categories"
    prefix = "cat"
    not_found = "Category not found"

    async def list(self, query: TaskCategoriesQuery | None = None) -> list[TaskCategory]:
        query = query or TaskCategoriesQuery()
        categories = [rm.row_to_category(row) for row in self._db.rows(self.table)]
        categories = [c for c in categories if ilike_contains(c.name, query.search_text)]
        return apply_order(categories, ORDER_BY_NAME)

    async def get_by_id(self, category_id: str) -> TaskCategory | None:
        row = self._db.get(self.table, category_id)
        return rm.row_to_category(row) if row else None

    async def create(self, data: TaskCategoryInput) -> TaskCategory:
        return rm.row_to_category(self._db.insert(self.table, rm.category_to_insert(data), self.prefix))

    async def update(self, category_id: str, patch: TaskCategoryPatch) -> TaskCategory:
        row = self._require(category_id)
        columns = rm.category_patch_to_row(patch)
        if columns:
            row = self._db.update(self.table, category_id, columns)
        return rm.row_to_category(row)

    async def remove(self, category_id: str) -> None:
        self._remove(category_id)


# ── Documents ───────────────────────────────────────────────────────────────


class InMemoryDocumentsRepository(_InMemoryTable, DocumentsRepository):
    table = "documents"
    prefix = "d"
    not_found = "Document not found"

    def _map(self, row: Row) -> AppDocument:
        return rm.row_to_document(
            {
                **row,
                "clients": self._db.embed("clients", row.get("client_id"), "name"),
                "projects": self._db.embed("projects", row.get("project_id"), "name"),
                "users": self._db.embed("users", row.get("uploaded_by"), "display_name"),
            }
        )

    async def list(self, query: DocumentFilter | None = None) -> list[AppDocument]:
        query = query or DocumentFilter()
        documents = [self._map(row) for row in self._db.rows(self.table)]
        documents = [
            d
            for d in documents
            if (query.client_id is None or d.client_id == query.client_id)
            and (query.project_id is None or d.project_id == query.project_id)
            and (query.kind is None or d.kind == query.kind)
            and ilike_contains(d.title, query.search_text)
        ]
        return apply_order(documents, ORDER_BY_CREATED)

    async def get_by_id(self, document_id: str) -> AppDocument | None:
        row = self._db.get(self.table, document_id)
        return self._map(row) if row else None

    async def create(self, data: DocumentInput) -> AppDocument:
        return self._map(self._db.insert(self.table, rm.document_to_insert(data), self.prefix))

    async def update(self, document_id: str, patch: DocumentPatch) -> AppDocument:
        row = self._require(document_id)
        columns = rm.document_patch_to_row(patch)
        if columns:
            row = self._db.update(self.table, document_id, columns)
        return self._map(row)

    async def remove(self, document_id: str) -> None:
        self._remove(document_id)


# ── Client notes ────────────────────────────────────────────────────────────


class InMemoryClientNotesRepository(_InMemoryTable, ClientNotesRepository):
    table = "client_notes"
    prefix = "n"
    not_found = "Note not found"

    def __init__(
        self,
        db: InMemoryDatabase | None = None,
        storage: BlobStorage | None = None,
        bucket: str = "documents",
    ) -> None:
        super().__init__(db)
        self._storage = storage or InMemoryBlobStorage()
        self._bucket = bucket

    def _map(self, row: Row, with_client: bool = True) -> ClientNote:
        row = {**row, "client_note_attachments": self._db.children("client_note_attachments", "note_id", row["id"])}
        if with_client:
            row["clients"] = self._db.embed("clients", row.get("client_id"), "name")
        return rm.row_to_note(row)

    async def list_for_client(
        self, client_id: str, author_user_id: str, limit: int | None = None
    ) -> list[ClientNote]:
        notes = [
            self._map(row, with_client=False)
            for row in self._db.rows(self.table)
            if row.get("client_id") == client_id and row.get("author_user_id") == author_user_id
        ]
        notes = apply_order(notes, ORDER_BY_CREATED)
        return notes[:limit] if limit else notes

    async def list_all(
        self, resolved: ResolvedFilter = ResolvedFilter.ALL, limit: int | None = None
    ) -> list[ClientNote]:
        notes = [self._map(row) for row in self._db.rows(self.table)]
        if resolved is ResolvedFilter.RESOLVED:
            notes = [n for n in notes if n.is_resolved]
        elif resolved is ResolvedFilter.UNRESOLVED:
            notes = [n for n in notes if not n.is_resolved]
        notes = apply_order(notes, ORDER_NOTES_INBOX)
        return notes[:limit] if limit else notes

    async def get_by_id(self, note_id: str) -> ClientNote | None:
        row = self._db.get(self.table, note_id)
        return self._map(row) if row else None

    async def create(self, data: ClientNoteInput, author_user_id: str) -> ClientNote:
        row = self._db.insert(
            self.table,
            {**rm.note_to_insert(data, author_user_id), "is_resolved": False, "resolved_at": None, "resolved_by": None},
            self.prefix,
        )
        note_id = row["id"]
        for index, attachment in enumerate(data.attachments[:MAX_NOTE_ATTACHMENTS]):
            ext = extension_for(attachment.file_name, attachment.mime_type)
            uploaded = await self._storage.upload(
                self._bucket,
                note_attachment_path(data.client_id, note_id, index, ext),
                attachment.content,
                attachment.mime_type,
            )
            self._db.insert(
                "client_note_attachments",
                rm.attachment_to_insert(
                    note_id,
                    uploaded,
                    safe_file_name(attachment.file_name, ext),
                    attachment.mime_type,
                    attachment.size_bytes if attachment.size_bytes is not None else len(attachment.content),
                ),
                "na",
            )
        return self._map(self._db.get(self.table, note_id))

    async def set_resolved(
        self, note_id: str, is_resolved: bool, resolved_by: str | None = None
    ) -> ClientNote:
        row = self._require(note_id)
        if not (is_resolved and row.get("is_resolved")):
            row = self._db.update(
                self.table, note_id, rm.resolution_to_row(is_resolved, resolved_by, self._db.clock.now())
            )
        return self._map(row)

    async def remove(self, note_id: str) -> None:
        self._remove(note_id)
        self._db.delete_where("client_note_attachments", "note_id", note_id)


# ── Notifications ───────────────────────────────────────────────────────────


class InMemoryNotificationsRepository(_InMemoryTable, NotificationsRepository):
    table = "notifications"
    prefix = "ntf"
    not_found = "Notification not found"

    def add(
        self,
        recipient_user_id: str,
        title: str,
        body: str | None = None,
        data: dict | None = None,
        sender_user_id: str | None = None,
    ) -> Notification:
        """通知を登録する（サーバー側のトリガーが作る通知の代わり）"""
        row = self._db.insert(
            self.table,
            {
                "recipient_user_id": recipient_user_id,
                "sender_user_id": sender_user_id,
                "title": title,
                "body": body,
                "data": data,
                "is_read": False,
                "read_at": None,
            },
            self.prefix,
        )
        return rm.row_to_notification(row)

    async def list(self, query: NotificationsQuery | None = None) -> list[Notification]:
        query = query or NotificationsQuery()
        if not query.viewer_user_id:
            return []
        items = [
            rm.row_to_notification(row)
            for row in self._db.rows(self.table)
            if row.get("recipient_user_id") == query.viewer_user_id
        ]
        if query.only_unread:
            items = [n for n in items if not n.is_read]
        items = apply_order(items, ORDER_BY_CREATED)
        return items[: query.limit] if query.limit else items

    async def mark_read(self, notification_id: str) -> None:
        row = self._db.get(self.table, notification_id)
        if row is not None and not row.get("is_read"):
            self._db.update(self.table, notification_id, {"is_read": True, "read_at": self._db.clock.now()})

    async def mark_all_read(self, viewer_user_id: str) -> None:
        for row in self._db.rows(self.table):
            if row.get("recipient_user_id") == viewer_user_id and not row.get("is_read"):
                await self.mark_read(row["id"])


# ── Storage / Identity ──────────────────────────────────────────────────────


class InMemoryBlobStorage(BlobStorage):
    """アップロードされたバイト列をメモリに保持する"""

    def __init__(self, base_url: str = "memory://local") -> None:
        self._base_url = base_url.rstrip("/")
        self.objects: dict[tuple[str, str], tuple[bytes, str | None]] = {}

    def public_url(self, bucket: str, object_path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{encode_path_segments(object_path)}"

    async def upload(
        self,
        bucket: str,
        object_path: str,
        content: bytes,
        content_type: str | None = None,
    ) -> UploadedObject:
        self.objects[(bucket, object_path)] = (content, content_type)
        return UploadedObject(
            bucket=bucket,
            object_path=object_path,
            public_url=self.public_url(bucket, object_path),
        )


class InMemoryIdentityProvisioner(IdentityProvisioner):
    """ログインユーザーを users テーブルに登録するだけの実装"""

    def __init__(self, db: InMemoryDatabase | None = None) -> None:
        self._db = db or InMemoryDatabase()
        self._emails: dict[str, str] = {}

    async def create_client_user(self, email: str, password: str, display_name: str) -> str:
        key = (email or "").strip().lower()
        if not key or not password:
            raise ValidationError("Email and password are required")
        if key in self._emails:
            raise ValidationError("User already registered")
        user_id = new_id("u")
        self._emails[key] = user_id
        self._db.add_user(user_id, display_name)
        return user_id
