"""Supabase Repository Adapter

各リポジトリ Port の PostgREST 実装。

テーブル構造（public スキーマ）:
  clients                  ← クライアント（client_user_id でログインユーザーと紐づく）
  client_contacts          ← クライアントの連絡先（client_id）
  documents                ← ドキュメント（client_id / project_id は任意）
  projects                 ← プロジェクト（client_id 必須）
  tasks                    ← タスク（担当者・カテゴリを埋め込みで取得）
  task_categories          ← タスクカテゴリ
  client_notes             ← クライアントメモ
  client_note_attachments  ← メモの添付画像（note_id）
  notifications            ← 通知（recipient_user_id）

複数ステップの書き込み（親 + 子）はトランザクションではない。
親を作成 → 子を書き込み → 埋め込み込みで再取得、の順に行う。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from clientdesk.adapters import row_mappers as rm
from clientdesk.adapters.clock import utc_now_iso
from clientdesk.adapters.postgrest_query import (
    ORDER_BY_CREATED,
    ORDER_BY_NAME,
    ORDER_BY_UPDATED,
    ORDER_NOTES_INBOX,
    PostgrestQuery,
    eq,
)
from clientdesk.adapters.supabase_rest import Row, SupabaseRestClient
from clientdesk.adapters.supabase_storage import (
    extension_for,
    note_attachment_path,
    safe_file_name,
)
from clientdesk.domain.errors import EmptyResultError, RestError
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
)
from clientdesk.domain.ports import (
    BlobStorage,
    ClientNotesRepository,
    ClientsRepository,
    DocumentsRepository,
    NotificationsRepository,
    ProjectsRepository,
    TaskCategoriesRepository,
    TaskRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLIENTS = "clients"
_CLIENT_CONTACTS = "client_contacts"
_DOCUMENTS = "documents"
_PROJECTS = "projects"
_TASKS = "tasks"
_TASK_CATEGORIES = "task_categories"
_CLIENT_NOTES = "client_notes"
_NOTE_ATTACHMENTS = "client_note_attachments"
_NOTIFICATIONS = "notifications"

# 埋め込みリレーションや新しい列が無い環境で PostgREST が返すエラー文言
_SCHEMA_MISMATCH_MARKERS = ("could not find", "relationship", "does not exist")


def is_schema_mismatch(error: Exception) -> bool:
    """select の列・リレーションが存在しないことによる失敗か"""
    if not isinstance(error, RestError):
        return False
    details = (error.details or "").lower()
    return any(marker in details for marker in _SCHEMA_MISMATCH_MARKERS)


class _SupabaseTable(Generic[T]):
    """
    1テーブル分の共通操作。

    selects は優先順の select 句。先頭が拒否された場合（is_schema_mismatch）は
    順に小さい select で再試行し、それ以外のエラーはそのまま伝播する。
    """

    table: str = ""
    selects: tuple[str, ...] = ("*",)

    def __init__(self, rest: SupabaseRestClient) -> None:
        self._rest = rest

    def _map(self, row: Row) -> T:
        raise NotImplementedError

    async def _select(self, params: dict[str, str], selects: tuple[str, ...] | None = None) -> list[Row]:
        candidates = selects or self.selects
        for select in candidates[:-1]:
            try:
                return await self._rest.select(self.table, {**params, "select": select})
            except RestError as e:
                if not is_schema_mismatch(e):
                    raise
                logger.warning(
                    "Select on %s rejected, retrying with fewer columns: %s",
                    self.table,
                    e.details,
                )
        return await self._rest.select(self.table, {**params, "select": candidates[-1]})

    async def _fetch_one(self, record_id: str, selects: tuple[str, ...] | None = None) -> T | None:
        rows = await self._select(
            PostgrestQuery().eq("id", record_id).limit(1).params(), selects
        )
        return self._map(rows[0]) if rows else None

    async def _insert(self, row: Row, table: str | None = None) -> Row:
        rows = await self._rest.insert(table or self.table, row)
        if not rows:
            raise EmptyResultError("Supabase create returned empty result")
        return rows[0]

    async def _patch(self, filters: dict[str, str], row: Row, table: str | None = None) -> Row:
        rows = await self._rest.update(table or self.table, filters, row)
        if not rows:
            raise EmptyResultError("Supabase update returned empty result")
        return rows[0]

    async def _reload(self, record_id: str, fallback: Row | None = None) -> T:
        """書き込み後に埋め込み込みで再取得する"""
        item = await self._fetch_one(record_id)
        if item is not None:
            return item
        if fallback is not None:
            return self._map(fallback)
        raise EmptyResultError("Supabase update returned empty result")

    async def _delete_by_id(self, record_id: str) -> None:
        await self._rest.delete(self.table, {"id": eq(record_id)})


# ── Clients ─────────────────────────────────────────────────────────────────

CLIENT_COLUMNS = "id,name,notes,total_price,remaining_to_pay,client_user_id,created_at,updated_at"
CONTACTS_EMBED = "client_contacts(id,client_id,name,email,phone,created_at,updated_at)"
CLIENT_DOCUMENTS_EMBED = (
    "documents(id,client_id,kind,title,storage_path,file_name,mime_type,size_bytes,uploaded_by,created_at)"
)


class SupabaseClientsRepository(_SupabaseTable[Client], ClientsRepository):
    """clients + client_contacts + documents"""

    table = _CLIENTS
    selects = (f"{CLIENT_COLUMNS},{CONTACTS_EMBED}", CLIENT_COLUMNS)
    detail_selects = (
        f"{CLIENT_COLUMNS},{CONTACTS_EMBED},{CLIENT_DOCUMENTS_EMBED}",
        f"{CLIENT_COLUMNS},{CONTACTS_EMBED}",
        CLIENT_COLUMNS,
    )

    def _map(self, row: Row) -> Client:
        return rm.row_to_client(row)

    async def list(self, query: ClientsQuery | None = None) -> list[Client]:
        query = query or ClientsQuery()
        params = (
            PostgrestQuery()
            .or_ilike(("name", "notes"), query.search_text)
            .order(ORDER_BY_UPDATED)
            .params()
        )
        return [self._map(row) for row in await self._select(params)]

    async def get_by_id(self, client_id: str) -> Client | None:
        return await self._fetch_one(client_id, self.detail_selects)

    async def create(self, data: ClientInput) -> Client:
        row = await self._insert(rm.client_to_insert(data))
        client_id = row["id"]
        await self._insert_contacts(client_id, data.contacts)
        logger.info("Created client: id=%s", client_id)
        return await self._reload_detail(client_id)

    async def update(self, client_id: str, patch: ClientPatch) -> Client:
        columns = rm.client_patch_to_row(patch)
        if columns:
            await self._patch({"id": eq(client_id)}, columns)
        if patch.contacts is not UNSET:
            await self._rest.delete(_CLIENT_CONTACTS, {"client_id": eq(client_id)})
            await self._insert_contacts(client_id, patch.contacts or [])
        return await self._reload_detail(client_id)

    async def remove(self, client_id: str) -> None:
        await self._delete_by_id(client_id)
        logger.info("Removed client: id=%s", client_id)

    async def add_document(self, client_id: str, doc: ClientDocumentInput) -> ClientDocument:
        row = await self._insert(rm.client_document_to_insert(client_id, doc), table=_DOCUMENTS)
        return rm.row_to_client_document(row)

    async def remove_document(self, document_id: str) -> None:
        await self._rest.delete(_DOCUMENTS, {"id": eq(document_id)})

    async def link_auth_user(self, client_id: str, user_id: str) -> None:
        await self._patch({"id": eq(client_id)}, {"client_user_id": user_id})
        logger.info("Linked login user: client_id=%s, user_id=%s", client_id, user_id)

    async def _insert_contacts(self, client_id: str, contacts: list) -> None:
        rows = rm.contacts_to_rows(client_id, contacts)
        if rows:
            await self._rest.insert(_CLIENT_CONTACTS, rows)

    async def _reload_detail(self, client_id: str) -> Client:
        client = await self.get_by_id(client_id)
        if client is None:
            raise EmptyResultError("Supabase update returned empty result")
        return client


# ── Projects ────────────────────────────────────────────────────────────────

PROJECT_COLUMNS = (
    "id,client_id,name,description,status,start_date,end_date,budget,currency,created_at,updated_at"
)


class SupabaseProjectsRepository(_SupabaseTable[Project], ProjectsRepository):
    table = _PROJECTS
    selects = (f"{PROJECT_COLUMNS},client:clients(name)", PROJECT_COLUMNS)

    def _map(self, row: Row) -> Project:
        return rm.row_to_project(row)

    async def list(self, query: ProjectsQuery | None = None) -> list[Project]:
        query = query or ProjectsQuery()
        params = (
            PostgrestQuery()
            .eq("status", query.status)
            .eq("client_id", query.client_id)
            .ilike("name", query.search_text)
            .order(ORDER_BY_UPDATED)
            .params()
        )
        return [self._map(row) for row in await self._select(params)]

    async def get_by_id(self, project_id: str) -> Project | None:
        return await self._fetch_one(project_id)

    async def create(self, data: ProjectInput) -> Project:
        row = await self._insert(rm.project_to_insert(data))
        return await self._reload(row["id"], row)

    async def update(self, project_id: str, patch: ProjectPatch) -> Project:
        columns = rm.project_patch_to_row(patch)
        row = await self._patch({"id": eq(project_id)}, columns) if columns else None
        return await self._reload(project_id, row)

    async def remove(self, project_id: str) -> None:
        await self._delete_by_id(project_id)


# ── Tasks ───────────────────────────────────────────────────────────────────

# categories / personal tasks / priority が入る前のスキーマでも存在する列
TASK_COLUMNS_LEGACY = (
    "id,description,status,assignee_id,due_at,client_id,project_id,category_id,created_at,updated_at"
)
TASK_COLUMNS = (
    "id,description,status,priority,tags,assignee_id,due_at,client_id,project_id,category_id,"
    "is_personal,owner_user_id,created_at,updated_at"
)
ASSIGNEE_EMBED = "assignee:users(display_name)"
CATEGORY_EMBED = "category:task_categories(name,color)"


class SupabaseTaskRepository(_SupabaseTable[Task], TaskRepository):
    """
    tasks の PostgREST 実装。

    select は full → カテゴリ無し → 埋め込み無し → 旧スキーマ列のみ、の順に縮退する。
    """

    table = _TASKS
    selects = (
        f"{TASK_COLUMNS},{ASSIGNEE_EMBED},{CATEGORY_EMBED}",
        f"{TASK_COLUMNS},{ASSIGNEE_EMBED}",
        TASK_COLUMNS,
        TASK_COLUMNS_LEGACY,
    )

    def _map(self, row: Row) -> Task:
        return rm.row_to_task(row)

    async def list(self, query: TaskQuery | None = None) -> list[Task]:
        query = query or TaskQuery()
        params = (
            PostgrestQuery()
            .eq("status", query.status)
            .eq("assignee_id", query.assignee_id)
            .eq("client_id", query.client_id)
            .eq("project_id", query.project_id)
            .eq("category_id", query.category_id)
            .ilike("description", query.search_text)
            .order(ORDER_BY_UPDATED)
            .params()
        )
        tasks = [self._map(row) for row in await self._select(params)]
        return [task for task in tasks if task.visible_to(query.viewer_user_id)]

    async def get_by_id(self, task_id: str) -> Task | None:
        return await self._fetch_one(task_id)

    async def create(self, data: TaskInput) -> Task:
        row = await self._insert(rm.task_to_insert(data))
        logger.info("Created task: id=%s", row["id"])
        return await self._reload(row["id"], row)

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        columns = rm.task_patch_to_row(patch)
        row = await self._patch({"id": eq(task_id)}, columns) if columns else None
        return await self._reload(task_id, row)

    async def remove(self, task_id: str) -> None:
        await self._delete_by_id(task_id)


# ── Task categories ─────────────────────────────────────────────────────────


class SupabaseTaskCategoriesRepository(_SupabaseTable[TaskCategory], TaskCategoriesRepository):
    table = _TASK_CATEGORIES
    selects = ("id,name,slug,color,created_at,updated_at",)

    def _map(self, row: Row) -> TaskCategory:
        return rm.row_to_category(row)

    async def list(self, query: TaskCategoriesQuery | None = None) -> list[TaskCategory]:
        query = query or TaskCategoriesQuery()
        params = PostgrestQuery().ilike("name", query.search_text).order(ORDER_BY_NAME).params()
        return [self._map(row) for row in await self._select(params)]

    async def get_by_id(self, category_id: str) -> TaskCategory | None:
        return await self._fetch_one(category_id)

    async def create(self, data: TaskCategoryInput) -> TaskCategory:
        return self._map(await self._insert(rm.category_to_insert(data)))

    async def update(self, category_id: str, patch: TaskCategoryPatch) -> TaskCategory:
        columns = rm.category_patch_to_row(patch)
        if not columns:
            return await self._reload(category_id)
        return self._map(await self._patch({"id": eq(category_id)}, columns))

    async def remove(self, category_id: str) -> None:
        await self._delete_by_id(category_id)


# ── Documents ───────────────────────────────────────────────────────────────


class SupabaseDocumentsRepository(_SupabaseTable[AppDocument], DocumentsRepository):
    table = _DOCUMENTS
    selects = ("*,clients(name),projects(name),users(display_name)", "*")

    def _map(self, row: Row) -> AppDocument:
        return rm.row_to_document(row)

    async def list(self, query: DocumentFilter | None = None) -> list[AppDocument]:
        query = query or DocumentFilter()
        params = (
            PostgrestQuery()
            .eq("client_id", query.client_id)
            .eq("project_id", query.project_id)
            .eq("kind", query.kind)
            .ilike("title", query.search_text)
            .order(ORDER_BY_CREATED)
            .params()
        )
        return [self._map(row) for row in await self._select(params)]

    async def get_by_id(self, document_id: str) -> AppDocument | None:
        return await self._fetch_one(document_id)

    async def create(self, data: DocumentInput) -> AppDocument:
        row = await self._insert(rm.document_to_insert(data))
        logger.info("Created document: id=%s, path=%s", row["id"], data.storage_path)
        return await self._reload(row["id"], row)

    async def update(self, document_id: str, patch: DocumentPatch) -> AppDocument:
        columns = rm.document_patch_to_row(patch)
        row = await self._patch({"id": eq(document_id)}, columns) if columns else None
        return await self._reload(document_id, row)

    async def remove(self, document_id: str) -> None:
        await self._delete_by_id(document_id)


# ── Client notes ────────────────────────────────────────────────────────────

NOTE_COLUMNS = (
    "id,client_id,author_user_id,body,is_resolved,resolved_at,resolved_by,created_at,updated_at"
)
ATTACHMENTS_EMBED = (
    "client_note_attachments(id,note_id,storage_path,public_url,file_name,mime_type,size_bytes,created_at)"
)
NOTE_SELECT = f"{NOTE_COLUMNS},{ATTACHMENTS_EMBED}"
INBOX_SELECT = f"{NOTE_SELECT},clients:clients(name)"

_RESOLVED_FILTER_VALUES: dict[ResolvedFilter, bool | None] = {
    ResolvedFilter.ALL: None,
    ResolvedFilter.RESOLVED: True,
    ResolvedFilter.UNRESOLVED: False,
}


class SupabaseClientNotesRepository(_SupabaseTable[ClientNote], ClientNotesRepository):
    """
    client_notes + client_note_attachments。

    添付画像は BlobStorage にアップロードしてから添付行を作成する。
    """

    table = _CLIENT_NOTES
    selects = (INBOX_SELECT,)

    def __init__(
        self,
        rest: SupabaseRestClient,
        storage: BlobStorage,
        bucket: str = "documents",
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        super().__init__(rest)
        self._storage = storage
        self._bucket = bucket
        self._clock = clock

    def _map(self, row: Row) -> ClientNote:
        return rm.row_to_note(row)

    async def list_for_client(
        self, client_id: str, author_user_id: str, limit: int | None = None
    ) -> list[ClientNote]:
        params = (
            PostgrestQuery()
            .eq("client_id", client_id)
            .eq("author_user_id", author_user_id)
            .order(ORDER_BY_CREATED)
            .limit(limit)
            .params()
        )
        return [self._map(row) for row in await self._select(params, (NOTE_SELECT,))]

    async def list_all(
        self, resolved: ResolvedFilter = ResolvedFilter.ALL, limit: int | None = None
    ) -> list[ClientNote]:
        params = (
            PostgrestQuery()
            .eq("is_resolved", _RESOLVED_FILTER_VALUES[resolved])
            .order(ORDER_NOTES_INBOX)
            .limit(limit)
            .params()
        )
        return [self._map(row) for row in await self._select(params)]

    async def get_by_id(self, note_id: str) -> ClientNote | None:
        return await self._fetch_one(note_id)

    async def create(self, data: ClientNoteInput, author_user_id: str) -> ClientNote:
        row = await self._insert(rm.note_to_insert(data, author_user_id))
        note_id = row["id"]

        if len(data.attachments) > MAX_NOTE_ATTACHMENTS:
            logger.warning(
                "Note %s has %d attachments, keeping the first %d",
                note_id,
                len(data.attachments),
                MAX_NOTE_ATTACHMENTS,
            )

        attachment_rows: list[Row] = []
        for index, attachment in enumerate(data.attachments[:MAX_NOTE_ATTACHMENTS]):
            ext = extension_for(attachment.file_name, attachment.mime_type)
            uploaded = await self._storage.upload(
                self._bucket,
                note_attachment_path(data.client_id, note_id, index, ext),
                attachment.content,
                attachment.mime_type,
            )
            attachment_rows.append(
                rm.attachment_to_insert(
                    note_id,
                    uploaded,
                    safe_file_name(attachment.file_name, ext),
                    attachment.mime_type,
                    attachment.size_bytes if attachment.size_bytes is not None else len(attachment.content),
                )
            )
        if attachment_rows:
            await self._rest.insert(_NOTE_ATTACHMENTS, attachment_rows)

        note = await self._fetch_one(note_id)
        if note is None:
            raise EmptyResultError("Failed to reload created note")
        logger.info("Created note: id=%s, attachments=%d", note_id, len(attachment_rows))
        return note

    async def set_resolved(
        self, note_id: str, is_resolved: bool, resolved_by: str | None = None
    ) -> ClientNote:
        row = rm.resolution_to_row(is_resolved, resolved_by, self._clock())
        if is_resolved:
            # 未解決の行だけを更新し、最初の resolved_at / resolved_by を保持する
            rows = await self._rest.update(
                self.table, {"id": eq(note_id), "is_resolved": eq(False)}, row
            )
        else:
            rows = await self._rest.update(self.table, {"id": eq(note_id)}, row)

        note = await self._fetch_one(note_id)
        if note is None:
            if rows:
                return self._map(rows[0])
            raise EmptyResultError("Supabase update returned empty result")
        return note

    async def remove(self, note_id: str) -> None:
        await self._delete_by_id(note_id)


# ── Notifications ───────────────────────────────────────────────────────────


class SupabaseNotificationsRepository(_SupabaseTable[Notification], NotificationsRepository):
    table = _NOTIFICATIONS
    selects = (
        "id,recipient_user_id,sender_user_id,title,body,data,is_read,read_at,created_at,updated_at",
    )

    def __init__(self, rest: SupabaseRestClient, clock: Callable[[], str] = utc_now_iso) -> None:
        super().__init__(rest)
        self._clock = clock

    def _map(self, row: Row) -> Notification:
        return rm.row_to_notification(row)

    async def list(self, query: NotificationsQuery | None = None) -> list[Notification]:
        query = query or NotificationsQuery()
        if not query.viewer_user_id:
            return []
        params = (
            PostgrestQuery()
            .eq("recipient_user_id", query.viewer_user_id)
            .eq("is_read", False if query.only_unread else None)
            .order(ORDER_BY_CREATED)
            .limit(query.limit)
            .params()
        )
        return [self._map(row) for row in await self._select(params)]

    async def mark_read(self, notification_id: str) -> None:
        await self._rest.update(
            self.table, {"id": eq(notification_id)}, self._read_row()
        )

    async def mark_all_read(self, viewer_user_id: str) -> None:
        await self._rest.update(
            self.table,
            {"recipient_user_id": eq(viewer_user_id), "is_read": eq(False)},
            self._read_row(),
        )

    def _read_row(self) -> dict[str, Any]:
        return {"is_read": True, "read_at": self._clock()}
