"""Row Mapper - バックエンド行 ⇔ ドメインモデルの変換

副作用のない純粋関数のみ。

行 → ドメイン:
- null はそのまま None
- 数値列は数値 / 数値文字列を受け付け、非有限・解釈不能な値は None（例外にしない）
- 日付・日時列は ISO8601 として解釈できない場合 None
- 埋め込みリレーションは1段だけ平坦化（client:clients(name) → client_name）
- 埋め込み子配列は子の mapper で変換し、null 要素は除外
- 未知の enum 値は既定値にフォールバック（警告ログ）

ドメイン → 行:
- insert は派生・埋め込みフィールドを落とし、None は JSON null
- patch は UNSET でないフィールドだけを列として含める
- 金額・日付の整形はしない（表示層の責務）
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import (
    UNSET,
    AppDocument,
    Client,
    ClientContact,
    ClientContactInput,
    ClientDocument,
    ClientDocumentInput,
    ClientInput,
    ClientNote,
    ClientNoteAttachment,
    ClientNoteInput,
    ClientPatch,
    DocumentInput,
    DocumentKind,
    DocumentPatch,
    Notification,
    PatchBase,
    Project,
    ProjectInput,
    ProjectPatch,
    ProjectStatus,
    Task,
    TaskCategory,
    TaskCategoryInput,
    TaskCategoryPatch,
    TaskInput,
    TaskPatch,
    TaskPriority,
    TaskStatus,
    UploadedObject,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

Row = dict[str, Any]


# ── 防御的な型変換 ──────────────────────────────────────────────────────────


def to_number(value: Any) -> float | int | None:
    """数値 / 数値文字列を数値に。非有限・解釈不能・bool は None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def to_int(value: Any) -> int | None:
    number = to_number(value)
    return int(number) if number is not None else None


def to_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def to_datetime(value: Any) -> str | None:
    """ISO8601 日時として解釈できる文字列だけを通す"""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return value


def to_date(value: Any) -> str | None:
    """YYYY-MM-DD として解釈できる文字列だけを通す"""
    if not isinstance(value, str):
        return None
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return None
    return value.strip()


def to_enum(enum_cls: type[E], value: Any, default: E) -> E:
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unknown %s value %r, falling back to %s", enum_cls.__name__, value, default.value)
        return default


def embedded(row: Row, *keys: str) -> Row | None:
    """埋め込みリレーション（エイリアス候補を順に探す）を1件取り出す"""
    for key in keys:
        value = row.get(key)
        if isinstance(value, list):
            value = next((v for v in value if isinstance(v, dict)), None)
        if isinstance(value, dict):
            return value
    return None


def embedded_value(row: Row, keys: tuple[str, ...], field_name: str) -> str | None:
    rel = embedded(row, *keys)
    return to_str(rel.get(field_name)) if rel else None


def child_rows(row: Row, key: str) -> list[Row]:
    value = row.get(key)
    if not isinstance(value, list):
        return []
    return [child for child in value if child]


def column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def patch_to_row(patch: PatchBase, columns: dict[str, str]) -> Row:
    """
    Patch を行の部分更新に変換する。

    columns に載っている（＝列として保存される）フィールドのうち、
    UNSET でないものだけをキーとして含める。None は null としてそのまま送る。
    """
    row: Row = {}
    for field_name, column in columns.items():
        value = getattr(patch, field_name)
        if value is UNSET:
            continue
        row[column] = column_value(value)
    return row


# ── Client ──────────────────────────────────────────────────────────────────

CLIENT_PATCH_COLUMNS = {
    "name": "name",
    "notes": "notes",
    "total_price": "total_price",
    "remaining_to_pay": "remaining_to_pay",
}


def row_to_contact(row: Row) -> ClientContact:
    return ClientContact(
        id=row["id"],
        client_id=row.get("client_id") or "",
        name=row.get("name") or "",
        email=to_str(row.get("email")),
        phone=to_str(row.get("phone")),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def row_to_client_document(row: Row) -> ClientDocument:
    return ClientDocument(
        id=row["id"],
        client_id=row.get("client_id") or "",
        kind=to_enum(DocumentKind, row.get("kind"), DocumentKind.GENERAL),
        title=row.get("title") or "",
        storage_path=row.get("storage_path") or "",
        file_name=row.get("file_name") or "",
        mime_type=to_str(row.get("mime_type")),
        size_bytes=to_int(row.get("size_bytes")),
        uploaded_by=to_str(row.get("uploaded_by")),
        created_at=row.get("created_at") or "",
    )


def row_to_client(row: Row) -> Client:
    return Client(
        id=row["id"],
        name=row.get("name") or "",
        notes=to_str(row.get("notes")),
        total_price=to_number(row.get("total_price")),
        remaining_to_pay=to_number(row.get("remaining_to_pay")),
        client_user_id=to_str(row.get("client_user_id")),
        contacts=[row_to_contact(c) for c in child_rows(row, "client_contacts")],
        documents=[row_to_client_document(d) for d in child_rows(row, "documents")],
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def client_to_insert(data: ClientInput) -> Row:
    if not (data.name or "").strip():
        raise ValidationError("Client name is required")
    return {
        "name": data.name.strip(),
        "notes": data.notes,
        "total_price": data.total_price,
        "remaining_to_pay": data.remaining_to_pay,
    }


def client_patch_to_row(patch: ClientPatch) -> Row:
    """contacts は別テーブルなので含めない"""
    row = patch_to_row(patch, CLIENT_PATCH_COLUMNS)
    if "name" in row:
        name = (row["name"] or "").strip()
        if not name:
            raise ValidationError("Client name is required")
        row["name"] = name
    return row


def contacts_to_rows(client_id: str, contacts: list[ClientContactInput]) -> list[Row]:
    """連絡先の insert 行。name が空のものは除外"""
    return [
        {
            "client_id": client_id,
            "name": contact.name.strip(),
            "email": contact.email or None,
            "phone": contact.phone or None,
        }
        for contact in contacts
        if (contact.name or "").strip()
    ]


def client_document_to_insert(client_id: str, doc: ClientDocumentInput) -> Row:
    return {
        "client_id": client_id,
        "kind": doc.kind.value,
        "title": doc.title,
        "storage_path": doc.storage_path,
        "file_name": doc.file_name,
        "mime_type": doc.mime_type,
        "size_bytes": doc.size_bytes,
        "uploaded_by": doc.uploaded_by,
    }


# ── Project ─────────────────────────────────────────────────────────────────

PROJECT_PATCH_COLUMNS = {
    "client_id": "client_id",
    "name": "name",
    "description": "description",
    "status": "status",
    "start_date": "start_date",
    "end_date": "end_date",
    "budget": "budget",
    "currency": "currency",
}


def row_to_project(row: Row) -> Project:
    return Project(
        id=row["id"],
        client_id=row.get("client_id") or "",
        client_name=embedded_value(row, ("client", "clients"), "name"),
        name=row.get("name") or "",
        description=to_str(row.get("description")),
        status=to_enum(ProjectStatus, row.get("status"), ProjectStatus.ACTIVE),
        start_date=to_date(row.get("start_date")),
        end_date=to_date(row.get("end_date")),
        budget=to_number(row.get("budget")),
        currency=row.get("currency") or "ILS",
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def project_to_insert(data: ProjectInput) -> Row:
    if not data.client_id:
        raise ValidationError("Project requires a client")
    if not (data.name or "").strip():
        raise ValidationError("Project name is required")
    return {
        "client_id": data.client_id,
        "name": data.name,
        "description": data.description,
        "status": data.status.value,
        "start_date": data.start_date,
        "end_date": data.end_date,
        "budget": data.budget,
        "currency": data.currency,
    }


def project_patch_to_row(patch: ProjectPatch) -> Row:
    return patch_to_row(patch, PROJECT_PATCH_COLUMNS)


# ── Task ────────────────────────────────────────────────────────────────────

TASK_PATCH_COLUMNS = {
    "description": "description",
    "status": "status",
    "priority": "priority",
    "assignee_id": "assignee_id",
    "client_id": "client_id",
    "project_id": "project_id",
    "category_id": "category_id",
    "due_at": "due_at",
    "tags": "tags",
    "is_personal": "is_personal",
    "owner_user_id": "owner_user_id",
}


def _tags(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value if tag]


def row_to_task(row: Row) -> Task:
    is_personal = row.get("is_personal")
    return Task(
        id=row["id"],
        description=row.get("description") or "",
        status=to_enum(TaskStatus, row.get("status"), TaskStatus.TODO),
        priority=to_enum(TaskPriority, row.get("priority"), TaskPriority.MEDIUM),
        assignee_id=to_str(row.get("assignee_id")),
        assignee_name=embedded_value(row, ("assignee", "users"), "display_name"),
        client_id=to_str(row.get("client_id")),
        project_id=to_str(row.get("project_id")),
        category_id=to_str(row.get("category_id")),
        category_name=embedded_value(row, ("category", "task_categories"), "name"),
        category_color=embedded_value(row, ("category", "task_categories"), "color"),
        due_at=to_datetime(row.get("due_at")),
        tags=_tags(row.get("tags")),
        is_personal=is_personal if isinstance(is_personal, bool) else None,
        owner_user_id=to_str(row.get("owner_user_id")),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def task_to_insert(data: TaskInput) -> Row:
    return {
        "description": data.description,
        "status": data.status.value,
        "priority": data.priority.value,
        "assignee_id": data.assignee_id,
        "client_id": data.client_id,
        "project_id": data.project_id,
        "category_id": data.category_id,
        "due_at": data.due_at,
        "tags": list(data.tags),
        "is_personal": bool(data.is_personal),
        "owner_user_id": data.owner_user_id,
    }


def task_patch_to_row(patch: TaskPatch) -> Row:
    return patch_to_row(patch, TASK_PATCH_COLUMNS)


# ── TaskCategory ────────────────────────────────────────────────────────────

CATEGORY_PATCH_COLUMNS = {"name": "name", "slug": "slug", "color": "color"}


def row_to_category(row: Row) -> TaskCategory:
    return TaskCategory(
        id=row["id"],
        name=row.get("name") or "",
        slug=row.get("slug") or "",
        color=to_str(row.get("color")),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def slugify(name: str) -> str:
    """英数字（Unicode 文字を含む）以外をハイフンにまとめた小文字のスラッグ"""
    slug = re.sub(r"[\W_]+", "-", (name or "").strip().lower()).strip("-")
    return slug or "category"


def category_to_insert(data: TaskCategoryInput) -> Row:
    name = (data.name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    return {"name": name, "slug": (data.slug or "").strip() or slugify(name), "color": data.color}


def category_patch_to_row(patch: TaskCategoryPatch) -> Row:
    return patch_to_row(patch, CATEGORY_PATCH_COLUMNS)


# ── Document ────────────────────────────────────────────────────────────────

DOCUMENT_PATCH_COLUMNS = {
    "title": "title",
    "kind": "kind",
    "client_id": "client_id",
    "project_id": "project_id",
}


def row_to_document(row: Row) -> AppDocument:
    return AppDocument(
        id=row["id"],
        client_id=to_str(row.get("client_id")),
        client_name=embedded_value(row, ("clients", "client"), "name"),
        project_id=to_str(row.get("project_id")),
        project_name=embedded_value(row, ("projects", "project"), "name"),
        kind=to_enum(DocumentKind, row.get("kind"), DocumentKind.GENERAL),
        title=row.get("title") or "",
        storage_path=row.get("storage_path") or "",
        file_name=row.get("file_name") or "",
        mime_type=to_str(row.get("mime_type")),
        size_bytes=to_int(row.get("size_bytes")),
        uploaded_by=to_str(row.get("uploaded_by")),
        uploaded_by_name=embedded_value(row, ("users", "uploader"), "display_name"),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def document_to_insert(data: DocumentInput) -> Row:
    return {
        "client_id": data.client_id,
        "project_id": data.project_id,
        "kind": data.kind.value,
        "title": data.title,
        "storage_path": data.storage_path,
        "file_name": data.file_name,
        "mime_type": data.mime_type,
        "size_bytes": data.size_bytes,
        "uploaded_by": data.uploaded_by,
    }


def document_patch_to_row(patch: DocumentPatch) -> Row:
    return patch_to_row(patch, DOCUMENT_PATCH_COLUMNS)


# ── ClientNote ──────────────────────────────────────────────────────────────


def note_to_insert(data: ClientNoteInput, author_user_id: str) -> Row:
    body = (data.body or "").strip()
    if not body and not data.attachments:
        raise ValidationError("Note body or attachment is required")
    if not data.client_id:
        raise ValidationError("Note requires a client")
    return {"client_id": data.client_id, "author_user_id": author_user_id, "body": body}


def attachment_to_insert(
    note_id: str,
    uploaded: UploadedObject,
    file_name: str,
    mime_type: str | None,
    size_bytes: int | None,
) -> Row:
    return {
        "note_id": note_id,
        "storage_path": uploaded.object_path,
        "public_url": uploaded.public_url,
        "file_name": file_name,
        "mime_type": mime_type,
        "size_bytes": size_bytes,
    }


def resolution_to_row(is_resolved: bool, resolved_by: str | None, now: str) -> Row:
    """解決状態の更新行。resolved_at / resolved_by は常に対で設定・クリアする"""
    if is_resolved:
        return {"is_resolved": True, "resolved_at": now, "resolved_by": resolved_by}
    return {"is_resolved": False, "resolved_at": None, "resolved_by": None}


def row_to_attachment(row: Row) -> ClientNoteAttachment:
    return ClientNoteAttachment(
        id=row["id"],
        note_id=row.get("note_id") or "",
        storage_path=row.get("storage_path") or "",
        public_url=row.get("public_url") or "",
        file_name=row.get("file_name") or "",
        mime_type=to_str(row.get("mime_type")),
        size_bytes=to_int(row.get("size_bytes")),
        created_at=row.get("created_at") or "",
    )


def row_to_note(row: Row) -> ClientNote:
    return ClientNote(
        id=row["id"],
        client_id=row.get("client_id") or "",
        client_name=embedded_value(row, ("client", "clients"), "name"),
        author_user_id=row.get("author_user_id") or "",
        body=row.get("body") or "",
        is_resolved=bool(row.get("is_resolved")),
        resolved_at=to_datetime(row.get("resolved_at")),
        resolved_by=to_str(row.get("resolved_by")),
        attachments=[row_to_attachment(a) for a in child_rows(row, "client_note_attachments")],
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


# ── Notification ────────────────────────────────────────────────────────────


def row_to_notification(row: Row) -> Notification:
    data = row.get("data")
    return Notification(
        id=row["id"],
        recipient_user_id=row.get("recipient_user_id") or "",
        sender_user_id=to_str(row.get("sender_user_id")),
        title=row.get("title") or "",
        body=to_str(row.get("body")),
        data=data if isinstance(data, dict) else None,
        is_read=bool(row.get("is_read")),
        read_at=to_datetime(row.get("read_at")),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )
