"""ドメインモデル - 外部依存なしのデータ構造

エンティティは frozen dataclass。バックエンドの行（snake_case / null 許容 / 埋め込み
リレーション）からの変換は adapters.row_mappers が担当する。

部分更新（Patch）の各フィールドは UNSET を既定値とし、
- UNSET  : このパッチに含めない（列を触らない）
- None   : 明示的にクリア（null を送る）
- その他 : 新しい値
の3状態を区別する。
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any


class _Unset:
    """パッチ未指定を表すセンチネル"""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class PatchBase:
    """Patch DTO 共通の振る舞い"""

    def changes(self) -> dict[str, Any]:
        """UNSET 以外のフィールドだけを {フィールド名: 値} で返す"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()


# ── Client ──────────────────────────────────────────────────────────────────


class DocumentKind(Enum):
    """ドキュメント種別"""

    GENERAL = "general"
    RECEIPT = "receipt"
    INVOICE = "invoice"
    QUOTE = "quote"
    CONTRACT = "contract"
    TAX_INVOICE = "tax_invoice"
    OTHER = "other"


@dataclass(frozen=True)
class ClientContact:
    """クライアントの連絡先"""

    id: str
    client_id: str
    name: str
    created_at: str
    updated_at: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ClientContactInput:
    """連絡先の入力（name が空のものは保存時に除外される）"""

    name: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ClientDocument:
    """クライアントに紐づくドキュメント（clients 行に埋め込まれる documents）"""

    id: str
    client_id: str
    title: str
    storage_path: str
    file_name: str
    created_at: str
    kind: DocumentKind = DocumentKind.GENERAL
    mime_type: str | None = None
    size_bytes: int | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class ClientDocumentInput:
    """クライアントへのドキュメント追加入力"""

    title: str
    storage_path: str
    file_name: str
    kind: DocumentKind = DocumentKind.GENERAL
    mime_type: str | None = None
    size_bytes: int | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class Client:
    """クライアント"""

    id: str
    name: str
    created_at: str
    updated_at: str
    notes: str | None = None
    total_price: float | None = None
    remaining_to_pay: float | None = None
    client_user_id: str | None = None  # ログイン用 Auth ユーザー（リンク済みの場合）
    contacts: list[ClientContact] = field(default_factory=list)
    documents: list[ClientDocument] = field(default_factory=list)


@dataclass(frozen=True)
class ClientInput:
    """クライアント作成入力"""

    name: str
    notes: str | None = None
    total_price: float | None = None
    remaining_to_pay: float | None = None
    contacts: list[ClientContactInput] = field(default_factory=list)


@dataclass(frozen=True)
class ClientPatch(PatchBase):
    """クライアント部分更新。contacts を指定すると連絡先は丸ごと置き換わる"""

    name: Any = UNSET
    notes: Any = UNSET
    total_price: Any = UNSET
    remaining_to_pay: Any = UNSET
    contacts: Any = UNSET


@dataclass(frozen=True)
class ClientsQuery:
    search_text: str | None = None


@dataclass(frozen=True)
class ClientLogin:
    """クライアント用ログインアカウントの作成情報"""

    email: str
    password: str
    display_name: str | None = None


# ── Project ─────────────────────────────────────────────────────────────────


class ProjectStatus(Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


DEFAULT_CURRENCY = "ILS"


@dataclass(frozen=True)
class Project:
    """プロジェクト（必ず1つのクライアントに属する）"""

    id: str
    client_id: str
    name: str
    status: ProjectStatus
    created_at: str
    updated_at: str
    currency: str = DEFAULT_CURRENCY
    client_name: str | None = None  # 埋め込み: client:clients(name)
    description: str | None = None
    start_date: str | None = None  # YYYY-MM-DD
    end_date: str | None = None  # YYYY-MM-DD
    budget: float | None = None


@dataclass(frozen=True)
class ProjectInput:
    client_id: str
    name: str
    status: ProjectStatus = ProjectStatus.ACTIVE
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    budget: float | None = None
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class ProjectPatch(PatchBase):
    client_id: Any = UNSET
    name: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    budget: Any = UNSET
    currency: Any = UNSET


@dataclass(frozen=True)
class ProjectsQuery:
    search_text: str | None = None
    status: ProjectStatus | None = None
    client_id: str | None = None


# ── Task ────────────────────────────────────────────────────────────────────


class TaskStatus(Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


TITLE_SEPARATOR = "\n\n"


def compose_task_description(title: str, details: str = "") -> str:
    """タイトルと詳細を1つの description 文字列にまとめる（"title\\n\\ndetails"）"""
    title = (title or "").strip()
    details = (details or "").strip()
    if not details:
        return title
    return f"{title}{TITLE_SEPARATOR}{details}"


def split_task_description(description: str) -> tuple[str, str]:
    """description を (title, details) に分解する"""
    head, _, tail = (description or "").partition(TITLE_SEPARATOR)
    return head.strip(), tail.strip()


def is_all_day(due_at: str | None, tz: tzinfo | None = None) -> bool:
    """
    期限が「終日（時刻指定なし）」かどうか。

    ローカル時刻で 00:00 の日時を終日のセンチネルとして扱う。
    tz を省略した場合はプロセスのローカルタイムゾーン。
    """
    if not due_at:
        return False
    try:
        parsed = datetime.fromisoformat(due_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return (parsed.hour, parsed.minute, parsed.second, parsed.microsecond) == (0, 0, 0, 0)


@dataclass(frozen=True)
class Task:
    """タスク。タイトルは description の先頭部分（独立した列はない）"""

    id: str
    description: str
    status: TaskStatus
    created_at: str
    updated_at: str
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: str | None = None
    assignee_name: str | None = None  # 埋め込み: assignee:users(display_name)
    client_id: str | None = None
    project_id: str | None = None
    category_id: str | None = None
    category_name: str | None = None  # 埋め込み: category:task_categories(name,color)
    category_color: str | None = None
    due_at: str | None = None  # ISO8601
    tags: list[str] = field(default_factory=list)
    is_personal: bool | None = None
    owner_user_id: str | None = None

    @property
    def title(self) -> str:
        return split_task_description(self.description)[0]

    @property
    def details(self) -> str:
        return split_task_description(self.description)[1]

    def visible_to(self, viewer_user_id: str | None) -> bool:
        """他人の個人タスクは閲覧者から隠す（閲覧者未指定なら全件見える）"""
        if not viewer_user_id:
            return True
        return not self.is_personal or self.owner_user_id == viewer_user_id


@dataclass(frozen=True)
class TaskInput:
    description: str
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: str | None = None
    client_id: str | None = None
    project_id: str | None = None
    category_id: str | None = None
    due_at: str | None = None
    tags: list[str] = field(default_factory=list)
    is_personal: bool = False
    owner_user_id: str | None = None


@dataclass(frozen=True)
class TaskPatch(PatchBase):
    description: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    assignee_id: Any = UNSET
    client_id: Any = UNSET
    project_id: Any = UNSET
    category_id: Any = UNSET
    due_at: Any = UNSET
    tags: Any = UNSET
    is_personal: Any = UNSET
    owner_user_id: Any = UNSET


@dataclass(frozen=True)
class TaskQuery:
    status: TaskStatus | None = None
    search_text: str | None = None
    client_id: str | None = None
    project_id: str | None = None
    category_id: str | None = None
    assignee_id: str | None = None
    viewer_user_id: str | None = None  # 指定時は他人の個人タスクを除外


# ── TaskCategory ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TaskCategory:
    id: str
    name: str
    slug: str
    created_at: str
    updated_at: str
    color: str | None = None


@dataclass(frozen=True)
class TaskCategoryInput:
    name: str
    slug: str = ""  # 空の場合は name から生成
    color: str | None = None


@dataclass(frozen=True)
class TaskCategoryPatch(PatchBase):
    name: Any = UNSET
    slug: Any = UNSET
    color: Any = UNSET


@dataclass(frozen=True)
class TaskCategoriesQuery:
    search_text: str | None = None


# ── Document ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AppDocument:
    """
    ドキュメント。

    storage_path は ASCII のみのオブジェクトキー、file_name は元のファイル名
    （ヘブライ語などの非 ASCII を含み得る）で、両者は別物として保持する。
    """

    id: str
    kind: DocumentKind
    title: str
    storage_path: str
    file_name: str
    created_at: str
    updated_at: str
    client_id: str | None = None
    client_name: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    uploaded_by: str | None = None
    uploaded_by_name: str | None = None


@dataclass(frozen=True)
class DocumentInput:
    title: str
    storage_path: str
    file_name: str
    kind: DocumentKind = DocumentKind.GENERAL
    client_id: str | None = None
    project_id: str | None = None
    mime_type: str | None = None
    size_bytes: int | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class DocumentPatch(PatchBase):
    title: Any = UNSET
    kind: Any = UNSET
    client_id: Any = UNSET
    project_id: Any = UNSET


@dataclass(frozen=True)
class DocumentFilter:
    kind: DocumentKind | None = None
    client_id: str | None = None
    project_id: str | None = None
    search_text: str | None = None


@dataclass(frozen=True)
class UploadedObject:
    """ストレージへのアップロード結果"""

    bucket: str
    object_path: str
    public_url: str


# ── ClientNote ──────────────────────────────────────────────────────────────


MAX_NOTE_ATTACHMENTS = 3


class ResolvedFilter(Enum):
    ALL = "all"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ClientNoteAttachment:
    id: str
    note_id: str
    storage_path: str
    public_url: str
    file_name: str
    created_at: str
    mime_type: str | None = None
    size_bytes: int | None = None


@dataclass(frozen=True)
class ClientNote:
    """クライアントからのメモ。resolved_at / resolved_by は常に同時に設定・クリアされる"""

    id: str
    client_id: str
    author_user_id: str
    body: str
    is_resolved: bool
    created_at: str
    updated_at: str
    resolved_at: str | None = None
    resolved_by: str | None = None
    attachments: list[ClientNoteAttachment] = field(default_factory=list)
    client_name: str | None = None  # 管理者の受信箱ビューでのみ埋め込まれる


@dataclass(frozen=True)
class NoteAttachmentInput:
    file_name: str
    content: bytes
    mime_type: str | None = None
    size_bytes: int | None = None


@dataclass(frozen=True)
class ClientNoteInput:
    client_id: str
    body: str
    attachments: list[NoteAttachmentInput] = field(default_factory=list)


@dataclass(frozen=True)
class ClientNotesQuery:
    """
    ClientNotesStore の表示条件。

    client_id あり: そのクライアントについて閲覧者が書いたメモ
    client_id なし: 管理者の受信箱（resolved で絞り込み）
    """

    client_id: str | None = None
    resolved: ResolvedFilter = ResolvedFilter.ALL
    limit: int | None = None


# ── Notification ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Notification:
    id: str
    recipient_user_id: str
    title: str
    is_read: bool
    created_at: str
    updated_at: str
    sender_user_id: str | None = None
    body: str | None = None
    data: dict | None = None
    read_at: str | None = None


@dataclass(frozen=True)
class NotificationsQuery:
    viewer_user_id: str | None = None
    only_unread: bool = False
    limit: int | None = None
