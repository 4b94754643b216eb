"""Ports - リポジトリと外部サービスのインターフェース定義（ABC）

各エンティティのリポジトリは REST（Supabase）実装と in-memory 実装の2つを持つ。
Store はここで定義した ABC にのみ依存し、どちらの実装が渡されたかを意識しない。

REST 実装と in-memory 実装で意図的に異なる点:
- remove: REST は存在しない ID でもエラーにしない。in-memory は NotFoundError。
- update: in-memory は存在しない ID で NotFoundError。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from clientdesk.domain.models import (
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


class ClientsRepository(ABC):
    """クライアントの永続化"""

    @abstractmethod
    async def list(self, query: ClientsQuery | None = None) -> list[Client]:
        """クライアント一覧を updated_at の新しい順で取得"""

    @abstractmethod
    async def get_by_id(self, client_id: str) -> Client | None:
        """連絡先・ドキュメントを含めて取得。存在しない場合は None"""

    @abstractmethod
    async def create(self, data: ClientInput) -> Client:
        """クライアントと連絡先を作成（トランザクションではない）"""

    @abstractmethod
    async def update(self, client_id: str, patch: ClientPatch) -> Client:
        """部分更新。patch.contacts 指定時は連絡先を全削除して再作成"""

    @abstractmethod
    async def remove(self, client_id: str) -> None:
        """クライアントを削除"""

    @abstractmethod
    async def add_document(self, client_id: str, doc: ClientDocumentInput) -> ClientDocument:
        """クライアントにドキュメントを追加"""

    @abstractmethod
    async def remove_document(self, document_id: str) -> None:
        """クライアントのドキュメントを削除"""

    @abstractmethod
    async def link_auth_user(self, client_id: str, user_id: str) -> None:
        """ログイン用 Auth ユーザーをクライアントに紐づける"""


class ProjectsRepository(ABC):
    """プロジェクトの永続化"""

    @abstractmethod
    async def list(self, query: ProjectsQuery | None = None) -> list[Project]:
        pass

    @abstractmethod
    async def get_by_id(self, project_id: str) -> Project | None:
        pass

    @abstractmethod
    async def create(self, data: ProjectInput) -> Project:
        pass

    @abstractmethod
    async def update(self, project_id: str, patch: ProjectPatch) -> Project:
        pass

    @abstractmethod
    async def remove(self, project_id: str) -> None:
        pass


class TaskRepository(ABC):
    """タスクの永続化"""

    @abstractmethod
    async def list(self, query: TaskQuery | None = None) -> list[Task]:
        """タスク一覧。query.viewer_user_id 指定時は他人の個人タスクを除外"""

    @abstractmethod
    async def get_by_id(self, task_id: str) -> Task | None:
        pass

    @abstractmethod
    async def create(self, data: TaskInput) -> Task:
        pass

    @abstractmethod
    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        pass

    @abstractmethod
    async def remove(self, task_id: str) -> None:
        pass


class TaskCategoriesRepository(ABC):
    """タスクカテゴリの永続化"""

    @abstractmethod
    async def list(self, query: TaskCategoriesQuery | None = None) -> list[TaskCategory]:
        """カテゴリ一覧を name の昇順で取得"""

    @abstractmethod
    async def get_by_id(self, category_id: str) -> TaskCategory | None:
        pass

    @abstractmethod
    async def create(self, data: TaskCategoryInput) -> TaskCategory:
        pass

    @abstractmethod
    async def update(self, category_id: str, patch: TaskCategoryPatch) -> TaskCategory:
        pass

    @abstractmethod
    async def remove(self, category_id: str) -> None:
        pass


class DocumentsRepository(ABC):
    """ドキュメントレコードの永続化（ファイル本体は BlobStorage）"""

    @abstractmethod
    async def list(self, query: DocumentFilter | None = None) -> list[AppDocument]:
        """ドキュメント一覧を created_at の新しい順で取得"""

    @abstractmethod
    async def get_by_id(self, document_id: str) -> AppDocument | None:
        pass

    @abstractmethod
    async def create(self, data: DocumentInput) -> AppDocument:
        pass

    @abstractmethod
    async def update(self, document_id: str, patch: DocumentPatch) -> AppDocument:
        pass

    @abstractmethod
    async def remove(self, document_id: str) -> None:
        pass


class ClientNotesRepository(ABC):
    """クライアントメモの永続化"""

    @abstractmethod
    async def list_for_client(
        self, client_id: str, author_user_id: str, limit: int | None = None
    ) -> list[ClientNote]:
        """あるクライアントについて author が書いたメモを新しい順で取得"""

    @abstractmethod
    async def list_all(
        self, resolved: ResolvedFilter = ResolvedFilter.ALL, limit: int | None = None
    ) -> list[ClientNote]:
        """受信箱ビュー: 未解決を先頭に、その中で新しい順"""

    @abstractmethod
    async def get_by_id(self, note_id: str) -> ClientNote | None:
        pass

    @abstractmethod
    async def create(self, data: ClientNoteInput, author_user_id: str) -> ClientNote:
        """メモを作成し、添付（最大3件）をアップロードして登録"""

    @abstractmethod
    async def set_resolved(
        self, note_id: str, is_resolved: bool, resolved_by: str | None = None
    ) -> ClientNote:
        """
        解決状態を切り替える。

        既に解決済みのメモに is_resolved=True を再度指定しても
        resolved_at / resolved_by は最初の値のまま（再スタンプしない）。
        """

    @abstractmethod
    async def remove(self, note_id: str) -> None:
        pass


class NotificationsRepository(ABC):
    """通知の永続化"""

    @abstractmethod
    async def list(self, query: NotificationsQuery | None = None) -> list[Notification]:
        """閲覧者宛ての通知を新しい順で取得。閲覧者未指定なら空"""

    @abstractmethod
    async def mark_read(self, notification_id: str) -> None:
        pass

    @abstractmethod
    async def mark_all_read(self, viewer_user_id: str) -> None:
        pass


class BlobStorage(ABC):
    """バイナリファイルのアップロード（Supabase Storage 等）"""

    @abstractmethod
    async def upload(
        self, bucket: str, object_path: str, content: bytes, content_type: str | None = None
    ) -> UploadedObject:
        """ファイルをアップロードして公開 URL を返す"""

    @abstractmethod
    def public_url(self, bucket: str, object_path: str) -> str:
        """オブジェクトの公開 URL"""


class IdentityProvisioner(ABC):
    """ログイン用 Auth ユーザーの作成（Edge Function 等）"""

    @abstractmethod
    async def create_client_user(
        self, email: str, password: str, display_name: str
    ) -> str:
        """Auth ユーザーを作成し user_id を返す"""


class SessionProvider(ABC):
    """現在のセッション（読み取り専用）"""

    @abstractmethod
    def current_user_id(self) -> str | None:
        pass

    @abstractmethod
    def access_token(self) -> str | None:
        pass
