"""Factory - 依存性注入の組み立て

バックエンドの選択はここで1回だけ行う。
SUPABASE_URL / SUPABASE_ANON_KEY が揃っていれば Supabase 実装、
揃っていなければ in-memory 実装を各 Store に渡す。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from clientdesk.adapters.in_memory_repository import (
    InMemoryBlobStorage,
    InMemoryClientNotesRepository,
    InMemoryClientsRepository,
    InMemoryDatabase,
    InMemoryDocumentsRepository,
    InMemoryIdentityProvisioner,
    InMemoryNotificationsRepository,
    InMemoryProjectsRepository,
    InMemoryTaskCategoriesRepository,
    InMemoryTaskRepository,
)
from clientdesk.adapters.session import InMemorySession
from clientdesk.adapters.supabase_functions import SupabaseIdentityProvisioner
from clientdesk.adapters.supabase_repository import (
    SupabaseClientNotesRepository,
    SupabaseClientsRepository,
    SupabaseDocumentsRepository,
    SupabaseNotificationsRepository,
    SupabaseProjectsRepository,
    SupabaseTaskCategoriesRepository,
    SupabaseTaskRepository,
)
from clientdesk.adapters.supabase_rest import SupabaseRestClient
from clientdesk.adapters.supabase_storage import SupabaseBlobStorage
from clientdesk.config import AppConfig
from clientdesk.domain.ports import (
    BlobStorage,
    ClientNotesRepository,
    ClientsRepository,
    DocumentsRepository,
    IdentityProvisioner,
    NotificationsRepository,
    ProjectsRepository,
    SessionProvider,
    TaskCategoriesRepository,
    TaskRepository,
)
from clientdesk.services.client_accounts import ClientAccountService
from clientdesk.services.client_notes_store import ClientNotesStore
from clientdesk.services.clients_store import ClientsStore
from clientdesk.services.documents_store import DocumentsStore
from clientdesk.services.notifications_store import NotificationsStore
from clientdesk.services.projects_store import ProjectsStore
from clientdesk.services.task_categories_store import TaskCategoriesStore
from clientdesk.services.tasks_store import TasksStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Repositories:
    clients: ClientsRepository
    projects: ProjectsRepository
    tasks: TaskRepository
    task_categories: TaskCategoriesRepository
    documents: DocumentsRepository
    client_notes: ClientNotesRepository
    notifications: NotificationsRepository
    storage: BlobStorage
    identity: IdentityProvisioner


@dataclass(frozen=True)
class Stores:
    clients: ClientsStore
    projects: ProjectsStore
    tasks: TasksStore
    task_categories: TaskCategoriesStore
    documents: DocumentsStore
    client_notes: ClientNotesStore
    notifications: NotificationsStore


@dataclass
class App:
    """組み立て済みの Store 群と、それが使う資源"""

    config: AppConfig
    session: SessionProvider
    repositories: Repositories
    stores: Stores
    rest: SupabaseRestClient | None = None

    async def aclose(self) -> None:
        if self.rest is not None:
            await self.rest.aclose()


def create_repositories(
    backend_configured: bool,
    rest: SupabaseRestClient | None = None,
    bucket: str = "documents",
    db: InMemoryDatabase | None = None,
) -> Repositories:
    """
    リポジトリ一式を生成する。

    Args:
        backend_configured: True なら Supabase 実装（rest 必須）、False なら in-memory 実装
        rest: Supabase 実装が使う REST クライアント
        bucket: 添付ファイルのバケット名
        db: in-memory 実装が共有するテーブル群（None なら新規）
    """
    if backend_configured:
        if rest is None:
            raise ValueError("SupabaseRestClient is required when the backend is configured")
        storage = SupabaseBlobStorage(rest)
        logger.info("Using Supabase repositories: %s", rest.config.supabase_url)
        return Repositories(
            clients=SupabaseClientsRepository(rest),
            projects=SupabaseProjectsRepository(rest),
            tasks=SupabaseTaskRepository(rest),
            task_categories=SupabaseTaskCategoriesRepository(rest),
            documents=SupabaseDocumentsRepository(rest),
            client_notes=SupabaseClientNotesRepository(rest, storage, bucket),
            notifications=SupabaseNotificationsRepository(rest),
            storage=storage,
            identity=SupabaseIdentityProvisioner(rest),
        )

    logger.warning("Supabase env not set, using in-memory repositories")
    db = db or InMemoryDatabase()
    storage = InMemoryBlobStorage()
    return Repositories(
        clients=InMemoryClientsRepository(db),
        projects=InMemoryProjectsRepository(db),
        tasks=InMemoryTaskRepository(db),
        task_categories=InMemoryTaskCategoriesRepository(db),
        documents=InMemoryDocumentsRepository(db),
        client_notes=InMemoryClientNotesRepository(db, storage, bucket),
        notifications=InMemoryNotificationsRepository(db),
        storage=storage,
        identity=InMemoryIdentityProvisioner(db),
    )


def create_stores(
    repositories: Repositories,
    session: SessionProvider | None = None,
    timeout: float | None = 30.0,
    bucket: str = "documents",
) -> Stores:
    """リポジトリを各 Store に注入する"""
    accounts = ClientAccountService(repositories.clients, repositories.identity)
    return Stores(
        clients=ClientsStore(repositories.clients, accounts, timeout),
        projects=ProjectsStore(repositories.projects, timeout),
        tasks=TasksStore(repositories.tasks, session, timeout),
        task_categories=TaskCategoriesStore(repositories.task_categories, timeout),
        documents=DocumentsStore(
            repositories.documents, repositories.storage, session, bucket, timeout
        ),
        client_notes=ClientNotesStore(repositories.client_notes, session, timeout),
        notifications=NotificationsStore(repositories.notifications, session, timeout),
    )


def create_app(
    config: AppConfig | None = None,
    session: SessionProvider | None = None,
    http: httpx.AsyncClient | None = None,
) -> App:
    """
    設定からアプリケーション全体を組み立てる。

    Args:
        config: アプリケーション設定（None の場合は環境変数から読み込み）
        session: セッション（None の場合は未ログインの InMemorySession）
        http: テスト用に注入する httpx.AsyncClient
    """
    if config is None:
        config = AppConfig.from_env()
    if session is None:
        session = InMemorySession()

    rest = SupabaseRestClient(config, session, http) if config.backend_configured else None
    repositories = create_repositories(config.backend_configured, rest, config.storage_bucket)
    stores = create_stores(repositories, session, config.store_timeout, config.storage_bucket)

    logger.info("App created (backend_configured=%s)", config.backend_configured)
    return App(config=config, session=session, repositories=repositories, stores=stores, rest=rest)
