"""共通テストフィクスチャ

全テストから利用可能なテストダブルとサンプルデータを提供。

- fake: Supabase の REST / Storage / Functions を再現する FakeSupabase
- rest: fake に向いた SupabaseRestClient（httpx.MockTransport 経由）
- db: in-memory リポジトリが共有する InMemoryDatabase
- モックは MagicMock(spec=ABC) / AsyncMock でポートのシグネチャを保持
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fake_supabase import FakeSupabase

from clientdesk.adapters.in_memory_repository import InMemoryDatabase
from clientdesk.adapters.session import InMemorySession
from clientdesk.adapters.supabase_rest import SupabaseRestClient
from clientdesk.config import AppConfig
from clientdesk.domain.models import (
    ClientContactInput,
    ClientInput,
    ProjectInput,
    TaskInput,
    TaskPriority,
    TaskStatus,
)
from clientdesk.domain.ports import ClientsRepository, IdentityProvisioner

# ========== 設定・セッション ==========


@pytest.fixture
def config() -> AppConfig:
    """REST バックエンドが設定済みの AppConfig"""
    return AppConfig(
        supabase_url="https://test.supabase.co",
        supabase_anon_key="anon-key",
        request_timeout=5.0,
        store_timeout=5.0,
    )


@pytest.fixture
def session() -> InMemorySession:
    """user-1 としてログイン中のセッション"""
    return InMemorySession(user_id="user-1", access_token="token-1")


# ========== Supabase スタンドイン ==========


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
async def http(fake: FakeSupabase):
    async with httpx.AsyncClient(transport=fake.transport()) as client:
        yield client


@pytest.fixture
def rest(config: AppConfig, session: InMemorySession, http: httpx.AsyncClient) -> SupabaseRestClient:
    return SupabaseRestClient(config, session, http)


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


# ========== サンプルデータ ==========


@pytest.fixture
def sample_client_input() -> ClientInput:
    """連絡先2件（うち1件は名前が空）を持つクライアント入力"""
    return ClientInput(
        name="Acme Ltd",
        notes="VIP customer",
        total_price=1200.5,
        remaining_to_pay=300,
        contacts=[
            ClientContactInput(name="Dana", email="dana@acme.test", phone="050-0000001"),
            ClientContactInput(name="   ", email="ghost@acme.test"),
        ],
    )


@pytest.fixture
def sample_project_input() -> ProjectInput:
    return ProjectInput(client_id="client-1", name="Website redesign", budget=5000)


@pytest.fixture
def sample_task_input() -> TaskInput:
    return TaskInput(
        description="Send invoice\n\nInclude the March hours",
        status=TaskStatus.TODO,
        priority=TaskPriority.HIGH,
        tags=["billing"],
    )


# ========== モック ==========


@pytest.fixture
def mock_clients_repo() -> MagicMock:
    """ClientsRepository のモック（async メソッドは AsyncMock）"""
    repo = MagicMock(spec=ClientsRepository)
    repo.create = AsyncMock()
    repo.remove = AsyncMock()
    repo.link_auth_user = AsyncMock()
    return repo


@pytest.fixture
def mock_identity() -> MagicMock:
    """IdentityProvisioner のモック"""
    identity = MagicMock(spec=IdentityProvisioner)
    identity.create_client_user = AsyncMock(return_value="auth-user-1")
    return identity
