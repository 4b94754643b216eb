"""SupabaseRestClient のテスト（FakeSupabase を httpx.MockTransport として使用）"""

import pytest

from clientdesk.adapters.supabase_rest import SupabaseRestClient
from clientdesk.config import AppConfig
from clientdesk.domain.errors import BackendConfigError, RestError


class TestAuthHeaders:
    """apikey / Authorization ヘッダー"""

    async def test_uses_session_token(self, rest, fake):
        # Act
        await rest.select("clients", {"select": "*"})

        # Assert
        request = fake.requests[-1]
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer token-1"

    async def test_falls_back_to_anon_key(self, config, http, fake):
        """セッションが無ければ anon key を Bearer に使う"""
        rest = SupabaseRestClient(config, None, http)

        await rest.select("clients", {"select": "*"})

        assert fake.requests[-1].headers["authorization"] == "Bearer anon-key"

    async def test_signed_out_session_uses_anon_key(self, rest, session, fake):
        session.clear()

        await rest.select("clients", {"select": "*"})

        assert fake.requests[-1].headers["authorization"] == "Bearer anon-key"


class TestBackendNotConfigured:
    async def test_raises_before_network(self, http, fake):
        """URL / anon key が無ければリクエストを送らずに BackendConfigError"""
        rest = SupabaseRestClient(AppConfig(), http=http)

        with pytest.raises(BackendConfigError) as exc_info:
            await rest.select("clients", {"select": "*"})

        assert exc_info.value.status == 0
        assert fake.requests == []

    async def test_missing_anon_key_only(self, http):
        rest = SupabaseRestClient(AppConfig(supabase_url="https://x.supabase.co"), http=http)

        with pytest.raises(BackendConfigError):
            await rest.delete("clients", {"id": "eq.1"})


class TestErrors:
    """非 2xx とネットワーク障害"""

    async def test_non_2xx_raises_rest_error_with_details(self, rest, fake):
        # Arrange
        fake.fail("GET", "/rest/v1/clients", status=503, body="upstream unavailable")

        # Act
        with pytest.raises(RestError) as exc_info:
            await rest.select("clients", {"select": "*"})

        # Assert
        error = exc_info.value
        assert error.status == 503
        assert error.details == "upstream unavailable"
        assert "(503)" in str(error)

    async def test_network_failure_is_status_zero(self, rest, fake):
        fake.fail("POST", "/rest/v1/clients", status=0)

        with pytest.raises(RestError) as exc_info:
            await rest.insert("clients", {"name": "Acme"})

        assert exc_info.value.status == 0
        assert "network" in str(exc_info.value)

    async def test_error_label_used(self, rest, fake):
        fake.fail("POST", "/storage/v1/object", status=413, body="too large")

        with pytest.raises(RestError, match="Supabase Storage upload error"):
            await rest.send(
                "POST",
                "/storage/v1/object/documents/a.png",
                content=b"x",
                error_label="Supabase Storage upload error",
            )


class TestRequest:
    async def test_no_content_returns_none(self, rest, fake):
        """204 / 空ボディは None"""
        fake.seed("clients", id="c1", name="Acme")

        result = await rest.request("DELETE", "/rest/v1/clients", {"id": "eq.c1"})

        assert result is None
        assert fake.rows("clients") == []

    async def test_insert_asks_for_representation(self, rest, fake):
        rows = await rest.insert("clients", {"name": "Acme"})

        assert rows[0]["name"] == "Acme"
        assert rows[0]["id"]
        assert fake.requests[-1].headers["prefer"] == "return=representation"

    async def test_update_passes_filters_and_select(self, rest, fake):
        # Arrange
        fake.seed("clients", id="c1", name="Acme")
        fake.seed("clients", id="c2", name="Other")

        # Act
        rows = await rest.update("clients", {"id": "eq.c1"}, {"notes": "VIP"}, select="id,notes")

        # Assert
        assert rows == [{"id": "c1", "notes": "VIP"}]
        assert fake.tables["clients"]["c2"]["notes"] is None

    async def test_select_empty_table(self, rest):
        assert await rest.select("projects", {"select": "*"}) == []


class TestLifecycle:
    async def test_injected_client_not_closed(self, rest, http):
        """外から渡した httpx.AsyncClient は閉じない"""
        await rest.aclose()
        assert not http.is_closed

    async def test_owned_client_closed(self, config):
        rest = SupabaseRestClient(config)
        await rest.aclose()
        assert rest._http.is_closed
