"""Supabase Edge Functions Adapter"""

from __future__ import annotations

import logging

from clientdesk.adapters.supabase_rest import SupabaseRestClient
from clientdesk.domain.errors import RestError
from clientdesk.domain.ports import IdentityProvisioner

logger = logging.getLogger(__name__)

CREATE_CLIENT_USER_PATH = "/functions/v1/create-client-user"


class SupabaseIdentityProvisioner(IdentityProvisioner):
    """create-client-user 関数でクライアント用のログインユーザーを作成する"""

    def __init__(self, rest: SupabaseRestClient) -> None:
        self._rest = rest

    async def create_client_user(self, email: str, password: str, display_name: str) -> str:
        response = await self._rest.send(
            "POST",
            CREATE_CLIENT_USER_PATH,
            json={"email": email, "password": password, "displayName": display_name},
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            error_label="Supabase function error",
        )
        payload = response.json() if response.content else {}
        user_id = payload.get("user_id") if isinstance(payload, dict) else None
        if not user_id:
            raise RestError(
                "Supabase function returned no user_id", response.status_code, response.text
            )
        logger.info("Provisioned client login: email=%s, user_id=%s", email, user_id)
        return user_id
