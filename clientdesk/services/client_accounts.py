"""ClientAccountService - クライアント作成とログインアカウント発行の連携

手順:
1. クライアントを作成
2. ログイン用 Auth ユーザーを作成
   - 失敗したら作成したクライアントをベストエフォートで削除し、元の例外を再送出
3. Auth ユーザーをクライアントに紐づける
   - 失敗しても巻き戻さない（警告ログのみ、クライアントとユーザーは両方残る）
"""

from __future__ import annotations

import dataclasses
import logging

from clientdesk.domain.errors import ValidationError
from clientdesk.domain.models import Client, ClientInput, ClientLogin
from clientdesk.domain.ports import ClientsRepository, IdentityProvisioner

logger = logging.getLogger(__name__)


class ClientAccountService:
    def __init__(self, clients: ClientsRepository, identity: IdentityProvisioner) -> None:
        self._clients = clients
        self._identity = identity

    async def create_client_with_login(self, data: ClientInput, login: ClientLogin) -> Client:
        """
        クライアントとログインアカウントを作成して紐づける。

        Returns:
            Client: 紐づけに成功した場合は client_user_id を含む
        Raises:
            ValidationError: メールアドレス / パスワードが空
            Exception: クライアント作成またはアカウント作成の失敗（元の例外）
        """
        if not (login.email or "").strip() or not login.password:
            raise ValidationError("Email and password are required")

        client = await self._clients.create(data)

        try:
            user_id = await self._identity.create_client_user(
                login.email.strip(), login.password, login.display_name or client.name
            )
        except Exception:
            logger.warning("Login provisioning failed, removing client %s", client.id)
            try:
                await self._clients.remove(client.id)
            except Exception:
                logger.exception("Rollback of client %s failed", client.id)
            raise

        try:
            await self._clients.link_auth_user(client.id, user_id)
        except Exception:
            logger.warning(
                "Linking login user %s to client %s failed, keeping both",
                user_id,
                client.id,
                exc_info=True,
            )
            return client

        logger.info("Created client %s with login user %s", client.id, user_id)
        return dataclasses.replace(client, client_user_id=user_id)
