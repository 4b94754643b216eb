#!/usr/bin/env python3
"""CLI Entrypoint - コマンドラインから一覧を表示

使い方:
    python -m clientdesk.entrypoints.cli tasks --status todo --search 請求
    python -m clientdesk.entrypoints.cli notes --resolved unresolved
    python -m clientdesk.entrypoints.cli notifications --user-id <uid>

環境変数:
    SUPABASE_URL / SUPABASE_ANON_KEY: 未設定なら in-memory（空のデータ）で動作
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from typing import Any

from clientdesk.adapters.session import InMemorySession
from clientdesk.domain.models import (
    DocumentKind,
    ProjectStatus,
    ResolvedFilter,
    TaskStatus,
)
from clientdesk.entrypoints.factory import App, create_app
from clientdesk.logging_config import setup_logging
from clientdesk.services.store import Store, StoreStatus

ENTITIES = ("clients", "projects", "tasks", "categories", "documents", "notes", "notifications")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clientdesk", description="クライアント・プロジェクト・タスクの一覧を表示する"
    )
    parser.add_argument("entity", choices=ENTITIES)
    parser.add_argument("--search", help="部分一致検索")
    parser.add_argument("--status", help="projects / tasks のステータス")
    parser.add_argument("--client-id")
    parser.add_argument("--project-id")
    parser.add_argument("--kind", help="documents の種別")
    parser.add_argument(
        "--resolved",
        choices=[f.value for f in ResolvedFilter],
        default=ResolvedFilter.ALL.value,
        help="notes の受信箱ビューの絞り込み",
    )
    parser.add_argument("--unread", action="store_true", help="notifications を未読のみに")
    parser.add_argument("--limit", type=int)
    parser.add_argument("--user-id", help="閲覧者として扱う user_id")
    return parser


def _configure(app: App, args: argparse.Namespace) -> tuple[Store, Callable[[Any], str]]:
    """エンティティに対応する Store とクエリ、1行の書式を決める"""
    stores = app.stores
    if args.entity == "clients":
        stores.clients.set_query(search_text=args.search)
        return stores.clients, lambda c: f"{c.id}\t{c.name}\t{len(c.contacts)} contacts"
    if args.entity == "projects":
        stores.projects.set_query(
            search_text=args.search,
            status=ProjectStatus(args.status) if args.status else None,
            client_id=args.client_id,
        )
        return stores.projects, lambda p: f"{p.id}\t{p.status.value}\t{p.name}\t{p.client_name or ''}"
    if args.entity == "tasks":
        stores.tasks.set_query(
            search_text=args.search,
            status=TaskStatus(args.status) if args.status else None,
            client_id=args.client_id,
            project_id=args.project_id,
        )
        return stores.tasks, lambda t: f"{t.id}\t{t.status.value}\t{t.title}\t{t.assignee_name or ''}"
    if args.entity == "categories":
        stores.task_categories.set_query(search_text=args.search)
        return stores.task_categories, lambda c: f"{c.id}\t{c.name}\t{c.slug}"
    if args.entity == "documents":
        stores.documents.set_query(
            search_text=args.search,
            kind=DocumentKind(args.kind) if args.kind else None,
            client_id=args.client_id,
            project_id=args.project_id,
        )
        return stores.documents, lambda d: f"{d.id}\t{d.kind.value}\t{d.title}\t{d.file_name}"
    if args.entity == "notes":
        stores.client_notes.set_query(
            client_id=args.client_id,
            resolved=ResolvedFilter(args.resolved),
            limit=args.limit,
        )
        return stores.client_notes, lambda n: (
            f"{n.id}\t{'resolved' if n.is_resolved else 'open'}\t{n.client_name or ''}\t"
            f"{n.body.splitlines()[0] if n.body else ''}"
        )
    stores.notifications.set_query(only_unread=args.unread, limit=args.limit)
    return stores.notifications, lambda n: f"{n.id}\t{'read' if n.is_read else 'unread'}\t{n.title}"


async def run(args: argparse.Namespace) -> int:
    session = InMemorySession(user_id=args.user_id)
    app = create_app(session=session)
    try:
        store, render = _configure(app, args)
        await store.load()
    finally:
        await app.aclose()

    if store.status is StoreStatus.ERROR:
        logging.getLogger(__name__).error("Load failed: %s", store.error)
        return 1

    for item in store.items:
        print(render(item))
    return 0


def main(argv: list[str] | None = None) -> int:
    """メインエントリーポイント"""
    setup_logging()
    logger = logging.getLogger(__name__)
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ValueError as e:
        logger.error("Invalid argument: %s", e)
        return 2
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
