"""テスト用の Supabase スタンドイン（httpx.MockTransport）

/rest/v1, /storage/v1/object, /functions/v1/create-client-user を
プロセス内の dict で再現する。サポートする PostgREST の範囲:

- select: 列、*、埋め込み（alias:relation(cols) / relation(cols)）
- フィルタ: col=eq.X / col=ilike.<pattern> / col=is.null / or=(c.ilike.p,...)
- order=col.asc,col2.desc（NULL は asc で末尾、desc で先頭）/ limit
- Prefer: return=representation
- 存在しないリレーション・列の select は 400（PostgREST と同じ文言）
"""

from __future__ import annotations

import copy
import json
import re
import uuid
from collections import defaultdict
from typing import Any

import httpx

from clientdesk.adapters.clock import MonotonicClock

Row = dict[str, Any]

# (テーブル, 埋め込み名) -> (相手テーブル, 種別, 自テーブル側の列, 相手側の列)
RELATIONS: dict[tuple[str, str], tuple[str, str, str, str]] = {
    ("clients", "client_contacts"): ("client_contacts", "many", "id", "client_id"),
    ("clients", "documents"): ("documents", "many", "id", "client_id"),
    ("projects", "clients"): ("clients", "one", "client_id", "id"),
    ("tasks", "users"): ("users", "one", "assignee_id", "id"),
    ("tasks", "task_categories"): ("task_categories", "one", "category_id", "id"),
    ("documents", "clients"): ("clients", "one", "client_id", "id"),
    ("documents", "projects"): ("projects", "one", "project_id", "id"),
    ("documents", "users"): ("users", "one", "uploaded_by", "id"),
    ("client_notes", "client_note_attachments"): ("client_note_attachments", "many", "id", "note_id"),
    ("client_notes", "clients"): ("clients", "one", "client_id", "id"),
}

# insert 時の列の既定値（DB の DEFAULT 句に相当）
DEFAULTS: dict[str, Row] = {
    "clients": {"notes": None, "total_price": None, "remaining_to_pay": None, "client_user_id": None},
    "projects": {"status": "active", "currency": "ILS", "description": None},
    "tasks": {
        "status": "todo",
        "priority": "medium",
        "tags": [],
        "is_personal": False,
        "owner_user_id": None,
        "assignee_id": None,
        "client_id": None,
        "project_id": None,
        "category_id": None,
        "due_at": None,
    },
    "documents": {"kind": "general", "client_id": None, "project_id": None},
    "client_notes": {"is_resolved": False, "resolved_at": None, "resolved_by": None},
    "notifications": {"is_read": False, "read_at": None, "body": None, "data": None},
}

_RESERVED_PARAMS = {"select", "order", "limit", "or", "offset"}


class FakeRestFailure(Exception):
    pass


def _split_top_level(text: str, sep: str = ",") -> list[str]:
    """括弧の外、かつバックスラッシュでエスケープされていない区切り文字で分割"""
    parts: list[str] = []
    depth = 0
    current = []
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == "\\":
            current.append(ch)
            escaped = True
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        parts.append("".join(current))
    return [p for p in parts if p]


def _ilike_regex(pattern: str) -> re.Pattern:
    out = []
    escaped = False
    for ch in pattern:
        if escaped:
            out.append(re.escape(ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in "*%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def _literal(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _matches(row: Row, column: str, expr: str) -> bool:
    op, _, operand = expr.partition(".")
    value = row.get(column)
    if op == "eq":
        return _literal(value) == operand
    if op == "neq":
        return _literal(value) != operand
    if op == "is":
        return value is None if operand == "null" else _literal(value) == operand
    if op == "ilike":
        return value is not None and _ilike_regex(operand).fullmatch(str(value)) is not None
    raise FakeRestFailure(f"unsupported operator {op}")


class FakeSupabase:
    """
    Supabase の REST / Storage / Functions を再現するテストダブル。

    Example:
        fake = FakeSupabase()
        http = httpx.AsyncClient(transport=fake.transport())
        rest = SupabaseRestClient(config, http=http)
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Row]] = defaultdict(dict)
        self.objects: dict[tuple[str, str], tuple[bytes, str | None]] = {}
        self.requests: list[httpx.Request] = []
        self.missing_relations: set[str] = set()
        self.missing_columns: dict[str, set[str]] = defaultdict(set)
        self.empty_inserts: set[str] = set()
        self._failures: list[dict[str, Any]] = []
        self._user_emails: dict[str, str] = {}
        self.clock = MonotonicClock()

    # ── テストからの操作 ────────────────────────────────────────────────

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def seed(self, table: str, **values: Any) -> Row:
        now = self.clock.now()
        row = {**copy.deepcopy(DEFAULTS.get(table, {})), "created_at": now, "updated_at": now, **values}
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table][row["id"]] = row
        return dict(row)

    def rows(self, table: str) -> list[Row]:
        return [dict(r) for r in self.tables[table].values()]

    def fail(
        self,
        method: str,
        path_prefix: str,
        status: int = 500,
        body: str = '{"message":"boom"}',
        times: int = 1,
    ) -> None:
        """次の一致するリクエストを status で失敗させる（status=0 はネットワーク障害）"""
        self._failures.append(
            {"method": method, "prefix": path_prefix, "status": status, "body": body, "times": times}
        )

    def requests_to(self, method: str, path_prefix: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.startswith(path_prefix)
        ]

    # ── ディスパッチ ────────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for failure in self._failures:
            if failure["times"] > 0 and request.method == failure["method"] and path.startswith(failure["prefix"]):
                failure["times"] -= 1
                if failure["status"] == 0:
                    raise httpx.ConnectError("connection refused", request=request)
                return httpx.Response(failure["status"], text=failure["body"])

        if not request.headers.get("apikey"):
            return httpx.Response(401, json={"message": "No API key found in request"})

        if path.startswith("/rest/v1/"):
            return self._handle_rest(request, path.removeprefix("/rest/v1/"))
        if path.startswith("/storage/v1/object/"):
            return self._handle_storage(request, path.removeprefix("/storage/v1/object/"))
        if path == "/functions/v1/create-client-user":
            return self._handle_create_user(request)
        return httpx.Response(404, json={"message": f"no route for {path}"})

    # ── REST ────────────────────────────────────────────────────────────

    def _handle_rest(self, request: httpx.Request, table: str) -> httpx.Response:
        params = request.url.params
        try:
            if request.method == "GET":
                rows = self._order(self._filter(table, params), params.get("order"))
                if params.get("limit"):
                    rows = rows[: int(params["limit"])]
                return httpx.Response(200, json=self._project(table, rows, params.get("select")))

            if request.method == "POST":
                body = json.loads(request.content or b"null")
                items = body if isinstance(body, list) else [body]
                created = [self._insert(table, item) for item in items]
                if table in self.empty_inserts:
                    created = []
                return self._write_response(request, table, created, 201)

            if request.method == "PATCH":
                changes = json.loads(request.content or b"{}")
                self._check_columns(table, changes.keys())
                updated = []
                for row in self._filter(table, params):
                    stored = self.tables[table][row["id"]]
                    stored.update(changes)
                    stored["updated_at"] = self.clock.now()
                    updated.append(dict(stored))
                return self._write_response(request, table, updated, 200)

            if request.method == "DELETE":
                removed = self._filter(table, params)
                for row in removed:
                    del self.tables[table][row["id"]]
                return self._write_response(request, table, removed, 200)
        except FakeRestFailure as e:
            return httpx.Response(400, json=json.loads(str(e)) if str(e).startswith("{") else {"message": str(e)})

        return httpx.Response(405)

    def _write_response(
        self, request: httpx.Request, table: str, rows: list[Row], status: int
    ) -> httpx.Response:
        if "return=representation" in request.headers.get("prefer", ""):
            return httpx.Response(status, json=self._project(table, rows, request.url.params.get("select")))
        return httpx.Response(204)

    def _insert(self, table: str, item: Row) -> Row:
        self._check_columns(table, item.keys())
        now = self.clock.now()
        row = {**copy.deepcopy(DEFAULTS.get(table, {})), **item, "id": str(uuid.uuid4()), "created_at": now, "updated_at": now}
        self.tables[table][row["id"]] = row
        return dict(row)

    def _check_columns(self, table: str, columns) -> None:
        for column in columns:
            if column in self.missing_columns[table]:
                raise FakeRestFailure(
                    json.dumps({"code": "42703", "message": f"column {table}.{column} does not exist"})
                )

    def _filter(self, table: str, params: httpx.QueryParams) -> list[Row]:
        rows = [dict(r) for r in self.tables[table].values()]
        for key, expr in params.multi_items():
            if key in _RESERVED_PARAMS:
                continue
            rows = [r for r in rows if _matches(r, key, expr)]
        if "or" in params:
            terms = _split_top_level(params["or"].strip()[1:-1])
            conditions = []
            for term in terms:
                column, _, expr = term.partition(".")
                conditions.append((column, expr))
            rows = [r for r in rows if any(_matches(r, c, e) for c, e in conditions)]
        return rows

    def _order(self, rows: list[Row], order: str | None) -> list[Row]:
        if not order:
            return rows
        for term in reversed(order.split(",")):
            column, _, direction = term.partition(".")
            present = [r for r in rows if r.get(column) is not None]
            nulls = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=direction == "desc")
            rows = nulls + present if direction == "desc" else present + nulls
        return rows

    def _project(self, table: str, rows: list[Row], select: str | None) -> list[Row]:
        items = _split_top_level(select or "*")
        for item in items:
            self._validate_select_item(table, item)
        return [self._project_row(table, row, items) for row in rows]

    def _validate_select_item(self, table: str, item: str) -> None:
        if "(" in item:
            head = item[: item.index("(")]
            relation = head.split(":")[-1]
            target = RELATIONS.get((table, relation))
            if target is None or target[0] in self.missing_relations:
                raise FakeRestFailure(
                    json.dumps(
                        {
                            "code": "PGRST200",
                            "details": f"Searched for a foreign key relationship between '{table}' and "
                            f"'{relation}' in the schema 'public', but no matches were found.",
                            "message": f"Could not find a relationship between '{table}' and "
                            f"'{relation}' in the schema cache",
                        }
                    )
                )
            return
        if item in self.missing_columns[table]:
            raise FakeRestFailure(
                json.dumps({"code": "42703", "message": f"column {table}.{item} does not exist"})
            )

    def _project_row(self, table: str, row: Row, items: list[str]) -> Row:
        out: Row = {}
        for item in items:
            if item == "*":
                out.update(row)
                continue
            if "(" not in item:
                out[item] = row.get(item)
                continue
            head, _, inner = item.partition("(")
            alias, _, relation = head.rpartition(":")
            relation = relation or alias
            key = alias or relation
            columns = _split_top_level(inner[:-1])
            target, kind, local, remote = RELATIONS[(table, relation)]
            related = [r for r in self.tables[target].values() if r.get(remote) == row.get(local)]
            projected = [self._project_row(target, r, columns) for r in related]
            if kind == "many":
                out[key] = projected
            else:
                out[key] = projected[0] if projected else None
        return out

    # ── Storage / Functions ─────────────────────────────────────────────

    def _handle_storage(self, request: httpx.Request, rest: str) -> httpx.Response:
        if request.method != "POST":
            return httpx.Response(405)
        bucket, _, object_path = rest.partition("/")
        self.objects[(bucket, object_path)] = (request.content, request.headers.get("content-type"))
        return httpx.Response(200, json={"Key": f"{bucket}/{object_path}"})

    def _handle_create_user(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        email = (body.get("email") or "").lower()
        if not email or not body.get("password"):
            return httpx.Response(400, json={"error": "email and password are required"})
        if email in self._user_emails:
            return httpx.Response(422, json={"error": "User already registered"})
        user_id = str(uuid.uuid4())
        self._user_emails[email] = user_id
        self.seed("users", id=user_id, display_name=body.get("displayName"))
        return httpx.Response(200, json={"user_id": user_id})
