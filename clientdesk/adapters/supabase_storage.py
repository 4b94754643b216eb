"""Supabase Storage Adapter

バケットへのファイルアップロードと公開 URL の生成。

オブジェクトパスは ASCII のみで組み立て、元のファイル名（非 ASCII を含み得る）は
DB 側の file_name 列に保持する。パスの各セグメントは不可視の Unicode 書式文字
（双方向制御文字・ゼロ幅文字・BOM など）を除去してからパーセントエンコードする。
"""

from __future__ import annotations

import logging
import re
import time
from urllib.parse import quote

from clientdesk.adapters.supabase_rest import SupabaseRestClient
from clientdesk.domain.models import UploadedObject
from clientdesk.domain.ports import BlobStorage

logger = logging.getLogger(__name__)

_INVISIBLE = re.compile("[\u00AD\u061C\u200B-\u200F\u202A-\u202E\u2060-\u2064\u2066-\u2069\uFEFF]")
_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9._-]+")
_EXTENSION = re.compile(r"^[a-z0-9]{1,6}$")

MAX_SAFE_NAME_LENGTH = 120


def encode_path_segments(path: str) -> str:
    """空セグメントを落とし、各セグメントを掃除してパーセントエンコードする"""
    segments = []
    for segment in path.split("/"):
        if not segment:
            continue
        cleaned = _INVISIBLE.sub("", segment).strip()
        segments.append(quote(cleaned, safe="!~*'()"))
    return "/".join(segments)


def extension_for(file_name: str | None, mime_type: str | None = None) -> str:
    """ファイル名の拡張子（英数字 1〜6 文字）、無ければ MIME タイプから推定"""
    name = (file_name or "").lower()
    if "." in name:
        ext = name.rsplit(".", 1)[1]
        if _EXTENSION.match(ext):
            return ext
    mime = (mime_type or "").lower()
    if "png" in mime:
        return "png"
    if "webp" in mime:
        return "webp"
    return "jpg"


def safe_file_name(file_name: str | None, fallback_ext: str) -> str:
    """ASCII の安全な文字だけのファイル名（末尾 120 文字まで）"""
    cleaned = _UNSAFE_NAME.sub("_", (file_name or "").strip())
    if not cleaned:
        cleaned = f"image.{fallback_ext}"
    return cleaned[-MAX_SAFE_NAME_LENGTH:]


def _now_ms() -> int:
    return int(time.time() * 1000)


def note_attachment_path(
    client_id: str, note_id: str, index: int, ext: str, timestamp_ms: int | None = None
) -> str:
    ts = timestamp_ms if timestamp_ms is not None else _now_ms()
    return f"client_notes/{client_id}/{note_id}/{ts}_{index}.{ext}"


def document_object_path(
    client_id: str | None, file_name: str, timestamp_ms: int | None = None
) -> str:
    """
    ドキュメントのオブジェクトパス（clients/<id>/<ts>.<ext> または general/<ts>.<ext>）。

    元のファイル名は使わない。拡張子が英数字でなければ付けない。
    """
    ts = timestamp_ms if timestamp_ms is not None else _now_ms()
    ext = ""
    if "." in file_name:
        candidate = file_name.rsplit(".", 1)[1].lower()
        if _EXTENSION.match(candidate):
            ext = candidate
    name = f"{ts}.{ext}" if ext else str(ts)
    return f"clients/{client_id}/{name}" if client_id else f"general/{name}"


class SupabaseBlobStorage(BlobStorage):
    """Supabase Storage への upsert アップロード"""

    def __init__(self, rest: SupabaseRestClient) -> None:
        self._rest = rest

    def public_url(self, bucket: str, object_path: str) -> str:
        if not self._rest.config.supabase_url:
            return ""
        return self._rest.url(
            f"/storage/v1/object/public/{bucket}/{encode_path_segments(object_path)}"
        )

    async def upload(
        self,
        bucket: str,
        object_path: str,
        content: bytes,
        content_type: str | None = None,
    ) -> UploadedObject:
        await self._rest.send(
            "POST",
            f"/storage/v1/object/{bucket}/{encode_path_segments(object_path)}",
            content=content,
            headers={
                "x-upsert": "true",
                "Content-Type": content_type or "application/octet-stream",
                "Accept": "application/json",
            },
            error_label="Supabase Storage upload error",
        )
        logger.info("Uploaded object: bucket=%s, path=%s (%d bytes)", bucket, object_path, len(content))
        return UploadedObject(
            bucket=bucket,
            object_path=object_path,
            public_url=self.public_url(bucket, object_path),
        )
