# app/services/storage.py
import uuid
from pathlib import Path

import requests

from app.core.config import settings

SUPABASE_URL = settings.supabase_url
SUPABASE_SERVICE_ROLE = settings.supabase_service_role
BUCKET = settings.supabase_bucket

MEDIA_ROOT = Path(settings.media_root)
MEDIA_PREFIX = "/media"

MAX_FILES = 10
MAX_BYTES = 2 * 1024 * 1024
ALLOWED_IMAGES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
# attachment url column width
MAX_URL_LENGTH = 500


def supabase_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE)


def _save_local(data: bytes, path: str) -> str:
    target = MEDIA_ROOT / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return f"{MEDIA_PREFIX}/{path}"


def upload_file(data: bytes, content_type: str, path: str) -> str:
    """Stores the bytes and returns their URL; only the URL is ever persisted.

    Supabase Storage (public bucket) when configured, otherwise files under
    MEDIA_ROOT served at /media.
    """
    if not supabase_configured():
        return _save_local(data, path)
    url = f"{SUPABASE_URL}/storage/v1/object/{BUCKET}/{path}"
    r = requests.post(url, headers={
        "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE}",
        "Content-Type": content_type,
        "x-upsert": "true",
    }, data=data, timeout=30)
    r.raise_for_status()
    return f"{SUPABASE_URL}/storage/v1/object/public/{BUCKET}/{path}"


def make_object_key(issue_id: int, filename: str, folder: str = "photos") -> str:
    ext = (filename.rsplit(".", 1)[-1] if "." in filename else "jpg").lower() or "jpg"
    # keep user-supplied text out of the path
    if not ext.isalnum() or len(ext) > 5:
        ext = "jpg"
    return f"{folder}/{issue_id}/{uuid.uuid4().hex}.{ext}"
