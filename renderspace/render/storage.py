"""
Render storage backends.

Generated images go to Supabase Storage in production and to a local
directory (served by the web app under /renders) in development.
"""

import asyncio
from pathlib import Path
from typing import Optional

from supabase import Client

from renderspace.config import config
from renderspace.database.client import get_supabase_admin_client


class StorageError(Exception):
    """Raised when an artifact could not be persisted."""
    pass


class SupabaseStorage:
    """Persists artifacts to a Supabase Storage bucket and returns public URLs."""

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or config.STORAGE_BUCKET

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    async def upload_image(self, image_data: bytes, filename: str) -> str:
        """Upload PNG bytes and return the public URL."""
        bucket = self.client.storage.from_(self.bucket)
        try:
            bucket.upload(
                filename,
                image_data,
                {"content-type": "image/png", "upsert": "true"},
            )
        except Exception as e:
            raise StorageError(f"Failed to upload rendered image: {e}") from e

        url = bucket.get_public_url(filename)
        if not url:
            raise StorageError("Failed to upload rendered image (missing image URL)")
        return url


class LocalStorage:
    """Writes artifacts under LOCAL_STORAGE_PATH, served at {base_url}/renders."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or config.LOCAL_STORAGE_PATH)
        self.base_url = (base_url or config.APP_BASE_URL).rstrip("/")

    async def upload_image(self, image_data: bytes, filename: str) -> str:
        path = self.root / filename
        try:
            await asyncio.to_thread(self._write, path, image_data)
        except OSError as e:
            raise StorageError(f"Failed to upload rendered image: {e}") from e
        return f"{self.base_url}/renders/{filename}"

    @staticmethod
    def _write(path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


def create_storage(backend: Optional[str] = None):
    """Build the storage backend selected by STORAGE_BACKEND."""
    backend = backend or config.STORAGE_BACKEND
    if backend == "supabase":
        return SupabaseStorage()
    return LocalStorage()
