"""
Object Storage

Thin async wrapper over the Supabase storage bucket that holds user
uploads. supabase-py is blocking, so every call goes through
asyncio.to_thread.
"""

import asyncio
import logging
from typing import List, Optional

from supabase import Client

from gearhead.config.settings import settings
from gearhead.infrastructure.exceptions import StorageError
from gearhead.infrastructure.supabase_client import get_supabase_client


logger = logging.getLogger(__name__)


class ObjectStorage:
    """Upload, download and remove objects in one bucket."""

    def __init__(self, supabase: Optional[Client] = None, bucket: Optional[str] = None):
        self._supabase = supabase
        self.bucket = bucket or settings.supabase_storage_bucket

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    def _bucket(self):
        return self.supabase.storage.from_(self.bucket)

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        """
        Store an object.

        Raises:
            StorageError: the upload was rejected
        """
        options = {"content-type": content_type or "application/octet-stream", "upsert": "false"}
        try:
            await asyncio.to_thread(self._bucket().upload, path, data, options)
        except Exception as e:
            raise StorageError(f"Storage upload failed: {e}", path=path, original_error=e)
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")

    async def download(self, path: str) -> bytes:
        """
        Fetch an object's bytes.

        Raises:
            StorageError: the object could not be read
        """
        try:
            return await asyncio.to_thread(self._bucket().download, path)
        except Exception as e:
            raise StorageError(f"Failed to download file: {e}", path=path, original_error=e)

    async def remove(self, paths: List[str]) -> None:
        """
        Delete objects.

        Raises:
            StorageError: the delete was rejected
        """
        try:
            await asyncio.to_thread(self._bucket().remove, paths)
        except Exception as e:
            raise StorageError(f"Storage delete failed: {e}", path=", ".join(paths), original_error=e)
        logger.info(f"Removed {len(paths)} object(s) from {self.bucket}")


_storage_instance: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    """Get or create the object storage singleton."""
    global _storage_instance

    if _storage_instance is None:
        _storage_instance = ObjectStorage()

    return _storage_instance
