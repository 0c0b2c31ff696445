"""
Object storage operations for the pipeline.
Handles streaming uploads into Supabase Storage and downloading stored media.
"""

import logging
from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx
from supabase import Client

from meetingflow.core.errors import StorageError

logger = logging.getLogger(__name__)


class MediaStorage:
    """Storage operations on the media bucket."""

    def __init__(
        self,
        supabase_client: Client,
        http_client: httpx.AsyncClient,
        supabase_url: str,
        service_key: str,
        bucket_name: str = "videos",
    ):
        """
        Initialize media storage operations.

        Args:
            supabase_client: Supabase client instance, used for downloads
            http_client: Shared HTTP client, used for streaming uploads
            supabase_url: Project URL
            service_key: Service role key
            bucket_name: Bucket holding the source media
        """
        self.client = supabase_client
        self.http = http_client
        self.supabase_url = supabase_url.rstrip("/")
        self.service_key = service_key
        self.bucket_name = bucket_name

    @staticmethod
    def build_storage_path(task_id: str, extension: str) -> str:
        """Storage key for a task's source media. Unique because task ids are."""
        return f"uploads/{task_id}.{extension}"

    def _object_url(self, storage_path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/{self.bucket_name}/{quote(storage_path)}"

    async def upload_stream(
        self,
        storage_path: str,
        chunks: AsyncIterator[bytes],
        content_type: Optional[str] = None,
    ) -> int:
        """
        Stream `chunks` into the bucket at `storage_path`.

        The body is forwarded chunk by chunk, so arbitrarily large files never
        sit in memory whole.

        Returns:
            Number of bytes written
        """
        written = 0

        async def counting() -> AsyncIterator[bytes]:
            nonlocal written
            async for chunk in chunks:
                written += len(chunk)
                yield chunk

        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type or "application/octet-stream",
            # Keys are derived from the task id, so a re-run of the same task overwrites its own object.
            "x-upsert": "true",
        }

        url = self._object_url(storage_path)
        logger.info(f"Uploading to Supabase Storage: {self.bucket_name}/{storage_path} ({headers['Content-Type']})")

        try:
            response = await self.http.post(url, content=counting(), headers=headers)
        except httpx.RequestError as e:
            logger.error(f"❌ Storage upload request error for {storage_path}: {e}")
            raise StorageError(f"Storage upload request failed: {e}", storage_path=storage_path) from e

        if not response.is_success:
            logger.error(f"❌ Storage upload failed for {storage_path}: {response.status_code} - {response.text[:200]}")
            raise StorageError(
                f"{response.status_code} - {response.text[:200]}",
                storage_path=storage_path,
                status=response.status_code,
            )

        logger.info(f"✅ Uploaded {written} bytes to {self.bucket_name}/{storage_path}")
        return written

    async def download(self, storage_path: str) -> bytes:
        """
        Download an object from the bucket.

        Args:
            storage_path: Path inside the bucket (e.g. "uploads/<task_id>.mov")

        Returns:
            File content as bytes
        """
        if not storage_path:
            raise StorageError("Empty storage path")

        logger.info(f"Downloading media from Supabase Storage: bucket '{self.bucket_name}', path '{storage_path}'")
        try:
            content = self.client.storage.from_(self.bucket_name).download(storage_path)
        except Exception as e:
            logger.error(f"❌ Error downloading {storage_path}: {e}")
            raise StorageError(
                f"Failed to download media (bucket: {self.bucket_name}, path: {storage_path}): {e}",
                storage_path=storage_path,
            ) from e

        if not content:
            raise StorageError(
                f"No data returned when downloading media (bucket: {self.bucket_name}, path: {storage_path})",
                storage_path=storage_path,
            )

        logger.info(f"Downloaded {len(content)} bytes from {storage_path}")
        return content
