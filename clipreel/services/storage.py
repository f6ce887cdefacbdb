"""Object storage access for clip downloads and final video uploads.

Final videos are stored under:
  {workspace_id}/videos/{job_id}/{filename}

HttpStorageClient speaks the Supabase storage REST API with httpx.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from clipreel.config import settings

logger = logging.getLogger(__name__)


def video_path(workspace_id: str, job_id: str, filename: str) -> str:
    """Storage key for a file belonging to a video job."""
    return f"{workspace_id}/videos/{job_id}/{filename}"


class StorageClient(ABC):
    @abstractmethod
    async def download(self, url: str) -> bytes:
        ...

    @abstractmethod
    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Store data at path (overwriting) and return its public URL."""
        ...


class HttpStorageClient(StorageClient):
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.storage.object_store_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.storage.object_store_key
        self.bucket = bucket or settings.storage.bucket
        self.timeout = timeout or settings.storage.download_timeout_seconds

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def download(self, url: str) -> bytes:
        async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    async def upload(self, data: bytes, path: str, content_type: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        upload_url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(upload_url, content=data, headers=headers)
            response.raise_for_status()

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return self.public_url(path)
