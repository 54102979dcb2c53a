"""
Storage file fetcher
Downloads raw course file bytes from the object store with a fallback transport
"""

import asyncio
import logging
from typing import Dict, Optional
from urllib.parse import quote

import aiohttp

from etl.error_handling import FetchError

logger = logging.getLogger(__name__)


class StorageFileFetcher:
    """
    Fetch object bytes from a Supabase-style storage HTTP API

    The primary transport is an anonymous GET on the bucket's public URL. If it
    fails for any reason the authenticated object endpoint is tried with the
    service key. Only when both fail is a FetchError raised.
    """

    def __init__(
        self,
        storage_url: str,
        service_key: Optional[str],
        bucket: str = "course-files",
        timeout_seconds: float = 30.0,
    ):
        if not storage_url:
            raise ValueError("Storage URL is required. Set STORAGE_URL environment variable.")

        self.storage_url = storage_url.rstrip('/')
        self.service_key = service_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds, connect=10)
            self.session = aiohttp.ClientSession(timeout=timeout)

    def public_url(self, path: str) -> str:
        return f"{self.storage_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    def authenticated_url(self, path: str) -> str:
        return f"{self.storage_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    def _auth_headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.service_key}",
            'apikey': self.service_key or '',
        }

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        await self._ensure_session()
        try:
            async with self.session.get(url, headers=headers) as response:
                if response.status != 200:
                    raise FetchError(
                        f"Storage returned HTTP {response.status}",
                        details={'http_status': response.status},
                    )
                return await response.read()
        except aiohttp.ClientError as e:
            raise FetchError(f"Storage request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError("Storage request timed out") from e

    async def fetch_primary(self, path: str) -> bytes:
        return await self._get(self.public_url(path))

    async def fetch_fallback(self, path: str) -> bytes:
        if not self.service_key:
            raise FetchError("No storage service key configured for authenticated download")
        return await self._get(self.authenticated_url(path), headers=self._auth_headers())

    async def fetch(self, path: str) -> bytes:
        """
        Download the object stored at ``path``

        Args:
            path: Object path inside the bucket; surrounding whitespace is ignored

        Returns:
            Raw file bytes

        Raises:
            FetchError: If both the public and the authenticated download fail
        """
        clean_path = (path or '').strip()
        if not clean_path:
            raise FetchError("Storage path is empty")

        try:
            return await self.fetch_primary(clean_path)
        except FetchError as primary_error:
            logger.warning(
                f"Public download failed for '{clean_path}': {primary_error.message}; "
                f"retrying through authenticated storage API"
            )
            try:
                return await self.fetch_fallback(clean_path)
            except FetchError as fallback_error:
                raise FetchError(
                    "Could not download file from storage",
                    details={
                        'path': clean_path,
                        'primary_error': primary_error.message,
                        'fallback_error': fallback_error.message,
                    },
                ) from fallback_error

    async def close(self):
        """Clean up resources"""
        if self.session and not self.session.closed:
            await self.session.close()
