"""
Storage utilities.

Supabase Storage operations for pipeline artifacts (audio, images, timeline,
video, packages).
"""

import asyncio
import mimetypes
from typing import Optional, Any, Callable
from supabase import create_client, Client
from shared.config import settings
from shared.errors import RetryableError, ConfigError
from shared.retry import retry_with_backoff
from shared.logging import get_logger

logger = get_logger("storage")


class StorageClient:
    """Supabase Storage client for file operations."""

    def __init__(self, client: Optional[Client] = None):
        """
        Initialize storage client.

        Args:
            client: Existing supabase client to reuse (defaults to a new one from settings)
        """
        try:
            self.client = client or create_client(
                settings.supabase_url,
                settings.supabase_service_key
            )
            self.storage = self.client.storage
        except Exception as e:
            raise ConfigError(f"Failed to initialize storage client: {str(e)}") from e

    async def _execute_sync(self, func: Callable[[], Any]) -> Any:
        """Run a blocking storage call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    @staticmethod
    def detect_content_type(path: str, default: str = "application/octet-stream") -> str:
        """
        Detect content type from file path.

        Args:
            path: File path
            default: Content type used when detection fails

        Returns:
            Content type string
        """
        content_type, _ = mimetypes.guess_type(path)
        return content_type or default

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def upload_file(
        self,
        bucket: str,
        path: str,
        file_data: bytes,
        content_type: Optional[str] = None
    ) -> str:
        """
        Upload (or overwrite) a file in Supabase Storage.

        Uploads use upsert so a retried step can rewrite its own outputs.

        Args:
            bucket: Storage bucket name
            path: File path in bucket
            file_data: File data as bytes
            content_type: Content type (auto-detected if not provided)

        Returns:
            The storage path that was written

        Raises:
            RetryableError: If upload fails after retries
        """
        content_type = content_type or self.detect_content_type(path)
        try:
            def _upload():
                return self.storage.from_(bucket).upload(
                    path=path,
                    file=file_data,
                    file_options={"content-type": content_type, "upsert": "true"}
                )

            await self._execute_sync(_upload)
        except Exception as e:
            logger.error(
                f"Failed to upload file to {bucket}/{path}: {str(e)}",
                extra={"bucket": bucket, "path": path, "error": str(e)}
            )
            raise RetryableError(f"Failed to upload file: {str(e)}") from e

        logger.info(
            f"Uploaded file to {bucket}/{path}",
            extra={"bucket": bucket, "path": path, "size": len(file_data)}
        )
        return path

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def download_file(self, bucket: str, path: str) -> bytes:
        """
        Download a file from Supabase Storage.

        Args:
            bucket: Storage bucket name
            path: File path in bucket

        Returns:
            File data as bytes

        Raises:
            RetryableError: If download fails after retries
        """
        try:
            data = await self._execute_sync(lambda: self.storage.from_(bucket).download(path))
        except Exception as e:
            logger.error(
                f"Failed to download file from {bucket}/{path}: {str(e)}",
                extra={"bucket": bucket, "path": path, "error": str(e)}
            )
            raise RetryableError(f"Failed to download file: {str(e)}") from e

        logger.debug(f"Downloaded file from {bucket}/{path}", extra={"bucket": bucket, "path": path})
        return data

    async def get_public_url(self, bucket: str, path: str) -> str:
        """Public URL for a stored object."""
        return await self._execute_sync(lambda: self.storage.from_(bucket).get_public_url(path))
