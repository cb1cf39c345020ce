"""
Artifact storage over Supabase Storage.

Pipeline paths look like `project-assets/u_<user>/p_<project>/j_<job>/...`;
the first segment selects the bucket and the full path is the object key.
"""

from typing import Optional, Tuple

from shared.errors import StorageError
from shared.storage import StorageClient


def split_bucket(path: str) -> Tuple[str, str]:
    """('project-assets', 'project-assets/u_1/...') for a pipeline path."""
    bucket, _, rest = path.partition("/")
    if not bucket or not rest:
        raise StorageError(f"Storage path has no bucket prefix: {path}")
    return bucket, path


class SupabaseArtifactStorage:
    """ArtifactStorage over shared.storage.StorageClient."""

    def __init__(self, client: StorageClient):
        self.client = client

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        bucket, key = split_bucket(path)
        await self.client.upload_file(bucket, key, data, content_type=content_type)
        return path

    async def download(self, path: str) -> bytes:
        bucket, key = split_bucket(path)
        return await self.client.download_file(bucket, key)
