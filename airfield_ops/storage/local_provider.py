"""
Local filesystem storage provider.
Each bucket is a directory under the storage root.
"""
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider


logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):

    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.storage_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url if public_base_url is not None else settings.public_base_url).rstrip("/")

    def _bucket_dir(self, bucket: str) -> Path:
        return self.base_dir / bucket.strip("/").replace("..", "")

    def _get_path(self, bucket: str, key: str) -> Path:
        # Remove leading slash and sanitize
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self._bucket_dir(bucket) / clean_key

    def ensure_bucket(self, bucket: str) -> None:
        path = self._bucket_dir(bucket)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info("storage_bucket_created", bucket=bucket)

    def get_public_url(self, bucket: str, key: str) -> Optional[str]:
        return f"{self.public_base_url}/storage/v1/object/public/{quote(bucket)}/{quote(key.lstrip('/'))}"

    def exists(self, bucket: str, key: str) -> bool:
        return self._get_path(bucket, key).exists()

    def put(self, bucket: str, key: str, data: Union[bytes, BinaryIO], content_type: str = "application/octet-stream") -> None:
        path = self._get_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            if hasattr(data, "read"):
                f.write(data.read())
            else:
                f.write(data)

    def open(self, bucket: str, key: str) -> bytes:
        path = self._get_path(bucket, key)
        if not path.exists():
            raise FileNotFoundError(f"{bucket}/{key}")
        return path.read_bytes()

    def delete(self, bucket: str, key: str) -> None:
        path = self._get_path(bucket, key)
        if path.exists():
            path.unlink()


_provider: Optional[StorageProvider] = None


def get_storage() -> StorageProvider:
    """FastAPI dependency returning the process-wide storage provider."""
    global _provider
    if _provider is None:
        _provider = LocalStorageProvider()
    return _provider
