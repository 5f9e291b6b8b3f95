from typing import BinaryIO, Optional, Union


class StorageProvider:
    """Bucketed object storage. Keys are bucket-relative paths."""

    def ensure_bucket(self, bucket: str) -> None:
        raise NotImplementedError

    def get_public_url(self, bucket: str, key: str) -> Optional[str]:
        raise NotImplementedError

    def exists(self, bucket: str, key: str) -> bool:
        raise NotImplementedError

    def put(self, bucket: str, key: str, data: Union[bytes, BinaryIO], content_type: str = "application/octet-stream") -> None:
        raise NotImplementedError

    def open(self, bucket: str, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, bucket: str, key: str) -> None:
        raise NotImplementedError
