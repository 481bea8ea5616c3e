"""
Storage Provider Interface and Implementations
Abstraction for storing uploaded listing images and store logos
"""
from abc import ABC, abstractmethod
from typing import Optional
import hashlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

MAX_IMAGE_BYTES = 10 * 1024 * 1024


class StorageProvider(ABC):
    """Abstract base class for storage providers"""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Store data and return the storage key

        Args:
            key: Storage key/path
            data: Data bytes to store
            content_type: MIME type

        Returns:
            Storage key
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Retrieve data by key, None if not found"""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete data by key; True if deleted, False if not found"""
        pass

    @abstractmethod
    def get_url(self, key: str) -> str:
        """Public URL for a stored object"""
        pass


def _safe_key(key: str) -> str:
    parts = key.replace('\\', '/').split('/')
    return '/'.join(part for part in parts if part and part not in ('.', '..'))


class LocalDiskStorageProvider(StorageProvider):
    """Local filesystem storage, served by the app under the public upload URL"""

    def __init__(self, base_path: str, public_url: str):
        """
        Args:
            base_path: Directory uploads are written to
            public_url: URL prefix the directory is served from
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_url = public_url.rstrip('/')
        logger.info(f"LocalDiskStorageProvider initialized at {self.base_path}")

    def _path(self, key: str) -> Path:
        return self.base_path / _safe_key(key).replace('/', os.sep)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        file_path = self._path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'wb') as f:
            f.write(data)
        logger.debug(f"Stored {len(data)} bytes ({content_type}) to {file_path}")
        return _safe_key(key)

    def get(self, key: str) -> Optional[bytes]:
        file_path = self._path(key)
        if not file_path.exists():
            return None
        with open(file_path, 'rb') as f:
            return f.read()

    def delete(self, key: str) -> bool:
        file_path = self._path(key)
        if not file_path.exists():
            return False
        file_path.unlink()
        logger.debug(f"Deleted {file_path}")
        return True

    def get_url(self, key: str) -> str:
        return f"{self.public_url}/{_safe_key(key)}"


def generate_key(prefix: str, extension: str = "") -> str:
    """
    Generate a unique storage key

    Args:
        prefix: Key prefix (e.g., 'images')
        extension: File extension (e.g., '.png')

    Returns:
        Unique storage key
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    random_suffix = hashlib.md5(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}/{timestamp}_{random_suffix}{extension}"


def image_extension(content_type: str) -> str:
    """
    File extension for an accepted image content type

    Raises:
        ValueError: If the content type is not an accepted image type
    """
    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type in ALLOWED_IMAGE_TYPES:
        return ALLOWED_IMAGE_TYPES[content_type]
    raise ValueError(f"Unsupported image type: {content_type or 'unknown'}")


def store_image(provider: StorageProvider, data: bytes, content_type: str) -> str:
    """
    Validate and store an uploaded image

    Returns:
        Public URL of the stored image
    """
    if not data:
        raise ValueError("Image is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValueError(f"Image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)} MB limit")
    key = provider.put(generate_key("images", image_extension(content_type)), data, content_type)
    return provider.get_url(key)


def get_storage_provider(base_path: Optional[str] = None, public_url: Optional[str] = None) -> StorageProvider:
    """Factory for the configured storage provider"""
    from ..config import config

    return LocalDiskStorageProvider(
        base_path=base_path or config.UPLOAD_PATH,
        public_url=public_url or config.PUBLIC_UPLOAD_URL,
    )
