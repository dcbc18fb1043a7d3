# src/medichat/services/storage_service.py
import hashlib
import os
from abc import ABC, abstractmethod
import secrets
from typing import Any, Dict, Optional
import aiofiles
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.backends import default_backend
from medichat.core.config import settings
from medichat.utils.logger import setup_logger

logger = setup_logger("STORAGE_SERVICE")


class StorageError(Exception):
    """Raised when an object cannot be written or read back"""


class ObjectStorage(ABC):
    """Key/value blob store for uploaded documents"""

    @abstractmethod
    async def put_object(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store `data` under `key`, replacing any previous object"""

    @abstractmethod
    async def get_object_buffer(self, key: str) -> bytes:
        """Raises StorageError when the object is missing or unreadable"""


class EncryptedFileStorage(ObjectStorage):
    """Local-disk object storage with AES-256-CBC encryption at rest"""

    def __init__(
        self, storage_path: Optional[str] = None, hex_key: Optional[str] = None
    ):
        self.storage_path = os.path.abspath(storage_path or settings.DOCUMENT_STORAGE_PATH)

        hex_key = hex_key or settings.FILE_ENCRYPTION_KEY
        if not hex_key:
            # Objects written with an ephemeral key are unreadable after restart
            logger.warning("FILE_ENCRYPTION_KEY not set, using an ephemeral key")
            hex_key = secrets.token_hex(32)

        try:
            self.encryption_key = bytes.fromhex(hex_key)
        except ValueError as e:
            raise ValueError(f"FILE_ENCRYPTION_KEY is not valid hex: {e}") from e
        if len(self.encryption_key) != 32:
            raise ValueError("AES-256 key must be 32 bytes (64 hex characters)")

        os.makedirs(self.storage_path, exist_ok=True)

    def _object_path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.storage_path, key))
        if os.path.commonpath([path, self.storage_path]) != self.storage_path:
            raise StorageError(f"Object key escapes storage root: {key!r}")
        return path

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(
            algorithms.AES(self.encryption_key),
            modes.CBC(iv),
            backend=default_backend(),
        )

    def _encrypt(self, data: bytes) -> bytes:
        iv = secrets.token_bytes(16)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(data) + padder.finalize()
        encryptor = self._cipher(iv).encryptor()
        # IV is stored in the clear as the first block
        return iv + encryptor.update(padded) + encryptor.finalize()

    def _decrypt(self, blob: bytes) -> bytes:
        iv, encrypted = blob[:16], blob[16:]
        decryptor = self._cipher(iv).decryptor()
        padded = decryptor.update(encrypted) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    async def put_object(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> Dict[str, Any]:
        path = self._object_path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(self._encrypt(data))
        except OSError as e:
            logger.error(f"Failed to store object {key}: {e}")
            raise StorageError(str(e)) from e

        logger.info(f"Stored object {key} ({len(data)} bytes, {content_type})")
        return {
            "key": key,
            "size_bytes": len(data),
            "checksum": hashlib.sha256(data).hexdigest(),
            "algorithm": "AES-256-CBC",
        }

    async def get_object_buffer(self, key: str) -> bytes:
        path = self._object_path(key)
        if not os.path.exists(path):
            raise StorageError(f"Object not found: {key}")

        async with aiofiles.open(path, "rb") as f:
            blob = await f.read()
        try:
            return self._decrypt(blob)
        except ValueError as e:
            logger.error(f"Failed to decrypt object {key}: {e}")
            raise StorageError(f"Object could not be decrypted: {key}") from e
