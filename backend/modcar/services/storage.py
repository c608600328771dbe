from __future__ import annotations

import logging
import os
import pathlib
import secrets
import time
from typing import Optional

from modcar.config import settings

logger = logging.getLogger("modcar.storage")

BUCKET_PRODUCT_IMAGES = "product-images"
BUCKET_CAMPAIGN_IMAGES = "campaign-images"

BUCKETS = {BUCKET_PRODUCT_IMAGES, BUCKET_CAMPAIGN_IMAGES}
IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


class StorageError(Exception):
    pass


class StorageClient:
    """
    Armazenamento local servido em ``STORAGE_PATH``.
    Layout: ``<bucket>/<owner_id>/<timestamp>-<aleatório>.<ext>``.
    """

    def __init__(
        self,
        base_dir: Optional[str] = None,
        public_url: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        self.base_dir = pathlib.Path(base_dir or settings.STORAGE_DIR).resolve()
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL or "").rstrip("/")
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_IMAGE_BYTES

    def _object_path(self, bucket: str, owner_id: str, filename: str) -> str:
        ext = os.path.splitext(filename or "")[1].lower().lstrip(".") or "bin"
        stamp = int(time.time() * 1000)
        return f"{bucket}/{owner_id}/{stamp}-{secrets.token_hex(4)}.{ext}"

    def upload(
        self,
        bucket: str,
        owner_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        if bucket not in BUCKETS:
            raise StorageError(f"Bucket desconhecido: {bucket}")
        if content_type and content_type not in IMAGE_TYPES:
            raise StorageError("Arquivo deve ser uma imagem.")
        if not content:
            raise StorageError("Arquivo vazio.")
        if self.max_bytes and len(content) > self.max_bytes:
            raise StorageError("Arquivo excede o tamanho maximo permitido.")

        dest_path = self._object_path(bucket, owner_id, filename)
        full_path = self.base_dir / dest_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(content)

        logger.info("stored %s (%d bytes)", dest_path, len(content))
        return f"{self.public_url}/{dest_path}"


def get_storage() -> StorageClient:
    return StorageClient()
