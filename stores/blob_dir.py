"""
Directory Blob Store - keeps uploaded images on the local filesystem.
"""

import asyncio
import logging
import re
from pathlib import Path

from stores.base import BlobStore

log = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class DirectoryBlobStore(BlobStore):
    """Writes blobs under `root` and returns file:// URIs for them."""

    def __init__(self, root: str = "sos-images"):
        self.root = Path(root)

    def upload_sync(self, data: bytes, name: str) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.root / _UNSAFE_CHARS.sub("_", Path(name).name)
        target.write_bytes(data)
        log.info(f"Image stored at {target}")
        return target.resolve().as_uri()

    async def upload(self, data: bytes, name: str) -> str:
        return await asyncio.to_thread(self.upload_sync, data, name)
