"""
Attachment byte storage.

Records only carry attachment metadata; the bytes live behind a BlobStore and
are addressed by the ``blob://`` URL the store hands back from upload().
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from typing import Dict, Protocol

from qms_workflow.core.errors import RecordNotFoundError

_SCHEME = "blob://"


class BlobStore(Protocol):
    async def upload(self, file_name: str, data: bytes, mime_type: str) -> str: ...

    async def download(self, url: str) -> bytes: ...


def _blob_key(file_name: str, data: bytes) -> str:
    sha = hashlib.sha256(data).hexdigest()
    safe_name = os.path.basename(file_name).replace("..", "_") or "attachment"
    return f"{sha}_{safe_name}"


def _key_from_url(url: str) -> str:
    if not url.startswith(_SCHEME):
        raise RecordNotFoundError(f"Unknown attachment URL {url!r}")
    key = url[len(_SCHEME):]
    if "/" in key or key.startswith("."):
        raise RecordNotFoundError(f"Unknown attachment URL {url!r}")
    return key


class LocalBlobStore:
    """Content-addressed files under a root directory."""

    def __init__(self, root: str) -> None:
        self.root = root

    def _write(self, key: str, data: bytes) -> None:
        os.makedirs(self.root, exist_ok=True)
        with open(os.path.join(self.root, key), "wb") as f:
            f.write(data)

    def _read(self, key: str) -> bytes:
        path = os.path.join(self.root, key)
        if not os.path.exists(path):
            raise RecordNotFoundError(f"Attachment blob {key} not found")
        with open(path, "rb") as f:
            return f.read()

    async def upload(self, file_name: str, data: bytes, mime_type: str) -> str:
        key = _blob_key(file_name, data)
        await asyncio.to_thread(self._write, key, data)
        return _SCHEME + key

    async def download(self, url: str) -> bytes:
        return await asyncio.to_thread(self._read, _key_from_url(url))


class InMemoryBlobStore:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}

    async def upload(self, file_name: str, data: bytes, mime_type: str) -> str:
        key = _blob_key(file_name, data)
        self.blobs[key] = data
        return _SCHEME + key

    async def download(self, url: str) -> bytes:
        key = _key_from_url(url)
        if key not in self.blobs:
            raise RecordNotFoundError(f"Attachment blob {key} not found")
        return self.blobs[key]
