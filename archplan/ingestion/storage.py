"""Durable byte storage for uploaded files."""

import asyncio
from pathlib import Path
from typing import Protocol


class FileStorage(Protocol):
    """Backend the upload manager writes through. Keys are '/'-separated."""

    bucket: str

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    def url_for(self, key: str) -> str: ...


class LocalFileStorage:
    """Stores objects as files under ``root``; serves them from ``/uploads/<key>``."""

    def __init__(self, root: str | Path, bucket: str, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.bucket = bucket
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage key escapes storage root: {key!r}")
        return path

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> None:
        # Missing files are not an error
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"
