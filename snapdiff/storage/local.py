"""Filesystem-backed artifact store with signed read URLs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

from snapdiff.errors import StorageError
from snapdiff.models.config import StorageConfig

from .signing import sign, verify

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class LocalArtifactStore:
    """Stores artifacts as files under a root directory.

    Each object ``<key>`` is written alongside ``<key>.meta.json`` holding its
    content type. Signed URLs point at the service's ``/artifacts`` route.
    """

    def __init__(self, root_dir: Path, public_base_url: str, secret: str, default_expires: int = 3600):
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.secret = secret
        self.default_expires = default_expires

    @classmethod
    def from_config(cls, config: StorageConfig) -> "LocalArtifactStore":
        return cls(
            root_dir=Path(config.root_dir),
            public_base_url=config.public_base_url,
            secret=config.signing_secret,
            default_expires=config.url_expires_seconds,
        )

    def path_for(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts or key.endswith(META_SUFFIX):
            raise StorageError(f"Invalid artifact key: {key!r}", key=key)
        return self.root_dir.joinpath(*parts)

    async def exists(self, key: str) -> bool:
        path = self.path_for(key)
        return await asyncio.to_thread(path.is_file)

    async def put(self, key: str, data: bytes, content_type: str = "image/png", overwrite: bool = True) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data, content_type, overwrite)
        except FileExistsError as e:
            raise StorageError(f"Artifact already exists: {key}", key=key) from e
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key) from e
        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)

    @staticmethod
    def _write(path: Path, data: bytes, content_type: str, overwrite: bool) -> None:
        """Publish ``data`` at ``path`` only once it is completely on disk."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        tmp = Path(tmp_name)
        published = False
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if overwrite:
                os.replace(tmp, path)
            else:
                # link fails with FileExistsError instead of clobbering
                os.link(tmp, path)
            published = True
            meta_path = path.with_name(path.name + META_SUFFIX)
            meta_path.write_text(json.dumps({"content_type": content_type}))
        except BaseException:
            if published:
                path.unlink(missing_ok=True)
            raise
        finally:
            tmp.unlink(missing_ok=True)

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise StorageError(f"Artifact not found: {key}", key=key) from e
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._remove, path)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e

    @staticmethod
    def _remove(path: Path) -> None:
        path.unlink(missing_ok=True)
        path.with_name(path.name + META_SUFFIX).unlink(missing_ok=True)

    def content_type(self, key: str) -> str:
        meta_path = self.path_for(key)
        meta_path = meta_path.with_name(meta_path.name + META_SUFFIX)
        try:
            return json.loads(meta_path.read_text()).get("content_type", "application/octet-stream")
        except (OSError, ValueError):
            return "application/octet-stream"

    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        self.path_for(key)
        expires = int(time.time()) + (expires_in or self.default_expires)
        query = urlencode({"expires": expires, "signature": sign(self.secret, key, expires)})
        return f"{self.public_base_url}/artifacts/{quote(key)}?{query}"

    def verify_url(self, key: str, expires: int, signature: str) -> bool:
        return verify(self.secret, key, expires, signature)
