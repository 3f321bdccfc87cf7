"""Artifact store interface used by the capture pipeline."""

from __future__ import annotations

from typing import Protocol


class ArtifactStore(Protocol):
    """Content store for baseline, capture and diff images.

    Implementations raise StorageError for any read or write failure, and
    ``get`` raises it for a missing key as well.
    """

    async def exists(self, key: str) -> bool: ...

    async def put(self, key: str, data: bytes, content_type: str = "image/png", overwrite: bool = True) -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    def signed_url(self, key: str, expires_in: int | None = None) -> str: ...
