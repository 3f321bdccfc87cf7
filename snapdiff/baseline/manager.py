"""Baseline lifecycle: establish on first sight, otherwise load for comparison."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from PIL import Image

from snapdiff.diff.codec import decode_png, encode_png
from snapdiff.errors import StorageError
from snapdiff.models.capture import ArtifactKeySet
from snapdiff.storage.base import ArtifactStore
from snapdiff.url_utils import baseline_key_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Established:
    key: str
    url: str


@dataclass(frozen=True)
class Existing:
    key: str
    image: Image.Image


BaselineOutcome = Union[Established, Existing]


@dataclass(frozen=True)
class BaselineInfo:
    identity: str
    key: str
    exists: bool
    url: str | None = None


class BaselineManager:
    """Owns the one-baseline-per-identity rule.

    A stored baseline is never overwritten from the capture path; ``reset``
    is the only way to remove one.
    """

    def __init__(self, store: ArtifactStore):
        self.store = store

    async def resolve(self, keys: ArtifactKeySet, candidate: Image.Image) -> BaselineOutcome:
        if await self.store.exists(keys.baseline_key):
            data = await self.store.get(keys.baseline_key)
            logger.debug("Loaded baseline %s", keys.baseline_key)
            return Existing(key=keys.baseline_key, image=decode_png(data))

        try:
            await self.store.put(keys.baseline_key, encode_png(candidate), "image/png", overwrite=False)
        except StorageError as e:
            e.artifact = "baseline"
            raise
        logger.info("Baseline created for %s", keys.identity)
        return Established(key=keys.baseline_key, url=self.store.signed_url(keys.baseline_key))

    async def describe(self, identity: str) -> BaselineInfo:
        key = baseline_key_for(identity)
        exists = await self.store.exists(key)
        return BaselineInfo(
            identity=identity,
            key=key,
            exists=exists,
            url=self.store.signed_url(key) if exists else None,
        )

    async def reset(self, identity: str) -> bool:
        """Delete the baseline so the next capture establishes a new one."""
        key = baseline_key_for(identity)
        if not await self.store.exists(key):
            return False
        await self.store.delete(key)
        logger.info("Baseline reset for %s", identity)
        return True
