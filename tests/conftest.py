"""Pytest configuration and shared fixtures."""

import errno
import io
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from PIL import Image
from playwright.async_api import ElementHandle, Page

from snapdiff.errors import StorageError
from snapdiff.models.config import (
    LocatorConfig,
    ServiceConfig,
    StorageConfig,
    TimeoutConfig,
)
from snapdiff.storage.local import LocalArtifactStore


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    """Create a storage configuration rooted in a temp directory."""
    return StorageConfig(
        root_dir=str(tmp_path / "artifacts"),
        public_base_url="http://testserver",
        signing_secret="test-secret",
        url_expires_seconds=600,
    )


@pytest.fixture
def service_config(storage_config: StorageConfig) -> ServiceConfig:
    """Create a service configuration with short timeouts."""
    return ServiceConfig(
        timeouts=TimeoutConfig(navigation_ms=1000, settle_ms=100, settle_delay_ms=0, capture_ms=1000),
        locators=[
            LocatorConfig(selector=".mtc-eyebrow", timeout_ms=300, name="primary"),
            LocatorConfig(selector="main", timeout_ms=150, name="secondary"),
        ],
        storage=storage_config,
    )


# ============================================================================
# Image Helpers
# ============================================================================


def solid_image(width: int = 10, height: int = 10, color=(255, 255, 255, 255)) -> Image.Image:
    """Create a solid RGBA image."""
    return Image.new("RGBA", (width, height), color)


def png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_image():
    """Fixture that provides the solid_image function."""
    return solid_image


@pytest.fixture
def make_png():
    """Fixture that provides the png_bytes function."""
    return png_bytes


# ============================================================================
# Store Fixtures
# ============================================================================


class InMemoryArtifactStore:
    """Dict-backed ArtifactStore with failure injection."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.put_calls: list[str] = []
        self.deleted: list[str] = []

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def put(self, key: str, data: bytes, content_type: str = "image/png", overwrite: bool = True) -> None:
        self.put_calls.append(key)
        if any(marker in key for marker in self.fail_put):
            raise StorageError(f"Injected failure writing {key}", key=key)
        if not overwrite and key in self.objects:
            raise StorageError(f"Artifact already exists: {key}", key=key)
        self.objects[key] = data
        self.content_types[key] = content_type

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise StorageError(f"Artifact not found: {key}", key=key)
        return self.objects[key]

    async def delete(self, key: str) -> None:
        if any(marker in key for marker in self.fail_delete):
            raise StorageError(f"Injected failure deleting {key}", key=key)
        self.deleted.append(key)
        self.objects.pop(key, None)

    def signed_url(self, key: str, expires_in: int | None = None) -> str:
        return f"memory://{key}?expires={int(time.time()) + (expires_in or 3600)}"


@pytest.fixture
def memory_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def local_store(storage_config: StorageConfig) -> LocalArtifactStore:
    return LocalArtifactStore.from_config(storage_config)


class _TruncatingFile:
    """Writes the first few bytes, then fails the way a full disk does."""

    def __init__(self, f):
        self._f = f

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self._f.close()
        return False

    def write(self, data: bytes) -> int:
        self._f.write(data[:10])
        self._f.flush()
        raise OSError(errno.ENOSPC, "No space left on device")


class DiskFull:
    """Makes every os.fdopen'd file truncate its writes between ``start`` and ``clear``."""

    def __init__(self, monkeypatch):
        self._monkeypatch = monkeypatch
        self._real_fdopen = os.fdopen

    def start(self) -> None:
        self._monkeypatch.setattr(os, "fdopen", self._truncating_fdopen)

    def _truncating_fdopen(self, fd, *args, **kwargs):
        return _TruncatingFile(self._real_fdopen(fd, *args, **kwargs))

    def clear(self) -> None:
        self._monkeypatch.setattr(os, "fdopen", self._real_fdopen)


@pytest.fixture
def disk_full(monkeypatch) -> DiskFull:
    full = DiskFull(monkeypatch)
    full.start()
    return full


# ============================================================================
# Browser Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.url = "https://example.com"
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.query_selector = AsyncMock()
    page.screenshot = AsyncMock(return_value=png_bytes(solid_image(20, 20)))
    return page


def mock_element(image: Image.Image) -> AsyncMock:
    """Create a mock element handle whose screenshot is ``image``."""
    handle = AsyncMock(spec=ElementHandle)
    handle.screenshot = AsyncMock(return_value=png_bytes(image))
    return handle


@pytest.fixture
def make_element():
    return mock_element


class FakeSessionFactory:
    """Yields a given page and records how often sessions are opened and released."""

    def __init__(self, page):
        self.page = page
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def open_page(self):
        self.opened += 1
        try:
            yield self.page
        finally:
            self.closed += 1


@pytest.fixture
def session_factory(mock_page: AsyncMock) -> FakeSessionFactory:
    return FakeSessionFactory(mock_page)
