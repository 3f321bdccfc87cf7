"""Tests for the baseline manager."""

import pytest

from snapdiff.baseline.manager import BaselineManager, Established, Existing
from snapdiff.errors import StorageError
from snapdiff.url_utils import derive_keys


@pytest.mark.asyncio
class TestBaselineManager:
    async def test_first_sight_establishes(self, memory_store, make_image, make_png):
        manager = BaselineManager(memory_store)
        keys = derive_keys("https://example.com", 1)
        candidate = make_image(4, 4, (1, 2, 3, 255))

        outcome = await manager.resolve(keys, candidate)

        assert isinstance(outcome, Established)
        assert outcome.key == keys.baseline_key
        assert outcome.url.startswith(f"memory://{keys.baseline_key}")
        assert memory_store.objects[keys.baseline_key] == make_png(candidate)
        assert memory_store.content_types[keys.baseline_key] == "image/png"

    async def test_existing_baseline_is_loaded(self, memory_store, make_image):
        manager = BaselineManager(memory_store)
        original = make_image(4, 4, (1, 2, 3, 255))
        await manager.resolve(derive_keys("https://example.com", 1), original)

        outcome = await manager.resolve(derive_keys("https://example.com", 2), make_image(4, 4, (9, 9, 9, 255)))

        assert isinstance(outcome, Existing)
        assert outcome.image.tobytes() == original.tobytes()

    async def test_never_overwrites_existing_baseline(self, memory_store, make_image):
        manager = BaselineManager(memory_store)
        await manager.resolve(derive_keys("https://example.com", 1), make_image(4, 4, (1, 2, 3, 255)))
        stored = dict(memory_store.objects)

        for generation in range(2, 5):
            await manager.resolve(derive_keys("https://example.com", generation), make_image(4, 4, (200, 0, 0, 255)))

        assert memory_store.objects == stored
        assert memory_store.put_calls == [derive_keys("https://example.com", 1).baseline_key]

    async def test_baselines_are_per_identity(self, memory_store, make_image):
        manager = BaselineManager(memory_store)
        first = await manager.resolve(derive_keys("https://a.example.com", 1), make_image())
        second = await manager.resolve(derive_keys("https://b.example.com", 1), make_image())
        assert isinstance(first, Established)
        assert isinstance(second, Established)

    async def test_write_failure_is_tagged(self, memory_store, make_image):
        memory_store.fail_put.add("baseline")
        manager = BaselineManager(memory_store)
        with pytest.raises(StorageError) as exc:
            await manager.resolve(derive_keys("https://example.com", 1), make_image())
        assert exc.value.artifact == "baseline"

    async def test_describe_and_reset(self, memory_store, make_image):
        manager = BaselineManager(memory_store)
        keys = derive_keys("https://example.com", 1)

        info = await manager.describe(keys.identity)
        assert info.exists is False
        assert info.url is None
        assert await manager.reset(keys.identity) is False

        await manager.resolve(keys, make_image())
        info = await manager.describe(keys.identity)
        assert info.exists is True
        assert info.key == keys.baseline_key

        assert await manager.reset(keys.identity) is True
        outcome = await manager.resolve(derive_keys("https://example.com", 2), make_image())
        assert isinstance(outcome, Established)
