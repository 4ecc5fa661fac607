"""ProgressAutosaver tests — debounce, failure handling, close."""

import asyncio

import pytest

from packet_pipeline.adapters import InMemoryProgressStore
from packet_pipeline.autosave import ProgressAutosaver


class FlakyStore(InMemoryProgressStore):
    """Fails while ``broken`` is set."""

    def __init__(self):
        super().__init__()
        self.broken = True
        self.attempts = 0

    async def save_progress(self, client_id, client_type, responses):
        self.attempts += 1
        if self.broken:
            raise ConnectionError("db down")
        await super().save_progress(client_id, client_type, responses)


class BlockingStore(InMemoryProgressStore):
    """Holds every save until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def save_progress(self, client_id, client_type, responses):
        self.entered.set()
        await self.release.wait()
        await super().save_progress(client_id, client_type, responses)


class TestAutosave:

    @pytest.mark.asyncio
    async def test_debounced_save(self):
        store = InMemoryProgressStore()
        saver = ProgressAutosaver(store, "c1", "NUTRITION_ONLY", interval=0.02)

        saver.update({"full-name": "J"})
        saver.update({"full-name": "Ja"})
        saver.update({"full-name": "Jane"})
        assert saver.dirty
        await asyncio.sleep(0.1)

        assert saver.saves == 1
        assert not saver.dirty
        assert await store.load_progress("c1") == {
            "client_type": "NUTRITION_ONLY",
            "responses": {"full-name": "Jane"},
        }

    @pytest.mark.asyncio
    async def test_flush_without_changes(self):
        saver = ProgressAutosaver(InMemoryProgressStore(), "c1", "NUTRITION_ONLY")
        assert await saver.flush() is False

    @pytest.mark.asyncio
    async def test_failed_save_keeps_responses(self):
        store = FlakyStore()
        saver = ProgressAutosaver(store, "c1", "NUTRITION_ONLY", interval=60)
        saver.update({"email": "jane@example.com"})

        assert await saver.flush() is False
        assert saver.dirty

        store.broken = False
        assert await saver.flush() is True
        assert not saver.dirty
        assert (await store.load_progress("c1"))["responses"] == {"email": "jane@example.com"}
        await saver.close()

    @pytest.mark.asyncio
    async def test_update_during_save_is_saved_next_interval(self):
        store = BlockingStore()
        saver = ProgressAutosaver(store, "c1", "NUTRITION_ONLY", interval=0.01)

        saver.update({"a": "1"})
        await asyncio.wait_for(store.entered.wait(), timeout=1)
        saver.update({"a": "2"})
        store.release.set()
        await asyncio.sleep(0.2)

        assert saver.saves == 2
        assert not saver.dirty
        assert (await store.load_progress("c1"))["responses"] == {"a": "2"}
        await saver.close()

    @pytest.mark.asyncio
    async def test_failed_timed_save_is_retried(self):
        store = FlakyStore()
        saver = ProgressAutosaver(store, "c1", "NUTRITION_ONLY", interval=0.01)

        saver.update({"email": "jane@example.com"})
        await asyncio.sleep(0.1)
        assert store.attempts >= 2
        assert saver.dirty

        store.broken = False
        await asyncio.sleep(0.1)
        assert not saver.dirty
        assert saver.saves == 1
        assert (await store.load_progress("c1"))["responses"] == {"email": "jane@example.com"}
        await saver.close()

    @pytest.mark.asyncio
    async def test_close_flushes_immediately(self):
        store = InMemoryProgressStore()
        saver = ProgressAutosaver(store, "c1", "YOUTH", interval=60)
        saver.update({"school-grade": "9"})
        await saver.close()
        assert saver.saves == 1
        assert (await store.load_progress("c1"))["client_type"] == "YOUTH"

    @pytest.mark.asyncio
    async def test_store_returns_copies(self):
        store = InMemoryProgressStore()
        await store.save_progress("c1", "YOUTH", {"a": 1})
        loaded = await store.load_progress("c1")
        loaded["client_type"] = "changed"
        assert (await store.load_progress("c1"))["client_type"] == "YOUTH"
        assert await store.load_progress("unknown") is None
