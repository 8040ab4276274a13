"""
Tests for draft persistence

- Saved drafts load back equal
- Corrupt records are cleared and treated as absent
- A full store is cleared once and the save retried once
- Autosave is debounced: rapid edits produce a single write of the last state
"""

import errno
import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from draft_storage import DRAFT_KEY, DraftStorageConfig, DraftStore, draft_key
from wizard.autosave import DraftAutosaver


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def store(tmp_path):
    return DraftStore(tmp_path / "drafts")


@pytest.fixture
def sample_draft():
    return {
        "MLS_ID": "2345678",
        "listingPrice": 450000,
        "buyerdata": {"Buyer1Name": "Jane Buyer", "B_Email": "jane@example.com"},
        "Form35": {"SEWERSURVEY": "NO"},
    }


class ManualScheduler:
    """Collects scheduled callbacks; tests decide when time passes."""

    class Handle:
        def __init__(self, callback):
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = self.Handle(callback)
        self.handles.append(handle)
        return handle

    def run_pending(self):
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.cancelled = True
                handle.callback()


class CountingStore(DraftStore):
    def __init__(self, directory):
        super().__init__(directory)
        self.saved = []

    def save(self, draft):
        self.saved.append(draft)
        return super().save(draft)


# ============================================================================
# Draft Store
# ============================================================================

class TestDraftKey:
    def test_default_key(self):
        assert draft_key() == DRAFT_KEY

    def test_session_key(self):
        assert draft_key("abc") == "offer_draft_abc"

    @pytest.mark.parametrize("session_id", ["../etc", "a/b", "a b", "x.json", "abc\n"])
    def test_unsafe_session_id_rejected(self, session_id):
        with pytest.raises(ValueError):
            draft_key(session_id)


class TestDraftStorageConfig:
    @patch.dict(os.environ, {
        "DRAFT_STORAGE_DIR": "/tmp/offer-drafts",
        "DRAFT_STORAGE_MAX_BYTES": "4096",
        "DRAFT_SAVE_DELAY": "0.5",
    })
    def test_reads_environment(self):
        config = DraftStorageConfig()
        assert config.storage_dir == Path("/tmp/offer-drafts")
        assert config.max_bytes == 4096
        assert config.save_delay == 0.5


class TestDraftStore:
    def test_round_trip(self, store, sample_draft):
        assert store.save(sample_draft)
        assert store.load() == sample_draft

    def test_missing_draft_loads_none(self, store):
        assert store.load() is None

    def test_save_overwrites(self, store, sample_draft):
        store.save(sample_draft)
        store.save({"MLS_ID": "999"})
        assert store.load() == {"MLS_ID": "999"}

    def test_corrupt_record_cleared(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None
        assert not store.exists()

    def test_non_object_record_cleared(self, store):
        store.path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert store.load() is None
        assert not store.exists()

    def test_clear(self, store, sample_draft):
        store.save(sample_draft)
        store.clear()
        assert not store.exists()
        store.clear()  # already gone

    def test_unserializable_draft_not_saved(self, store):
        assert store.save({"bad": object()}) is False
        assert not store.exists()

    def test_sessions_do_not_collide(self, tmp_path):
        config = DraftStorageConfig()
        config.storage_dir = tmp_path
        first = DraftStore.from_config(config, "one")
        second = DraftStore.from_config(config, "two")
        first.save({"MLS_ID": "1"})
        second.save({"MLS_ID": "2"})
        assert first.load() == {"MLS_ID": "1"}
        assert second.load() == {"MLS_ID": "2"}


class TestStorageFull:
    def test_quota_clears_old_draft_and_retries(self, tmp_path):
        store = DraftStore(tmp_path, max_bytes=60)
        assert store.save({"MLS_ID": "1", "notes": "x" * 20})
        # Fits only once the previous record is gone
        assert store.save({"MLS_ID": "2", "notes": "y" * 25})
        assert store.load() == {"MLS_ID": "2", "notes": "y" * 25}

    def test_draft_larger_than_quota_is_not_saved(self, tmp_path):
        store = DraftStore(tmp_path, max_bytes=10)
        assert store.save({"MLS_ID": "1", "notes": "x" * 50}) is False
        assert not store.exists()

    def test_disk_full_error_retried_once(self, store, sample_draft):
        calls = []
        real_write_bytes = Path.write_bytes

        def flaky_write_bytes(path, data):
            calls.append(path)
            if len(calls) == 1:
                raise OSError(errno.ENOSPC, "No space left on device")
            return real_write_bytes(path, data)

        with patch.object(Path, "write_bytes", flaky_write_bytes):
            assert store.save(sample_draft)
        assert len(calls) == 2
        assert store.load() == sample_draft

    def test_disk_full_twice_gives_up(self, store, sample_draft):
        with patch.object(Path, "write_bytes", side_effect=OSError(errno.ENOSPC, "full")) as write:
            assert store.save(sample_draft) is False
        assert write.call_count == 2

    def test_other_write_errors_not_retried(self, store, sample_draft):
        with patch.object(Path, "write_bytes", side_effect=PermissionError(errno.EACCES, "denied")) as write:
            assert store.save(sample_draft) is False
        assert write.call_count == 1


# ============================================================================
# Debounced Autosave
# ============================================================================

class TestDraftAutosaver:
    def test_two_saves_within_delay_write_once(self, tmp_path):
        """Only the last draft of a burst is written."""
        store = CountingStore(tmp_path)
        scheduler = ManualScheduler()
        saver = DraftAutosaver(store, delay=1.0, scheduler=scheduler)

        saver.schedule({"MLS_ID": "1"})
        saver.schedule({"MLS_ID": "2"})
        assert saver.pending
        assert scheduler.handles[0].cancelled

        scheduler.run_pending()
        assert store.saved == [{"MLS_ID": "2"}]
        assert store.load() == {"MLS_ID": "2"}
        assert not saver.pending

    def test_snapshot_taken_at_schedule_time(self, tmp_path):
        store = CountingStore(tmp_path)
        scheduler = ManualScheduler()
        saver = DraftAutosaver(store, scheduler=scheduler)

        draft = {"buyerdata": {"Buyer1Name": "Jane"}}
        saver.schedule(draft)
        draft["buyerdata"]["Buyer1Name"] = "Changed later"
        scheduler.run_pending()
        assert store.load() == {"buyerdata": {"Buyer1Name": "Jane"}}

    def test_cancel_drops_pending_save(self, tmp_path):
        store = CountingStore(tmp_path)
        scheduler = ManualScheduler()
        saver = DraftAutosaver(store, scheduler=scheduler)

        saver.schedule({"MLS_ID": "1"})
        saver.cancel()
        scheduler.run_pending()
        assert store.saved == []
        assert not saver.pending

    def test_flush_writes_immediately(self, tmp_path):
        store = CountingStore(tmp_path)
        scheduler = ManualScheduler()
        saver = DraftAutosaver(store, scheduler=scheduler)

        assert saver.flush() is False
        saver.schedule({"MLS_ID": "1"})
        assert saver.flush() is True
        scheduler.run_pending()
        assert store.saved == [{"MLS_ID": "1"}]

    def test_default_scheduler_uses_event_loop(self, tmp_path):
        import asyncio

        store = CountingStore(tmp_path)
        saver = DraftAutosaver(store, delay=0.01)

        async def edit_twice():
            saver.schedule({"MLS_ID": "1"})
            saver.schedule({"MLS_ID": "2"})
            await asyncio.sleep(0.05)

        asyncio.run(edit_twice())
        assert store.saved == [{"MLS_ID": "2"}]
