"""Test the Tracker facade"""

import asyncio

import pytest

from anitrack.anilist.models import ListStatus
from anitrack.core.config import load_config
from anitrack.core.exceptions import NotFoundError, QueueWriteError, StoreError
from anitrack.sync.engine import SyncEngine
from anitrack.sync.models import OperationKind
from anitrack.tracker import Tracker

WATCHING = ListStatus.WATCHING
COMPLETED = ListStatus.COMPLETED


@pytest.fixture
def tracker(database, remote, sync_settings, events):
    engine = SyncEngine(database, remote, sync_settings, user_id_provider=lambda: 7, events=events)
    return Tracker(engine.store, engine, auto_sync=False, events=events)


def queued(tracker):
    return [(op.kind, op.media_id, op.payload) for op in tracker.engine.pending_operations()]


class TestMirroredOperations:

    def test_add(self, tracker, media_factory):
        entry = tracker.add(media_factory(21), WATCHING, progress=2, score=70)

        assert entry.dirty is True
        assert queued(tracker) == [
            (OperationKind.UPDATE_PROGRESS, 21, {"progress": 2, "status": "CURRENT", "score": 70.0}),
        ]

    def test_update_progress(self, tracker, media_factory):
        entry = tracker.add(media_factory(21), WATCHING)

        tracker.update_progress(entry.id, 5)

        assert queued(tracker)[-1] == (OperationKind.UPDATE_PROGRESS, 21, {"progress": 5, "status": "CURRENT"})

    def test_update_score(self, tracker, media_factory):
        entry = tracker.add(media_factory(21), WATCHING, progress=3)

        tracker.update_score(entry.id, None)

        assert queued(tracker)[-1] == (
            OperationKind.UPDATE_PROGRESS, 21, {"progress": 3, "status": "CURRENT", "score": None},
        )

    def test_status_changes(self, tracker, media_factory):
        entry = tracker.add(media_factory(21), WATCHING)

        tracker.update_status(entry.id, ListStatus.ON_HOLD)
        tracker.move_between_lists(entry.id, COMPLETED)

        assert queued(tracker)[1:] == [
            (OperationKind.UPDATE_STATUS, 21, {"status": "PAUSED"}),
            (OperationKind.UPDATE_STATUS, 21, {"status": "COMPLETED"}),
        ]

    def test_reorder_is_local_only(self, tracker, media_factory):
        for media_id in (1, 2):
            tracker.add(media_factory(media_id), WATCHING)
        before = len(queued(tracker))

        result = tracker.reorder(WATCHING, 1, 0)

        assert [e.media_id for e in result] == [2, 1]
        assert len(queued(tracker)) == before

    def test_delete(self, tracker, database, media_factory):
        entry = tracker.add(media_factory(21), WATCHING)
        database.update_entry(entry.id, remote_id=555)

        tracker.delete(entry.id)

        assert queued(tracker)[-1] == (OperationKind.DELETE_ENTRY, 21, {"remote_id": 555})
        assert tracker.library() == []

    def test_failed_local_mutation_queues_nothing(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.update_progress(404, 1)

        assert queued(tracker) == []


class TestQueueWriteFailure:

    @pytest.fixture
    def broken_queue(self, database, monkeypatch):
        def broken(*args, **kwargs):
            raise StoreError("disk I/O error")

        return lambda: monkeypatch.setattr(database, "append_operation", broken)

    def test_add_is_rolled_back(self, tracker, broken_queue, media_factory):
        broken_queue()

        with pytest.raises(QueueWriteError):
            tracker.add(media_factory(21), WATCHING, progress=1)

        assert tracker.library() == []
        assert tracker.store.get_by_media(21) is None

    def test_update_leaves_entry_unchanged(self, tracker, database, broken_queue, media_factory):
        entry = tracker.add(media_factory(21), WATCHING, progress=1)
        database.update_entry(entry.id, dirty=False)
        broken_queue()

        with pytest.raises(QueueWriteError):
            tracker.update_progress(entry.id, 2)

        current = tracker.store.get(entry.id)
        assert (current.progress, current.dirty) == (1, False)
        assert len(queued(tracker)) == 1

    def test_delete_is_rolled_back(self, tracker, broken_queue, media_factory):
        entry = tracker.add(media_factory(21), WATCHING)
        broken_queue()

        with pytest.raises(QueueWriteError):
            tracker.delete(entry.id)

        assert tracker.store.get(entry.id) is not None


class TestAutoSync:

    @pytest.mark.asyncio
    async def test_mutation_triggers_drain(self, tracker, remote, media_factory):
        tracker.auto_sync = True

        entry = tracker.add(media_factory(21), WATCHING, progress=1)
        for _ in range(5):
            await asyncio.sleep(0)

        assert tracker.engine.pending_operations() == []
        assert tracker.store.get(entry.id).dirty is False
        assert remote.entries[21].progress == 1

    def test_no_event_loop_keeps_operation_queued(self, tracker, media_factory):
        tracker.auto_sync = True

        tracker.add(media_factory(21), WATCHING)

        assert len(queued(tracker)) == 1


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_does_not_touch_library(self, tracker, remote, remote_factory):
        remote.entries[1] = remote_factory(1)

        results = await tracker.search("anime")

        assert [media.id for media in results] == [1]
        assert tracker.library() == []


class TestFromConfig:

    @pytest.mark.asyncio
    async def test_wires_components(self, temp_dir):
        path = temp_dir / "config.yaml"
        path.write_text(f'storage:\n  directory: "{temp_dir}"\nsync:\n  auto_sync: false\n', encoding="utf-8")

        tracker = Tracker.from_config(load_config(path), token_provider=lambda: None)
        try:
            assert tracker.auto_sync is False
            assert tracker.store is tracker.engine.store
            assert tracker.engine.events is tracker.events
            assert (temp_dir / "anitrack.db").exists()
        finally:
            await tracker.close()
