"""Test local library CRUD and per-status ordering"""

import random

import pytest

from anitrack.anilist.models import ListStatus
from anitrack.core.events import EntryChanged
from anitrack.core.exceptions import (
    DuplicateEntryError,
    InvalidIndexError,
    NotFoundError,
    ValidationError,
)

WATCHING = ListStatus.WATCHING
COMPLETED = ListStatus.COMPLETED


def positions(store, status):
    return [(entry.media_id, entry.sort_position) for entry in store.fetch_by_status(status)]


def assert_gap_free(store):
    for status in ListStatus:
        entries = store.fetch_by_status(status)
        assert [entry.sort_position for entry in entries] == list(range(len(entries)))


class TestAdd:

    def test_appends_to_end_of_list(self, store, media_factory):
        first = store.add(media_factory(1), WATCHING)
        second = store.add(media_factory(2), WATCHING)

        assert (first.sort_position, second.sort_position) == (0, 1)
        assert second.dirty is True
        assert second.media.title.preferred == "Show 2"
        assert second.last_modified.tzinfo is not None

    def test_duplicate_media(self, store, media_factory):
        store.add(media_factory(1), WATCHING)

        with pytest.raises(DuplicateEntryError) as exc_info:
            store.add(media_factory(1), COMPLETED)

        assert exc_info.value.media_id == 1
        assert len(store.fetch_all()) == 1

    def test_progress_cannot_exceed_episodes(self, store, media_factory):
        with pytest.raises(ValidationError):
            store.add(media_factory(1, episodes=12), WATCHING, progress=13)

    def test_unknown_episode_count_allows_any_progress(self, store, media_factory):
        entry = store.add(media_factory(1, episodes=None), WATCHING, progress=1100)

        assert entry.progress == 1100

    @pytest.mark.parametrize("score", [-1, 100.5])
    def test_score_range(self, store, media_factory, score):
        with pytest.raises(ValidationError):
            store.add(media_factory(1), WATCHING, score=score)

    def test_publishes_event(self, store, media_factory, events):
        entry = store.add(media_factory(1), WATCHING)

        assert events.received == [EntryChanged(entry_id=entry.id, media_id=1, change="created")]


class TestUpdates:

    def test_update_progress(self, store, database, media_factory):
        entry = store.add(media_factory(1), WATCHING)
        database.update_entry(entry.id, dirty=False)

        updated = store.update_progress(entry.id, 5)

        assert updated.progress == 5
        assert updated.dirty is True
        assert updated.last_modified >= entry.last_modified

    def test_negative_progress(self, store, media_factory):
        entry = store.add(media_factory(1), WATCHING)

        with pytest.raises(ValidationError):
            store.update_progress(entry.id, -1)

    def test_update_score_and_clear(self, store, media_factory):
        entry = store.add(media_factory(1), WATCHING)

        assert store.update_score(entry.id, 85).score == 85.0
        assert store.update_score(entry.id, None).score is None

    def test_update_status_does_not_reposition(self, store, media_factory):
        entry = store.add(media_factory(1), WATCHING)

        updated = store.update_status(entry.id, COMPLETED)

        assert updated.status is COMPLETED
        assert updated.sort_position == 0

    @pytest.mark.parametrize("method, arg", [
        ("update_progress", 1),
        ("update_status", COMPLETED),
        ("update_score", 50),
        ("move_between_lists", COMPLETED),
    ])
    def test_missing_entry(self, store, method, arg):
        with pytest.raises(NotFoundError):
            getattr(store, method)(404, arg)

    def test_delete_missing_entry(self, store):
        with pytest.raises(NotFoundError):
            store.delete(404)


class TestMoveBetweenLists:

    def test_move_example(self, store, media_factory):
        # watching = [X, A, Y], completed = [P, Q]
        x, a, y = (store.add(media_factory(i), WATCHING) for i in (10, 11, 12))
        for media_id in (20, 21):
            store.add(media_factory(media_id), COMPLETED)

        moved = store.move_between_lists(a.id, COMPLETED)

        assert moved.status is COMPLETED
        assert positions(store, WATCHING) == [(10, 0), (12, 1)]
        assert positions(store, COMPLETED) == [(20, 0), (21, 1), (11, 2)]

    def test_same_status_only_marks_dirty(self, store, database, media_factory):
        store.add(media_factory(1), WATCHING)
        entry = store.add(media_factory(2), WATCHING)
        database.update_entry(entry.id, dirty=False)

        moved = store.move_between_lists(entry.id, WATCHING)

        assert moved.dirty is True
        assert positions(store, WATCHING) == [(1, 0), (2, 1)]


class TestReorder:

    @pytest.fixture
    def watching(self, store, media_factory):
        # A, B, C, D
        return [store.add(media_factory(i), WATCHING) for i in (1, 2, 3, 4)]

    def test_reorder_example(self, store, watching):
        result = store.reorder(WATCHING, from_index=0, to_index=2)

        assert [(e.media_id, e.sort_position) for e in result] == [(2, 0), (3, 1), (1, 2), (4, 3)]

    def test_reorder_backwards(self, store, watching):
        store.reorder(WATCHING, from_index=3, to_index=0)

        assert positions(store, WATCHING) == [(4, 0), (1, 1), (2, 2), (3, 3)]

    def test_reorder_does_not_mark_dirty(self, store, database, watching):
        for entry in watching:
            database.update_entry(entry.id, dirty=False)

        store.reorder(WATCHING, from_index=0, to_index=3)

        assert all(not entry.dirty for entry in store.fetch_by_status(WATCHING))

    @pytest.mark.parametrize("from_index, to_index", [(4, 0), (0, 4), (-1, 0)])
    def test_invalid_index(self, store, watching, from_index, to_index):
        with pytest.raises(InvalidIndexError) as exc_info:
            store.reorder(WATCHING, from_index, to_index)

        assert exc_info.value.count == 4
        assert positions(store, WATCHING) == [(1, 0), (2, 1), (3, 2), (4, 3)]

    def test_empty_list(self, store):
        with pytest.raises(InvalidIndexError):
            store.reorder(COMPLETED, 0, 0)


class TestDelete:

    def test_delete_recompacts(self, store, media_factory):
        entries = [store.add(media_factory(i), WATCHING) for i in (1, 2, 3)]

        deleted = store.delete(entries[0].id)

        assert deleted.media_id == 1
        assert store.get(entries[0].id) is None
        assert positions(store, WATCHING) == [(2, 0), (3, 1)]

    def test_delete_then_add_again(self, store, media_factory):
        entry = store.add(media_factory(1), WATCHING)
        store.delete(entry.id)

        again = store.add(media_factory(1), COMPLETED)

        assert again.status is COMPLETED
        assert store.get_by_media(1).id == again.id


class TestOrderingInvariant:

    def test_random_operations_keep_positions_gap_free(self, store, media_factory):
        rng = random.Random(1234)
        statuses = list(ListStatus)
        next_media = 1

        for _ in range(200):
            entries = store.fetch_all()
            action = rng.choice(["add", "add", "move", "reorder", "delete"])

            if action == "add" or not entries:
                store.add(media_factory(next_media), rng.choice(statuses))
                next_media += 1
            elif action == "move":
                store.move_between_lists(rng.choice(entries).id, rng.choice(statuses))
            elif action == "delete":
                store.delete(rng.choice(entries).id)
            else:
                status = rng.choice(entries).status
                count = len(store.fetch_by_status(status))
                store.reorder(status, rng.randrange(count), rng.randrange(count))

            assert_gap_free(store)

        media_ids = [entry.media_id for entry in store.fetch_all()]
        assert len(media_ids) == len(set(media_ids))


class TestFetchAll:

    def test_ordered_by_status_then_position(self, store, media_factory):
        store.add(media_factory(1), COMPLETED)
        store.add(media_factory(2), WATCHING)
        store.add(media_factory(3), ListStatus.PLAN_TO_WATCH)
        store.add(media_factory(4), WATCHING)

        assert [e.media_id for e in store.fetch_all()] == [2, 4, 1, 3]
