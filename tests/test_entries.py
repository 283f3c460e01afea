from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

import pytest

from memory_lane.config import AppConfig
from memory_lane.services.entries import (
    EntryConflictError,
    EntryPatch,
    EntryRepository,
    EntryStatus,
    entry_status,
)


def _place(repository: EntryRepository, path: str, position: int) -> str:
    entry = repository.create(path)
    repository.update(entry.id, EntryPatch(position=position))
    return entry.id


@pytest.mark.parametrize(
    ("disabled", "position", "expected"),
    [
        (True, None, EntryStatus.DISABLED),
        (True, 3, EntryStatus.DISABLED),
        (False, None, EntryStatus.STAGING),
        (False, 0, EntryStatus.ACTIVE),
        (False, 7, EntryStatus.ACTIVE),
    ],
)
def test_entry_status_is_derived_from_flags(disabled, position, expected) -> None:
    assert entry_status(disabled, position) is expected


def test_create_returns_staging_entry(repository: EntryRepository, clock) -> None:
    entry = repository.create("/Memories/beach.jpg")

    assert entry.created_at == clock.current
    assert entry.updated_at == entry.created_at

    assert entry.remote_path == "/Memories/beach.jpg"
    assert entry.position is None
    assert entry.disabled is False
    assert entry.has_narration is False
    assert entry.title is None
    assert entry.transcript is None
    assert entry.status is EntryStatus.STAGING
    assert repository.get_entry(entry.id) == entry
    assert repository.get_entry_by_path("/Memories/beach.jpg") == entry


def test_create_rejects_duplicate_path(repository: EntryRepository) -> None:
    repository.create("/Memories/beach.jpg")

    with pytest.raises(EntryConflictError) as excinfo:
        repository.create("/Memories/beach.jpg")

    assert excinfo.value.remote_path == "/Memories/beach.jpg"
    assert len(repository.list_all()) == 1


def test_lookups_return_none_when_missing(repository: EntryRepository) -> None:
    assert repository.get_entry("missing") is None
    assert repository.get_entry_by_path("/Memories/none.jpg") is None


def test_update_only_touches_provided_fields(repository: EntryRepository) -> None:
    entry = repository.create("/Memories/party.mp4")

    titled = repository.update(entry.id, EntryPatch(title="Birthday"))
    assert titled is not None and titled.title == "Birthday"

    transcribed = repository.update(entry.id, EntryPatch(transcript="We sang."))
    assert transcribed is not None
    assert transcribed.title == "Birthday"
    assert transcribed.transcript == "We sang."

    cleared = repository.update(entry.id, EntryPatch(title=None))
    assert cleared is not None
    assert cleared.title is None
    assert cleared.transcript == "We sang."


def test_update_advances_updated_at(repository: EntryRepository) -> None:
    entry = repository.create("/Memories/party.mp4")

    updated = repository.update(entry.id, EntryPatch(has_narration=True))

    assert updated is not None
    assert updated.updated_at > entry.updated_at
    assert updated.created_at == entry.created_at


def test_empty_update_is_a_noop(repository: EntryRepository) -> None:
    entry = repository.create("/Memories/party.mp4")

    result = repository.update(entry.id, EntryPatch())

    assert result == entry


def test_update_missing_entry_returns_none(repository: EntryRepository) -> None:
    assert repository.update("missing", EntryPatch(title="x")) is None
    assert repository.update("missing", EntryPatch()) is None


def test_update_rejects_negative_position(repository: EntryRepository) -> None:
    entry = repository.create("/Memories/party.mp4")

    with pytest.raises(ValueError):
        repository.update(entry.id, EntryPatch(position=-1))


def test_disabled_and_position_are_independent(repository: EntryRepository) -> None:
    entry_id = _place(repository, "/Memories/a.jpg", 4)

    disabled = repository.update(entry_id, EntryPatch(disabled=True))
    assert disabled is not None
    assert disabled.position == 4
    assert disabled.status is EntryStatus.DISABLED

    moved = repository.update(entry_id, EntryPatch(position=9))
    assert moved is not None
    assert moved.disabled is True
    assert moved.position == 9


def test_list_queries_follow_their_orderings(repository: EntryRepository) -> None:
    second = _place(repository, "/Memories/second.jpg", 5)
    first = _place(repository, "/Memories/first.jpg", 1)
    old_staging = repository.create("/Memories/old.jpg").id
    new_staging = repository.create("/Memories/new.jpg").id
    disabled_early = repository.create("/Memories/gone-early.jpg").id
    disabled_late = repository.create("/Memories/gone-late.jpg").id
    repository.update(disabled_early, EntryPatch(disabled=True))
    repository.update(disabled_late, EntryPatch(disabled=True))

    assert [e.id for e in repository.list_active()] == [first, second]
    assert [e.id for e in repository.list_staging()] == [new_staging, old_staging]
    assert [e.id for e in repository.list_disabled()] == [disabled_late, disabled_early]
    assert [e.id for e in repository.list_all()] == [
        first,
        second,
        new_staging,
        old_staging,
        disabled_late,
        disabled_early,
    ]


def test_reorder_assigns_index_positions(repository: EntryRepository) -> None:
    a = _place(repository, "/Memories/a.jpg", 0)
    b = _place(repository, "/Memories/b.jpg", 1)
    c = repository.create("/Memories/c.jpg").id

    repository.reorder([c, a])

    assert repository.get_entry(c).position == 0
    assert repository.get_entry(a).position == 1
    assert repository.get_entry(b).position == 1


def test_reorder_with_empty_list_is_a_noop(repository: EntryRepository) -> None:
    entry_id = _place(repository, "/Memories/a.jpg", 3)
    before = repository.get_entry(entry_id)

    repository.reorder([])

    assert repository.get_entry(entry_id) == before


def test_reorder_rejects_duplicate_ids(repository: EntryRepository) -> None:
    entry_id = repository.create("/Memories/a.jpg").id

    with pytest.raises(ValueError):
        repository.reorder([entry_id, entry_id])

    assert repository.get_entry(entry_id).position is None


def test_reorder_is_all_or_nothing(repository: EntryRepository, temp_config: AppConfig) -> None:
    a = _place(repository, "/Memories/a.jpg", 10)
    b = _place(repository, "/Memories/b.jpg", 11)
    c = _place(repository, "/Memories/c.jpg", 12)

    connection = sqlite3.connect(temp_config.database_file)
    try:
        connection.execute(
            f"""
            CREATE TRIGGER block_reorder BEFORE UPDATE OF position ON entries
            WHEN NEW.id = '{c}'
            BEGIN
                SELECT RAISE(ABORT, 'reorder blocked');
            END;
            """
        )
        connection.commit()
    finally:
        connection.close()

    with pytest.raises(sqlite3.DatabaseError):
        repository.reorder([a, b, c])

    assert repository.get_entry(a).position == 10
    assert repository.get_entry(b).position == 11
    assert repository.get_entry(c).position == 12


def test_delete_reports_whether_a_row_was_removed(repository: EntryRepository) -> None:
    entry = repository.create("/Memories/a.jpg")

    assert repository.delete(entry.id) is True
    assert repository.get_entry(entry.id) is None
    assert repository.delete(entry.id) is False


def test_next_position(repository: EntryRepository) -> None:
    assert repository.next_position() == 0

    repository.create("/Memories/unplaced.jpg")
    assert repository.next_position() == 0

    for index, position in enumerate((0, 5, 2)):
        _place(repository, f"/Memories/{index}.jpg", position)
    assert repository.next_position() == 6


def test_promoting_staging_entry_appends_it(repository: EntryRepository) -> None:
    _place(repository, "/Memories/a.jpg", 0)
    _place(repository, "/Memories/b.jpg", 3)
    staging = repository.create("/Memories/c.jpg")

    promoted = repository.set_status(staging.id, EntryStatus.ACTIVE)

    assert promoted is not None
    assert promoted.status is EntryStatus.ACTIVE
    assert promoted.position == 4


def test_reactivating_disabled_entry_restores_its_slot(repository: EntryRepository) -> None:
    entry_id = _place(repository, "/Memories/a.jpg", 2)
    _place(repository, "/Memories/b.jpg", 7)

    disabled = repository.set_status(entry_id, EntryStatus.DISABLED)
    assert disabled is not None
    assert disabled.status is EntryStatus.DISABLED
    assert disabled.position == 2

    restored = repository.set_status(entry_id, EntryStatus.ACTIVE)
    assert restored is not None
    assert restored.status is EntryStatus.ACTIVE
    assert restored.position == 2


def test_moving_to_staging_drops_the_slot(repository: EntryRepository) -> None:
    entry_id = _place(repository, "/Memories/a.jpg", 2)
    repository.update(entry_id, EntryPatch(disabled=True))

    staged = repository.set_status(entry_id, EntryStatus.STAGING)

    assert staged is not None
    assert staged.position is None
    assert staged.disabled is False
    assert staged.status is EntryStatus.STAGING


def test_set_status_on_missing_entry(repository: EntryRepository) -> None:
    assert repository.set_status("missing", EntryStatus.ACTIVE) is None


def test_patch_merge_prefers_later_fields() -> None:
    patch = EntryPatch(title="a", disabled=True).merge(EntryPatch(disabled=False, position=None))

    assert patch.changes() == {"title": "a", "position": None, "disabled": False}
    assert EntryPatch().is_empty()


def test_repository_reports_db_events(temp_config: AppConfig) -> None:
    events: List[Dict[str, Any]] = []

    def emitter(event_type: str, action: str, **kwargs: Any) -> None:
        events.append({"type": event_type, "action": action, **kwargs})

    repository = EntryRepository(temp_config, event_emitter=emitter)
    entry = repository.create("/Memories/a.jpg")
    with pytest.raises(EntryConflictError):
        repository.create("/Memories/a.jpg")
    repository.delete(entry.id)

    actions = [event["action"] for event in events]
    assert "create" in actions and "delete" in actions
    assert all(event["type"] == "DB_QUERY" for event in events)
    conflict = [e for e in events if e["action"] == "create"][-1]
    assert conflict["payload"]["status"] == "error"
    assert conflict["payload"]["result"] == "conflict"
