import pytest
from sqlalchemy import select

from app.core.exceptions import PlacementRejectedError, ResourceNotFoundError, StaleSnapshotError
from app.models.activity_log import ActivityLog
from app.models.subject import Subject
from app.models.timetable_entry import TimetableEntry
from app.models.timetable_revision import TimetableRevision
from app.schemas.placement import ConflictKind, Placement
from app.services import placement_service
from app.services.placement_service import (
    PlacementSnapshot,
    admit_placement,
    load_snapshot,
    preview_placement,
    remove_placement,
)


@pytest.fixture
def subjects(db):
    rows = {
        "math": Subject(id="math", name="Math", priority=1),
        "physics": Subject(id="physics", name="Physics", priority=3),
        "art": Subject(id="art", name="Art", priority=1, can_co_run=True),
        "music": Subject(id="music", name="Music", priority=1, can_co_run=True),
        "lab": Subject(id="lab", name="Lab Science", priority=2, is_solo=True),
    }
    db.add_all(rows.values())
    db.commit()
    return rows


def candidate(**overrides):
    values = {
        "school_id": "school-1",
        "term_id": "term-1",
        "day_of_week": "Monday",
        "period_id": "p1",
        "academic_class_id": "class-10",
        "subject_id": "math",
        "teacher_id": "teacher-1",
    }
    values.update(overrides)
    return Placement(**values)


def stored_ids(db):
    db.expire_all()
    return sorted(db.execute(select(TimetableEntry.id)).scalars())


def test_admit_into_empty_timetable_creates_revision(db, subjects):
    result = admit_placement(db, candidate())

    assert result.evicted_ids == []
    assert result.revision == 1
    assert stored_ids(db) == [result.placement.id]
    assert db.get(TimetableRevision, ("school-1", "term-1")).version == 1


def test_higher_priority_admission_evicts_incumbent(db, subjects):
    first = admit_placement(db, candidate())
    second = admit_placement(db, candidate(subject_id="physics", teacher_id="teacher-2"))

    assert second.evicted_ids == [first.placement.id]
    assert second.revision == 2
    assert stored_ids(db) == [second.placement.id]


def test_rejection_leaves_the_timetable_untouched(db, subjects):
    first = admit_placement(db, candidate(subject_id="lab"))

    with pytest.raises(PlacementRejectedError) as excinfo:
        admit_placement(db, candidate(subject_id="art", teacher_id="teacher-2"))

    assert excinfo.value.kind == ConflictKind.solo.value
    assert excinfo.value.status_code == 409
    assert stored_ids(db) == [first.placement.id]
    assert db.get(TimetableRevision, ("school-1", "term-1")).version == 1


def test_unknown_subject_is_rejected_as_validation_error(db, subjects):
    with pytest.raises(PlacementRejectedError) as excinfo:
        admit_placement(db, candidate(subject_id="latin"))

    assert excinfo.value.status_code == 422
    assert excinfo.value.details == {"kind": "ValidationError"}


def test_co_run_admissions_accumulate(db, subjects):
    admit_placement(db, candidate(subject_id="art", teacher_id="t1"))
    admit_placement(db, candidate(subject_id="music", teacher_id="t2"))
    third = admit_placement(db, candidate(subject_id="art", teacher_id="t3"))

    assert third.evicted_ids == []
    assert len(stored_ids(db)) == 3


def test_resubmitting_an_entry_replaces_it(db, subjects):
    first = admit_placement(db, candidate(room_id="7"))
    moved = admit_placement(db, candidate(id=first.placement.id, room_id="8", period_id="p2"))

    assert moved.placement.id == first.placement.id
    assert moved.placement.period_id == "p2"
    assert stored_ids(db) == [first.placement.id]


def test_resubmitting_an_unknown_entry_is_not_found(db, subjects):
    with pytest.raises(ResourceNotFoundError):
        admit_placement(db, candidate(id="missing"))


def test_preview_never_writes(db, subjects):
    first = admit_placement(db, candidate())

    decision = preview_placement(db, candidate(subject_id="physics", teacher_id="teacher-2"))

    assert decision.entries_to_delete == [first.placement.id]
    assert stored_ids(db) == [first.placement.id]


def test_stale_snapshot_is_resolved_again(db, subjects, monkeypatch):
    admit_placement(db, candidate(academic_class_id="class-11", teacher_id="t9"))
    real_load_snapshot = load_snapshot
    calls = []

    def stale_once(session, school_id, term_id):
        snapshot = real_load_snapshot(session, school_id, term_id)
        calls.append(snapshot.revision)
        if len(calls) == 1:
            return PlacementSnapshot(entries=snapshot.entries, revision=snapshot.revision - 1)
        return snapshot

    monkeypatch.setattr(placement_service, "load_snapshot", stale_once)

    result = admit_placement(db, candidate())

    assert calls == [1, 1]
    assert result.revision == 2
    assert len(stored_ids(db)) == 2


def test_persistently_stale_snapshot_gives_up(db, subjects, monkeypatch):
    admit_placement(db, candidate(academic_class_id="class-11", teacher_id="t9"))
    real_load_snapshot = load_snapshot

    def always_stale(session, school_id, term_id):
        snapshot = real_load_snapshot(session, school_id, term_id)
        return PlacementSnapshot(entries=snapshot.entries, revision=snapshot.revision + 5)

    monkeypatch.setattr(placement_service, "load_snapshot", always_stale)

    with pytest.raises(StaleSnapshotError) as excinfo:
        admit_placement(db, candidate(), max_attempts=2)

    assert excinfo.value.details["attempts"] == 2
    assert len(stored_ids(db)) == 1


def test_remove_placement_bumps_revision_and_audits(db, subjects):
    first = admit_placement(db, candidate())

    revision = remove_placement(db, first.placement.id)

    assert revision == 2
    assert stored_ids(db) == []
    actions = sorted(db.execute(select(ActivityLog.action)).scalars())
    assert actions == ["timetable.entry.admitted", "timetable.entry.removed"]


def test_remove_missing_placement(db, subjects):
    with pytest.raises(ResourceNotFoundError):
        remove_placement(db, "missing")
