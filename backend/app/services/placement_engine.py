"""Admission decisions for single timetable placements.

Given a candidate placement and a snapshot of the placements already scheduled
for the same school/term, :func:`resolve` decides whether the candidate may be
admitted and which incumbents it evicts. The engine is pure: it performs no
I/O, keeps no state between calls and never mutates its inputs, so applying
the decision atomically is the caller's job (see ``placement_service``).

Stages run in a fixed order and the first failure wins:

1. classify the snapshot into class-slot, room-slot and teacher-slot partitions
2. resolve the class-slot partition (solo, co-run and priority rules)
3. teacher guard
4. location guard
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from app.schemas.placement import (
    ConflictKind,
    Placement,
    PlacementDecision,
    PlacementError,
    SubjectRule,
)

logger = logging.getLogger(__name__)


class PlacementRejected(Exception):
    def __init__(self, kind: ConflictKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def as_error(self) -> PlacementError:
        return PlacementError(kind=self.kind, message=self.message)


class SubjectCatalog:
    """Read-only subject lookup keyed by subject id."""

    def __init__(self, subjects: Mapping[str, SubjectRule] | Iterable[SubjectRule] = ()) -> None:
        if isinstance(subjects, Mapping):
            self._subjects = dict(subjects)
        else:
            self._subjects = {subject.id: subject for subject in subjects}

    def lookup(self, subject_id: str) -> SubjectRule | None:
        return self._subjects.get(subject_id)

    def require(self, subject_id: str) -> SubjectRule:
        subject = self.lookup(subject_id)
        if subject is None:
            raise PlacementRejected(ConflictKind.validation, f"Unknown subject {subject_id}.")
        return subject


@dataclass(frozen=True)
class SlotPartition:
    same_class_slot: tuple[Placement, ...]
    same_room_slot: tuple[Placement, ...]
    same_teacher_slot: tuple[Placement, ...]


def _same_period(candidate: Placement, entry: Placement) -> bool:
    return entry.day_of_week == candidate.day_of_week and entry.period_id == candidate.period_id


def classify_conflicts(candidate: Placement, existing: Iterable[Placement]) -> SlotPartition:
    """Split the snapshot into the partitions the later stages look at.

    The candidate's own row (same id) is never part of any partition, so
    re-submitting a stored placement replaces it instead of colliding with it.
    A snapshot entry from another school or term means the caller forgot to
    scope its query and is rejected as a validation error.
    """
    same_class: list[Placement] = []
    same_room: list[Placement] = []
    same_teacher: list[Placement] = []

    for entry in existing:
        if entry.school_id != candidate.school_id or entry.term_id != candidate.term_id:
            raise PlacementRejected(
                ConflictKind.validation,
                "Existing timetable entries belong to a different school or term than the candidate.",
            )
        if entry.id is None:
            raise PlacementRejected(ConflictKind.validation, "Existing timetable entry is missing an id.")
        if candidate.id is not None and entry.id == candidate.id:
            continue
        if not _same_period(candidate, entry):
            continue

        if entry.academic_class_id == candidate.academic_class_id:
            same_class.append(entry)
        if candidate.room_id is not None and entry.room_id == candidate.room_id:
            same_room.append(entry)
        if entry.teacher_id == candidate.teacher_id:
            same_teacher.append(entry)

    return SlotPartition(
        same_class_slot=tuple(same_class),
        same_room_slot=tuple(same_room),
        same_teacher_slot=tuple(same_teacher),
    )


def resolve_admission(
    candidate: Placement,
    same_class_slot: Iterable[Placement],
    catalog: SubjectCatalog,
) -> list[str]:
    """Apply the solo, co-run and priority rules to one class-slot.

    Returns the ids to evict, in snapshot order and without duplicates.
    Raises :class:`PlacementRejected` on the first rule that refuses the
    candidate; nothing is evicted in that case.
    """
    candidate_subject = catalog.require(candidate.subject_id)
    incumbents = [(entry, catalog.require(entry.subject_id)) for entry in same_class_slot]

    for _entry, subject in incumbents:
        if subject.is_solo:
            raise PlacementRejected(
                ConflictKind.solo,
                f"{subject.name} is marked as solo and already occupies this slot.",
            )

    if candidate_subject.is_solo and incumbents:
        raise PlacementRejected(
            ConflictKind.solo,
            f"{candidate_subject.name} is a solo subject and cannot be placed into an occupied slot.",
        )

    to_evict: list[str] = []
    for entry, subject in incumbents:
        if candidate_subject.can_co_run and subject.can_co_run:
            continue
        # Equal priority keeps the incumbent.
        if candidate_subject.priority <= subject.priority:
            raise PlacementRejected(
                ConflictKind.priority,
                f"{subject.name} already occupies this slot with equal or higher priority.",
            )
        if entry.id not in to_evict:
            to_evict.append(entry.id)
    return to_evict


def check_teacher(candidate: Placement, same_teacher_slot: Iterable[Placement]) -> PlacementError | None:
    for entry in same_teacher_slot:
        if entry.academic_class_id != candidate.academic_class_id:
            return PlacementError(
                kind=ConflictKind.teacher,
                message="Teacher is already assigned to another class this period.",
            )
    return None


def check_location(candidate: Placement, same_room_slot: Iterable[Placement]) -> PlacementError | None:
    if candidate.room_id is None:
        return None
    for entry in same_room_slot:
        if entry.id != candidate.id:
            return PlacementError(
                kind=ConflictKind.location,
                message=f"Room {candidate.room_id} is already booked at this time.",
            )
    return None


def resolve(
    existing_entries: Iterable[Placement],
    candidate_entry: Placement,
    subjects: SubjectCatalog | Mapping[str, SubjectRule] | Iterable[SubjectRule],
) -> PlacementDecision:
    """Decide whether ``candidate_entry`` may join the timetable.

    ``existing_entries`` must already be scoped to the candidate's school and
    term. The returned decision either carries exactly one error and no
    evictions, or no error and the ids of the incumbents to delete before the
    candidate is inserted.
    """
    catalog = subjects if isinstance(subjects, SubjectCatalog) else SubjectCatalog(subjects)

    try:
        partition = classify_conflicts(candidate_entry, existing_entries)
        to_evict = resolve_admission(candidate_entry, partition.same_class_slot, catalog)
    except PlacementRejected as exc:
        logger.debug("Placement rejected (%s): %s", exc.kind.value, exc.message)
        return PlacementDecision(error=exc.as_error())

    error = check_teacher(candidate_entry, partition.same_teacher_slot) or check_location(
        candidate_entry, partition.same_room_slot
    )
    if error is not None:
        logger.debug("Placement rejected (%s): %s", error.kind.value, error.message)
        return PlacementDecision(error=error)

    logger.debug(
        "Placement admitted for class %s on %s period %s, evicting %d entr(y/ies)",
        candidate_entry.academic_class_id,
        candidate_entry.day_of_week.value,
        candidate_entry.period_id,
        len(to_evict),
    )
    return PlacementDecision(entries_to_delete=to_evict)


def can_add_co_running_subject(
    existing_entries: Iterable[Placement],
    candidate_entry: Placement,
    subjects: SubjectCatalog | Mapping[str, SubjectRule] | Iterable[SubjectRule],
) -> bool:
    return resolve(existing_entries, candidate_entry, subjects).admitted
