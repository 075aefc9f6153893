from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import PlacementRejectedError, ResourceNotFoundError, StaleSnapshotError
from app.models.subject import Subject
from app.models.timetable_entry import TimetableEntry
from app.models.timetable_revision import TimetableRevision
from app.models.user import User
from app.schemas.placement import (
    Placement,
    PlacementCommitOut,
    PlacementDecision,
    PlacementOut,
    SubjectRule,
)
from app.services.audit import log_activity
from app.services.placement_engine import SubjectCatalog, resolve

logger = logging.getLogger(__name__)


class _StaleRevision(Exception):
    pass


@dataclass(frozen=True)
class PlacementSnapshot:
    entries: tuple[Placement, ...]
    revision: int


def list_placements(
    db: Session,
    school_id: str,
    term_id: str,
    academic_class_id: str | None = None,
) -> list[TimetableEntry]:
    query = select(TimetableEntry).where(
        TimetableEntry.school_id == school_id,
        TimetableEntry.term_id == term_id,
    )
    if academic_class_id is not None:
        query = query.where(TimetableEntry.academic_class_id == academic_class_id)
    query = query.order_by(TimetableEntry.created_at, TimetableEntry.id)
    return list(db.execute(query).scalars())


def load_snapshot(db: Session, school_id: str, term_id: str) -> PlacementSnapshot:
    revision = db.get(TimetableRevision, (school_id, term_id), populate_existing=True)
    entries = tuple(Placement.model_validate(row) for row in list_placements(db, school_id, term_id))
    return PlacementSnapshot(entries=entries, revision=revision.version if revision is not None else 0)


def load_subject_catalog(db: Session, subject_ids: Iterable[str]) -> SubjectCatalog:
    ids = set(subject_ids)
    if not ids:
        return SubjectCatalog()
    rows = db.execute(select(Subject).where(Subject.id.in_(ids))).scalars()
    return SubjectCatalog(SubjectRule.model_validate(row) for row in rows)


def _decide(db: Session, candidate: Placement) -> tuple[PlacementSnapshot, PlacementDecision]:
    snapshot = load_snapshot(db, candidate.school_id, candidate.term_id)
    if candidate.id is not None and all(entry.id != candidate.id for entry in snapshot.entries):
        raise ResourceNotFoundError("Timetable entry", candidate.id)
    catalog = load_subject_catalog(
        db, {candidate.subject_id, *(entry.subject_id for entry in snapshot.entries)}
    )
    return snapshot, resolve(snapshot.entries, candidate, catalog)


def _bump_revision(db: Session, school_id: str, term_id: str, expected: int) -> int:
    if expected == 0:
        try:
            db.execute(insert(TimetableRevision).values(school_id=school_id, term_id=term_id, version=1))
        except IntegrityError as exc:
            raise _StaleRevision() from exc
        return 1

    result = db.execute(
        update(TimetableRevision)
        .where(
            TimetableRevision.school_id == school_id,
            TimetableRevision.term_id == term_id,
            TimetableRevision.version == expected,
        )
        .values(version=expected + 1)
    )
    if result.rowcount != 1:
        raise _StaleRevision()
    return expected + 1


def _touch_revision(db: Session, school_id: str, term_id: str) -> int:
    revision = db.get(TimetableRevision, (school_id, term_id), populate_existing=True)
    if revision is None:
        revision = TimetableRevision(school_id=school_id, term_id=term_id, version=0)
        db.add(revision)
    revision.version += 1
    return revision.version


def _apply_decision(
    db: Session,
    candidate: Placement,
    decision: PlacementDecision,
    snapshot: PlacementSnapshot,
    actor: User | None,
) -> tuple[TimetableEntry, int]:
    evicted = decision.entries_to_delete
    if evicted:
        result = db.execute(
            delete(TimetableEntry).where(
                TimetableEntry.id.in_(evicted),
                TimetableEntry.school_id == candidate.school_id,
                TimetableEntry.term_id == candidate.term_id,
            )
        )
        if result.rowcount != len(evicted):
            raise _StaleRevision()

    if candidate.id is not None:
        result = db.execute(delete(TimetableEntry).where(TimetableEntry.id == candidate.id))
        if result.rowcount != 1:
            raise _StaleRevision()

    entry_id = candidate.id or str(uuid.uuid4())
    row = TimetableEntry(
        **candidate.model_dump(exclude={"id"}),
        id=entry_id,
        created_by_id=actor.id if actor is not None else None,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError as exc:
        raise _StaleRevision() from exc

    version = _bump_revision(db, candidate.school_id, candidate.term_id, snapshot.revision)
    log_activity(
        db,
        user=actor,
        action="timetable.entry.admitted",
        entity_type="timetable_entry",
        entity_id=entry_id,
        details={
            "evicted_ids": list(evicted),
            "replaced": candidate.id is not None,
            "revision": version,
        },
    )
    return row, version


def preview_placement(db: Session, candidate: Placement) -> PlacementDecision:
    _, decision = _decide(db, candidate)
    return decision


def admit_placement(
    db: Session,
    candidate: Placement,
    *,
    actor: User | None = None,
    max_attempts: int | None = None,
) -> PlacementCommitOut:
    """Resolve ``candidate`` against the stored timetable and commit the outcome.

    Evictions, the replacement of the candidate's previous row and the insert
    happen in one transaction guarded by the school/term revision. If another
    writer commits between our snapshot and our commit, the transaction is
    rolled back and the decision is recomputed from a fresh snapshot.
    """
    attempts = max_attempts or get_settings().placement_commit_max_attempts

    for attempt in range(1, attempts + 1):
        snapshot, decision = _decide(db, candidate)
        if decision.error is not None:
            db.rollback()
            logger.info(
                "Rejected placement for class %s (%s): %s",
                candidate.academic_class_id,
                decision.error.kind.value,
                decision.error.message,
            )
            raise PlacementRejectedError(decision.error.kind.value, decision.error.message)

        try:
            row, version = _apply_decision(db, candidate, decision, snapshot, actor)
        except _StaleRevision:
            db.rollback()
            logger.warning(
                "Timetable %s/%s changed during placement, retrying (attempt %d/%d)",
                candidate.school_id,
                candidate.term_id,
                attempt,
                attempts,
            )
            continue

        db.commit()
        db.refresh(row)
        if decision.entries_to_delete:
            logger.info(
                "Admitted placement %s, evicted %s",
                row.id,
                ", ".join(decision.entries_to_delete),
            )
        else:
            logger.info("Admitted placement %s", row.id)
        return PlacementCommitOut(
            placement=PlacementOut.model_validate(row),
            evicted_ids=list(decision.entries_to_delete),
            revision=version,
        )

    logger.error(
        "Giving up on placement for %s/%s after %d attempt(s)",
        candidate.school_id,
        candidate.term_id,
        attempts,
    )
    raise StaleSnapshotError(attempts)


def remove_placement(db: Session, placement_id: str, *, actor: User | None = None) -> int:
    row = db.get(TimetableEntry, placement_id)
    if row is None:
        raise ResourceNotFoundError("Timetable entry", placement_id)

    school_id, term_id = row.school_id, row.term_id
    db.delete(row)
    version = _touch_revision(db, school_id, term_id)
    log_activity(
        db,
        user=actor,
        action="timetable.entry.removed",
        entity_type="timetable_entry",
        entity_id=placement_id,
        details={"revision": version},
    )
    db.commit()
    logger.info("Removed placement %s", placement_id)
    return version
