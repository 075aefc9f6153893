from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.subject import Subject
from app.models.timetable_entry import TimetableEntry
from app.models.user import User, UserRole
from app.schemas.subject import SubjectCreate, SubjectOut, SubjectUpdate
from app.services.audit import log_activity

router = APIRouter()


@router.get("/", response_model=list[SubjectOut])
def list_subjects(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[SubjectOut]:
    return list(db.execute(select(Subject).order_by(Subject.name)).scalars())


@router.post("/", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = Subject(**payload.model_dump())
    db.add(subject)
    db.flush()
    log_activity(
        db,
        user=current_user,
        action="subject.created",
        entity_type="subject",
        entity_id=subject.id,
        details=payload.model_dump(),
    )
    db.commit()
    db.refresh(subject)
    return subject


@router.put("/{subject_id}", response_model=SubjectOut)
def update_subject(
    subject_id: str,
    payload: SubjectUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")

    # Existing placements keep their slots; new rules apply from the next admission on.
    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(subject, key, value)
    if data:
        log_activity(
            db,
            user=current_user,
            action="subject.updated",
            entity_type="subject",
            entity_id=subject.id,
            details=data,
        )
    db.commit()
    db.refresh(subject)
    return subject


@router.delete("/{subject_id}")
def delete_subject(
    subject_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> dict:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    in_use = db.execute(
        select(TimetableEntry.id).where(TimetableEntry.subject_id == subject_id).limit(1)
    ).scalar_one_or_none()
    if in_use is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject is still scheduled in the timetable")
    log_activity(db, user=current_user, action="subject.deleted", entity_type="subject", entity_id=subject.id)
    db.delete(subject)
    db.commit()
    return {"success": True}
