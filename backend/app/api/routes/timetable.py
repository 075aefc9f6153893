import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.user import User, UserRole
from app.schemas.placement import Placement, PlacementCommitOut, PlacementOut, PlacementPreviewOut
from app.services.placement_service import (
    admit_placement,
    list_placements,
    preview_placement,
    remove_placement,
)
from app.services.timetable_access import resolve_timetable_access

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/entries", response_model=list[PlacementOut])
def get_timetable_entries(
    school_id: str = Query(min_length=1, max_length=36),
    term_id: str = Query(min_length=1, max_length=36),
    academic_class_id: str | None = Query(default=None, max_length=36),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PlacementOut]:
    access = resolve_timetable_access(current_user.role, current_user.academic_class_id)
    if access.mode == "student":
        if access.student_view_class_id is None:
            return []
        academic_class_id = access.student_view_class_id
    return list_placements(db, school_id, term_id, academic_class_id)


@router.post("/entries/preview", response_model=PlacementPreviewOut)
def preview_timetable_entry(
    payload: Placement,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> PlacementPreviewOut:
    decision = preview_placement(db, payload)
    return PlacementPreviewOut(
        admitted=decision.admitted,
        error=decision.error,
        entries_to_delete=decision.entries_to_delete,
    )


@router.post("/entries", response_model=PlacementCommitOut, status_code=status.HTTP_201_CREATED)
def create_timetable_entry(
    payload: Placement,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> PlacementCommitOut:
    logger.debug("User %s submitted placement for class %s", current_user.id, payload.academic_class_id)
    return admit_placement(db, payload, actor=current_user)


@router.delete("/entries/{entry_id}")
def delete_timetable_entry(
    entry_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.scheduler)),
    db: Session = Depends(get_db),
) -> dict:
    revision = remove_placement(db, entry_id, actor=current_user)
    return {"success": True, "revision": revision}
