from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.timetable_entry import DayOfWeek


class ConflictKind(str, Enum):
    validation = "ValidationError"
    solo = "SoloConflict"
    priority = "PriorityConflict"
    teacher = "TeacherConflict"
    location = "LocationConflict"


class SubjectRule(BaseModel):
    """The scheduling attributes of a subject that the placement engine reads."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(min_length=1)
    name: str = "Subject"
    priority: int = Field(default=1, ge=0)
    can_co_run: bool = False
    is_solo: bool = False


class Placement(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str | None = None
    school_id: str = Field(min_length=1, max_length=36)
    term_id: str = Field(min_length=1, max_length=36)
    day_of_week: DayOfWeek
    period_id: str = Field(min_length=1, max_length=36)
    academic_class_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    teacher_id: str = Field(min_length=1, max_length=36)
    room_id: str | None = Field(default=None, max_length=36)

    @field_validator("id", "room_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PlacementError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ConflictKind
    message: str


class PlacementDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    error: PlacementError | None = None
    entries_to_delete: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def rejected_decisions_evict_nothing(self) -> "PlacementDecision":
        if self.error is not None and self.entries_to_delete:
            raise ValueError("a rejected decision cannot carry evictions")
        return self

    @property
    def admitted(self) -> bool:
        return self.error is None

    @classmethod
    def reject(cls, kind: ConflictKind, message: str) -> "PlacementDecision":
        return cls(error=PlacementError(kind=kind, message=message))


class PlacementOut(Placement):
    id: str
    created_by_id: str | None = None


class PlacementPreviewOut(BaseModel):
    admitted: bool
    error: PlacementError | None = None
    entries_to_delete: list[str]


class PlacementCommitOut(BaseModel):
    placement: PlacementOut
    evicted_ids: list[str]
    revision: int
