from pydantic import BaseModel, Field


class SubjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    priority: int = Field(default=1, ge=0, le=1000)
    can_co_run: bool = False
    is_solo: bool = False


class SubjectCreate(SubjectBase):
    pass


class SubjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    priority: int | None = Field(default=None, ge=0, le=1000)
    can_co_run: bool | None = None
    is_solo: bool | None = None


class SubjectOut(SubjectBase):
    id: str

    model_config = {"from_attributes": True}
