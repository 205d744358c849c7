import uuid
from datetime import datetime

from pydantic import BaseModel, field_validator


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class VideoIn(BaseModel):
    title: str
    url: str | None = None
    duration: int = 0
    description: str | None = None
    order: int | None = None
    is_demo: bool = False


class AssignmentIn(BaseModel):
    title: str
    instructions: str
    description: str | None = None
    due_date: datetime | None = None
    order: int | None = None

    @field_validator("due_date", "description", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)


class ModuleIn(BaseModel):
    title: str
    description: str | None = None
    order: int | None = None
    videos: list[VideoIn] = []
    assignments: list[AssignmentIn] = []


class CourseIn(BaseModel):
    name: str
    description: str
    price: float
    category: str
    playlist_name: str
    prerequisites: list | None = None
    syllabus: list | None = None
    motive: str | None = None
    modules: list[ModuleIn] = []


class VideoOut(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    module_id: uuid.UUID
    title: str
    description: str | None = None
    url: str | None = None
    public_id: str | None = None
    duration: int
    order_index: int
    is_demo: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class AssignmentOut(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    module_id: uuid.UUID
    title: str
    description: str | None = None
    instructions: str
    due_date: datetime | None = None
    order_index: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class ModuleOut(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    description: str | None = None
    order_index: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class CourseOut(BaseModel):
    id: uuid.UUID
    tutor_id: uuid.UUID
    name: str
    description: str
    price: float
    category: str
    playlist_name: str
    status: str
    prerequisites: list | None = None
    syllabus: list | None = None
    motive: str | None = None
    total_videos: int
    total_duration: int
    total_assignments: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class EnrollmentOut(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    student_id: uuid.UUID
    status: str
    progress: int = 0
    enrolled_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class SubmissionOut(BaseModel):
    id: uuid.UUID
    assignment_id: uuid.UUID
    student_id: uuid.UUID
    submission_text: str | None = None
    file_url: str | None = None
    status: str
    grade: float | None = None
    feedback: str | None = None
    submitted_at: datetime | None = None
    graded_at: datetime | None = None

    class Config:
        from_attributes = True


class GradeIn(BaseModel):
    grade: float | None = None
    feedback: str | None = None


class CertificateOut(BaseModel):
    id: uuid.UUID
    enrollment_id: uuid.UUID
    student_id: uuid.UUID
    course_id: uuid.UUID
    certificate_number: str
    issued_at: datetime | None = None

    class Config:
        from_attributes = True


def dump(schema: type[BaseModel], row) -> dict:
    return schema.model_validate(row).model_dump(mode="json")
