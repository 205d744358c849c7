import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from coursehub.models.assignment import Assignment
from coursehub.models.course import Course
from coursehub.models.module import CourseModule
from coursehub.models.video import Video
from coursehub.schemas.course import AssignmentIn, AssignmentOut, ModuleIn, ModuleOut, VideoIn, VideoOut, dump


def next_order_index(db: DbSession, column, *conditions) -> int:
    current = db.execute(select(func.max(column)).where(*conditions)).scalar_one_or_none()
    return int(current or 0) + 1


def new_video(course: Course, module: CourseModule, payload: VideoIn, order_index: int) -> Video:
    return Video(
        course_id=course.id,
        module_id=module.id,
        title=payload.title.strip(),
        description=(payload.description or "").strip(),
        url=payload.url.strip() if payload.url else None,
        duration=int(payload.duration or 0),
        order_index=payload.order or order_index,
        is_demo=payload.is_demo,
    )


def new_assignment(course: Course, module: CourseModule, payload: AssignmentIn, order_index: int) -> Assignment:
    return Assignment(
        course_id=course.id,
        module_id=module.id,
        title=payload.title.strip(),
        description=(payload.description or "").strip(),
        instructions=payload.instructions.strip(),
        due_date=payload.due_date.replace(tzinfo=None) if payload.due_date else None,
        order_index=payload.order or order_index,
    )


def add_module_tree(db: DbSession, course: Course, payload: ModuleIn, order_index: int) -> CourseModule:
    """Add a module with its nested videos and assignments (no commit)."""
    module = CourseModule(
        course_id=course.id,
        title=payload.title.strip(),
        description=(payload.description or "").strip(),
        order_index=payload.order or order_index,
    )
    db.add(module)
    db.flush()

    for i, video in enumerate(payload.videos, start=1):
        db.add(new_video(course, module, video, i))
    for i, assignment in enumerate(payload.assignments, start=1):
        db.add(new_assignment(course, module, assignment, i))
    return module


def module_videos(db: DbSession, module_id: uuid.UUID) -> list[Video]:
    return db.execute(
        select(Video).where(Video.module_id == module_id).order_by(Video.order_index, Video.created_at)
    ).scalars().all()


def module_assignments(db: DbSession, module_id: uuid.UUID) -> list[Assignment]:
    return db.execute(
        select(Assignment)
        .where(Assignment.module_id == module_id)
        .order_by(Assignment.order_index, Assignment.created_at)
    ).scalars().all()


def module_detail(db: DbSession, module: CourseModule) -> dict:
    return {
        **dump(ModuleOut, module),
        "videos": [dump(VideoOut, v) for v in module_videos(db, module.id)],
        "assignments": [dump(AssignmentOut, a) for a in module_assignments(db, module.id)],
    }
