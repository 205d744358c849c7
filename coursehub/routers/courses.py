import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from coursehub.database import get_db
from coursehub.errors import Conflict, NotFound, UpstreamFailure
from coursehub.models.assignment import Assignment
from coursehub.models.course import Course
from coursehub.models.module import CourseModule
from coursehub.models.user import User
from coursehub.models.video import Video
from coursehub.schemas.course import AssignmentOut, CourseIn, CourseOut, ModuleOut, VideoOut, dump
from coursehub.services import media
from coursehub.services.authz import require_tutor
from coursehub.services.course_content import add_module_tree
from coursehub.services.course_totals import recompute_course_totals
from coursehub.services.ownership import delete_course_tree, get_owned_course
from coursehub.validation import COURSE_RULES, validated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])


def _course_detail(db: DbSession, course: Course) -> dict:
    modules = db.execute(
        select(CourseModule).where(CourseModule.course_id == course.id).order_by(CourseModule.order_index)
    ).scalars().all()
    videos = db.execute(
        select(Video).where(Video.course_id == course.id).order_by(Video.order_index, Video.created_at)
    ).scalars().all()
    assignments = db.execute(
        select(Assignment)
        .where(Assignment.course_id == course.id)
        .order_by(Assignment.order_index, Assignment.created_at)
    ).scalars().all()
    return {
        **dump(CourseOut, course),
        "modules": [dump(ModuleOut, m) for m in modules],
        "videos": [dump(VideoOut, v) for v in videos],
        "assignments": [dump(AssignmentOut, a) for a in assignments],
    }


@router.get("/cdn/ping")
def cdn_ping(user: User = Depends(require_tutor), cdn: media.MediaCdn = Depends(media.get_media_cdn)):
    try:
        result = media.ping(cdn)
    except Exception as exc:
        logger.error("Media CDN ping failed: %s", exc)
        raise UpstreamFailure("Media CDN configuration error", error=str(exc)) from exc
    return {"success": True, "message": "Media CDN configuration is working", "result": result}


@router.post("", status_code=201)
def create_course(
    user: User = Depends(require_tutor),
    payload: CourseIn = Depends(validated(COURSE_RULES, CourseIn)),
    db: DbSession = Depends(get_db),
):
    course = Course(
        tutor_id=user.id,
        name=payload.name.strip(),
        description=payload.description.strip(),
        price=payload.price,
        category=payload.category.strip(),
        playlist_name=payload.playlist_name.strip(),
        status="draft",
        prerequisites=payload.prerequisites or [],
        syllabus=payload.syllabus or [],
        motive=payload.motive.strip() if payload.motive else None,
    )
    db.add(course)
    db.flush()

    for i, module in enumerate(payload.modules, start=1):
        add_module_tree(db, course, module, i)

    recompute_course_totals(db, course)
    db.commit()
    db.refresh(course)
    logger.info("Tutor %s created course %s with %d modules", user.id, course.id, len(payload.modules))

    return {"success": True, "message": "Course created successfully", "course": _course_detail(db, course)}


@router.get("")
def list_courses(user: User = Depends(require_tutor), db: DbSession = Depends(get_db)):
    rows = db.execute(
        select(Course).where(Course.tutor_id == user.id).order_by(Course.created_at.desc())
    ).scalars().all()
    return {
        "success": True,
        "message": "Courses fetched successfully",
        "courses": [dump(CourseOut, c) for c in rows],
    }


@router.get("/{course_id}")
def get_course(course_id: uuid.UUID, user: User = Depends(require_tutor), db: DbSession = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    return {"success": True, "message": "Course fetched successfully", "course": _course_detail(db, course)}


@router.put("/{course_id}")
def update_course(
    course_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: CourseIn = Depends(validated(COURSE_RULES, CourseIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)

    course.name = payload.name.strip()
    course.description = payload.description.strip()
    course.price = payload.price
    course.category = payload.category.strip()
    course.playlist_name = payload.playlist_name.strip()
    if payload.prerequisites is not None:
        course.prerequisites = payload.prerequisites
    if payload.syllabus is not None:
        course.syllabus = payload.syllabus
    if payload.motive is not None:
        course.motive = payload.motive.strip() or None

    db.commit()
    db.refresh(course)
    return {"success": True, "message": "Course updated successfully", "course": dump(CourseOut, course)}


@router.delete("/{course_id}")
def delete_course(course_id: uuid.UUID, user: User = Depends(require_tutor), db: DbSession = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    delete_course_tree(db, course)
    db.commit()
    logger.info("Tutor %s deleted course %s", user.id, course_id)
    return {"success": True, "message": "Course deleted successfully"}


@router.patch("/{course_id}/publish")
def publish_course(course_id: uuid.UUID, user: User = Depends(require_tutor), db: DbSession = Depends(get_db)):
    course = get_owned_course(db, course_id, user)

    videos = db.execute(select(func.count(Video.id)).where(Video.course_id == course.id)).scalar_one()
    if not videos:
        raise Conflict("Course must have at least one video before publishing")

    course.status = "published"
    recompute_course_totals(db, course)
    db.commit()
    db.refresh(course)
    return {"success": True, "message": "Course published successfully", "course": dump(CourseOut, course)}


@router.get("/{course_id}/demo/public")
def get_public_demo(
    course_id: uuid.UUID,
    db: DbSession = Depends(get_db),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    course = db.get(Course, course_id)
    if not course:
        raise NotFound("Course not found")

    result = media.get_demo_video(cdn, course.playlist_name)
    if not result.get("success"):
        raise NotFound("No demo video available for this course")
    return {"success": True, "demo": result["demo"]}


@router.get("/{course_id}/cdn/videos")
def list_cdn_videos(
    course_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    """Assets stored under the course playlist, including ones no video row points to."""
    course = get_owned_course(db, course_id, user)

    listed = media.list_playlist_videos(cdn, course.playlist_name)
    if not listed.get("success"):
        raise UpstreamFailure("Failed to list media CDN videos", error=listed.get("error"))

    known = set(db.execute(select(Video.public_id).where(Video.course_id == course.id)).scalars().all())
    assets = [
        {
            "public_id": asset.get("public_id"),
            "url": asset.get("secure_url"),
            "duration": asset.get("duration"),
            "size": asset.get("bytes"),
            "linked": asset.get("public_id") in known,
        }
        for asset in listed["videos"]
    ]
    return {"success": True, "count": len(assets), "videos": assets}
