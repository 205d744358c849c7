import logging
import math
import time
import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from coursehub.database import get_db
from coursehub.errors import Forbidden, NotFound, ValidationFailed
from coursehub.models.certificate import Certificate
from coursehub.models.course import Course
from coursehub.models.enrollment import Enrollment
from coursehub.models.module import CourseModule
from coursehub.models.user import User
from coursehub.models.video import Video
from coursehub.models.video_watch import VideoWatch
from coursehub.schemas.course import CertificateOut, EnrollmentOut, VideoOut, dump
from coursehub.services import media
from coursehub.services.authz import authenticate
from coursehub.services.pagination import Page, page_params, paginate
from coursehub.services.tokens import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/student", tags=["progress"])


def _own_enrollment(db: DbSession, enrollment_id: uuid.UUID, user: User) -> Enrollment:
    enrollment = db.execute(
        select(Enrollment).where(Enrollment.id == enrollment_id, Enrollment.student_id == user.id)
    ).scalar_one_or_none()
    if not enrollment:
        raise NotFound("Enrollment not found")
    return enrollment


def _watch_counts(db: DbSession, enrollment: Enrollment) -> tuple[int, int]:
    """(videos in the course, of those the ones this enrollment has watched)"""
    total = db.execute(select(func.count(Video.id)).where(Video.course_id == enrollment.course_id)).scalar_one()
    watched = db.execute(
        select(func.count(VideoWatch.id))
        .join(Video, Video.id == VideoWatch.video_id)
        .where(VideoWatch.enrollment_id == enrollment.id, Video.course_id == enrollment.course_id)
    ).scalar_one()
    return total, watched


def watch_progress(watched: int, total: int) -> int:
    # halves round up
    return math.floor(watched * 100 / (total or 1) + 0.5)


def certificate_number(student_id: uuid.UUID) -> str:
    return f"CERT-{int(time.time() * 1000)}-{student_id}"


def _full_name(user: User | None) -> str:
    if not user:
        return ""
    return f"{user.first_name or ''} {user.last_name or ''}".strip()


@router.post("/enrollments/{enrollment_id}/videos/{video_id}/watch")
def mark_video_watched(
    enrollment_id: uuid.UUID,
    video_id: uuid.UUID,
    user: User = Depends(authenticate),
    db: DbSession = Depends(get_db),
):
    enrollment = _own_enrollment(db, enrollment_id, user)

    video = db.get(Video, video_id)
    if not video or video.course_id != enrollment.course_id:
        raise NotFound("Video not found")

    already = db.execute(
        select(VideoWatch.id).where(VideoWatch.enrollment_id == enrollment.id, VideoWatch.video_id == video.id)
    ).first()
    if already:
        return {"success": True, "message": "Video already marked as watched", "watched": True, "progress": enrollment.progress}

    db.add(VideoWatch(enrollment_id=enrollment.id, video_id=video.id, watched_at=utcnow()))
    try:
        db.flush()
    except IntegrityError:
        # a concurrent request recorded the same watch
        db.rollback()
        db.refresh(enrollment)
        return {"success": True, "message": "Video already marked as watched", "watched": True, "progress": enrollment.progress}

    total, watched = _watch_counts(db, enrollment)
    enrollment.progress = watch_progress(watched, total)
    db.commit()

    logger.info("Enrollment %s watched video %s (%d%%)", enrollment.id, video.id, enrollment.progress)
    return {"success": True, "message": "Video marked as watched", "watched": True, "progress": enrollment.progress}


@router.get("/enrollments/{enrollment_id}/watch-status")
def get_watch_status(enrollment_id: uuid.UUID, user: User = Depends(authenticate), db: DbSession = Depends(get_db)):
    enrollment = _own_enrollment(db, enrollment_id, user)
    video_ids = db.execute(
        select(VideoWatch.video_id).where(VideoWatch.enrollment_id == enrollment.id)
    ).scalars().all()
    return {
        "success": True,
        "message": "Watch status fetched successfully",
        "watchStatus": {str(video_id): True for video_id in video_ids},
        "totalWatched": len(video_ids),
    }


@router.get("/videos/{video_id}")
def get_video(
    video_id: uuid.UUID,
    user: User = Depends(authenticate),
    db: DbSession = Depends(get_db),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    video = db.get(Video, video_id)
    if not video:
        raise NotFound("Video not found")

    course = db.get(Course, video.course_id)
    if course.tutor_id != user.id:
        enrolled = db.execute(
            select(Enrollment.id).where(Enrollment.course_id == course.id, Enrollment.student_id == user.id)
        ).first()
        if not enrolled:
            raise Forbidden("You must be enrolled in this course to watch its videos")

    module = db.get(CourseModule, video.module_id)
    stream_url = video.url
    details = None
    if video.public_id:
        stream_url = media.build_video_url(cdn, video.public_id) or video.url
        found = media.get_video_details(cdn, video.public_id)
        if found.get("success"):
            details = found["details"]
        else:
            logger.warning("No CDN details for %s: %s", video.public_id, found.get("error"))

    return {
        "success": True,
        "message": "Video details fetched successfully",
        "video": {
            **dump(VideoOut, video),
            "stream_url": stream_url,
            "cdn_details": details,
            "module": {"id": str(module.id), "title": module.title} if module else None,
            "course": {"id": str(course.id), "name": course.name},
        },
    }


@router.post("/enrollments/{enrollment_id}/complete")
def complete_course(enrollment_id: uuid.UUID, user: User = Depends(authenticate), db: DbSession = Depends(get_db)):
    enrollment = _own_enrollment(db, enrollment_id, user)

    issued = db.execute(
        select(Certificate).where(Certificate.enrollment_id == enrollment.id)
    ).scalar_one_or_none()
    if issued:
        return {
            "success": True,
            "message": "Course already completed",
            "enrollment": dump(EnrollmentOut, enrollment),
            "certificate": dump(CertificateOut, issued),
        }

    total, watched = _watch_counts(db, enrollment)
    if watched < total:
        raise ValidationFailed([], detail="You must watch all videos to complete the course")

    now = utcnow()
    enrollment.status = "completed"
    enrollment.completed_at = now
    enrollment.progress = 100
    certificate = Certificate(
        enrollment_id=enrollment.id,
        student_id=user.id,
        course_id=enrollment.course_id,
        certificate_number=certificate_number(user.id),
        issued_at=now,
    )
    db.add(certificate)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        certificate = db.execute(
            select(Certificate).where(Certificate.enrollment_id == enrollment.id)
        ).scalar_one()
        db.refresh(enrollment)
    else:
        db.refresh(certificate)
        db.refresh(enrollment)
        logger.info("Issued certificate %s to student %s", certificate.certificate_number, user.id)

    return {
        "success": True,
        "message": "Course completed and certificate generated",
        "enrollment": dump(EnrollmentOut, enrollment),
        "certificate": dump(CertificateOut, certificate),
    }


@router.get("/certificates")
def list_certificates(
    user: User = Depends(authenticate),
    page: Page = Depends(page_params(10)),
    db: DbSession = Depends(get_db),
):
    stmt = (
        select(Certificate, Course.name)
        .join(Course, Course.id == Certificate.course_id)
        .where(Certificate.student_id == user.id)
        .order_by(Certificate.issued_at.desc())
    )
    rows, pagination = paginate(db, stmt, page)
    return {
        "success": True,
        "message": "Certificates fetched successfully",
        "certificates": [{**dump(CertificateOut, cert), "course_name": name} for cert, name in rows],
        "pagination": pagination,
    }


@router.get("/certificates/verify/{number}")
def verify_certificate(number: str, db: DbSession = Depends(get_db)):
    certificate = db.execute(
        select(Certificate).where(Certificate.certificate_number == number)
    ).scalar_one_or_none()
    if not certificate:
        return JSONResponse(
            status_code=404, content={"success": False, "message": "Certificate not found", "verified": False}
        )

    course = db.get(Course, certificate.course_id)
    return {
        "success": True,
        "message": "Certificate verified",
        "verified": True,
        "certificate": {
            **dump(CertificateOut, certificate),
            "student_name": _full_name(db.get(User, certificate.student_id)),
            "course_name": course.name if course else None,
        },
    }


@router.get("/certificates/{certificate_id}")
def get_certificate(certificate_id: uuid.UUID, user: User = Depends(authenticate), db: DbSession = Depends(get_db)):
    certificate = db.execute(
        select(Certificate).where(Certificate.id == certificate_id, Certificate.student_id == user.id)
    ).scalar_one_or_none()
    if not certificate:
        raise NotFound("Certificate not found")

    course = db.get(Course, certificate.course_id)
    return {
        "success": True,
        "message": "Certificate fetched successfully",
        "certificate": {
            **dump(CertificateOut, certificate),
            "student_name": _full_name(user),
            "course_name": course.name if course else None,
        },
    }
