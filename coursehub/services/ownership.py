"""Parent/child lookups for tutor routes.

Course ownership is checked before any child lookup, so a tutor asking for
another tutor's course gets 403 whatever the child id.
"""
import uuid

from sqlalchemy import delete, select
from sqlalchemy.orm import Session as DbSession

from coursehub.errors import Forbidden, NotFound
from coursehub.models.assignment import Assignment
from coursehub.models.assignment_submission import AssignmentSubmission
from coursehub.models.certificate import Certificate
from coursehub.models.course import Course
from coursehub.models.email_token import EmailVerificationToken
from coursehub.models.enrollment import Enrollment
from coursehub.models.module import CourseModule
from coursehub.models.password_reset_token import PasswordResetToken
from coursehub.models.user import User
from coursehub.models.video import Video
from coursehub.models.video_watch import VideoWatch


def get_owned_course(db: DbSession, course_id: uuid.UUID, user: User) -> Course:
    course = db.get(Course, course_id)
    if not course:
        raise NotFound("Course not found")
    if course.tutor_id != user.id:
        raise Forbidden("Access denied. You do not own this course.")
    return course


def get_course_module(db: DbSession, course: Course, module_id: uuid.UUID) -> CourseModule:
    module = db.execute(
        select(CourseModule).where(CourseModule.id == module_id, CourseModule.course_id == course.id)
    ).scalar_one_or_none()
    if not module:
        raise NotFound("Module not found")
    return module


def get_module_video(db: DbSession, module: CourseModule, video_id: uuid.UUID) -> Video:
    video = db.execute(
        select(Video).where(Video.id == video_id, Video.module_id == module.id)
    ).scalar_one_or_none()
    if not video:
        raise NotFound("Video not found")
    return video


def get_module_assignment(db: DbSession, module: CourseModule, assignment_id: uuid.UUID) -> Assignment:
    assignment = db.execute(
        select(Assignment).where(Assignment.id == assignment_id, Assignment.module_id == module.id)
    ).scalar_one_or_none()
    if not assignment:
        raise NotFound("Assignment not found")
    return assignment


def delete_assignment_rows(db: DbSession, *conditions) -> None:
    ids = select(Assignment.id).where(*conditions)
    db.execute(delete(AssignmentSubmission).where(AssignmentSubmission.assignment_id.in_(ids)))
    db.execute(delete(Assignment).where(*conditions))


def delete_video_rows(db: DbSession, *conditions) -> None:
    ids = select(Video.id).where(*conditions)
    db.execute(delete(VideoWatch).where(VideoWatch.video_id.in_(ids)))
    db.execute(delete(Video).where(*conditions))


def delete_enrollment_rows(db: DbSession, *conditions) -> None:
    ids = select(Enrollment.id).where(*conditions)
    db.execute(delete(VideoWatch).where(VideoWatch.enrollment_id.in_(ids)))
    db.execute(delete(Certificate).where(Certificate.enrollment_id.in_(ids)))
    db.execute(delete(Enrollment).where(*conditions))


def delete_module_children(db: DbSession, module: CourseModule) -> None:
    delete_video_rows(db, Video.module_id == module.id)
    delete_assignment_rows(db, Assignment.module_id == module.id)


def delete_course_tree(db: DbSession, course: Course) -> None:
    delete_enrollment_rows(db, Enrollment.course_id == course.id)
    delete_video_rows(db, Video.course_id == course.id)
    delete_assignment_rows(db, Assignment.course_id == course.id)
    db.execute(delete(CourseModule).where(CourseModule.course_id == course.id))
    db.delete(course)


def delete_user_tree(db: DbSession, user: User) -> None:
    """Remove a user with everything that references it."""
    for course in db.execute(select(Course).where(Course.tutor_id == user.id)).scalars().all():
        delete_course_tree(db, course)
    db.execute(delete(AssignmentSubmission).where(AssignmentSubmission.student_id == user.id))
    delete_enrollment_rows(db, Enrollment.student_id == user.id)
    db.execute(delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id))
    db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
    db.delete(user)
