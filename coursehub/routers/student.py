import logging
import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from coursehub.config import Settings, get_app_settings
from coursehub.database import get_db
from coursehub.errors import Conflict, Forbidden, NotFound, ValidationFailed
from coursehub.models.assignment import Assignment
from coursehub.models.assignment_submission import AssignmentSubmission
from coursehub.models.course import Course
from coursehub.models.enrollment import Enrollment
from coursehub.models.module import CourseModule
from coursehub.models.video import Video
from coursehub.models.user import User
from coursehub.schemas.course import (
    AssignmentOut,
    CourseOut,
    EnrollmentOut,
    GradeIn,
    ModuleOut,
    SubmissionOut,
    VideoOut,
    dump,
)
from coursehub.services.authz import authenticate, optional_authenticate, require_student, require_tutor
from coursehub.services.course_content import module_assignments, module_videos
from coursehub.services.local_files import public_path, save_upload
from coursehub.services.pagination import Page, page_params, paginate
from coursehub.services.tokens import utcnow
from coursehub.validation import GRADE_RULES, validated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/student", tags=["student"])


def _is_enrolled(db: DbSession, course_id: uuid.UUID, student_id: uuid.UUID) -> bool:
    row = db.execute(
        select(Enrollment.id).where(Enrollment.course_id == course_id, Enrollment.student_id == student_id)
    ).first()
    return row is not None


def _pick(row: dict, *keys: str) -> dict:
    return {key: row.get(key) for key in keys}


@router.get("/courses")
def list_published_courses(
    category: str | None = None,
    search: str | None = None,
    page: Page = Depends(page_params(12)),
    db: DbSession = Depends(get_db),
):
    stmt = select(Course).where(Course.status == "published").order_by(Course.created_at.desc())
    if category:
        stmt = stmt.where(Course.category == category)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Course.name.ilike(pattern), Course.description.ilike(pattern)))

    rows, pagination = paginate(db, stmt, page)
    return {
        "success": True,
        "message": "Published courses fetched successfully",
        "courses": [dump(CourseOut, row[0]) for row in rows],
        "pagination": pagination,
    }


@router.get("/courses/{course_id}")
def get_course_details(
    course_id: uuid.UUID,
    user: User | None = Depends(optional_authenticate),
    db: DbSession = Depends(get_db),
):
    """Public course page; a signed-in caller also learns whether they are enrolled."""
    course = db.get(Course, course_id)
    if not course or course.status != "published":
        raise NotFound("Course not found")

    modules = db.execute(
        select(CourseModule).where(CourseModule.course_id == course.id).order_by(CourseModule.order_index)
    ).scalars().all()
    outline = [
        {
            **dump(ModuleOut, module),
            "videos": [
                _pick(dump(VideoOut, v), "id", "title", "duration", "is_demo", "url") for v in module_videos(db, module.id)
            ],
            "assignments": [
                _pick(dump(AssignmentOut, a), "id", "title", "due_date", "description")
                for a in module_assignments(db, module.id)
            ],
        }
        for module in modules
    ]

    demo = db.execute(
        select(Video).where(Video.course_id == course.id, Video.is_demo.is_(True)).order_by(Video.order_index).limit(1)
    ).scalar_one_or_none()
    tutor = db.get(User, course.tutor_id)

    return {
        "success": True,
        "message": "Course details fetched successfully",
        "course": {
            **dump(CourseOut, course),
            "modules": outline,
            "demo_video": dump(VideoOut, demo) if demo else None,
            "tutor": {
                "id": str(tutor.id),
                "name": f"{tutor.first_name or ''} {tutor.last_name or ''}".strip(),
                "bio": tutor.bio,
                "avatar_url": tutor.avatar_url,
            }
            if tutor
            else None,
            "is_enrolled": user is not None and _is_enrolled(db, course.id, user.id),
        },
    }



@router.post("/courses/{course_id}/enroll", status_code=201)
def enroll(course_id: uuid.UUID, user: User = Depends(require_student), db: DbSession = Depends(get_db)):
    course = db.get(Course, course_id)
    if not course or course.status != "published":
        raise NotFound("Course not found")

    if _is_enrolled(db, course.id, user.id):
        raise Conflict("You are already enrolled in this course")

    # payments are out of scope: enrollment is free
    enrollment = Enrollment(course_id=course.id, student_id=user.id, status="active")
    db.add(enrollment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You are already enrolled in this course", status_code=409) from exc
    db.refresh(enrollment)
    logger.info("Student %s enrolled in course %s", user.id, course.id)

    return {"success": True, "message": "Enrolled successfully", "enrollment": dump(EnrollmentOut, enrollment)}


@router.get("/enrollments")
def list_enrollments(user: User = Depends(authenticate), db: DbSession = Depends(get_db)):
    rows = db.execute(
        select(Enrollment, Course)
        .join(Course, Course.id == Enrollment.course_id)
        .where(Enrollment.student_id == user.id)
        .order_by(Enrollment.enrolled_at.desc())
    ).all()
    return {
        "success": True,
        "enrollments": [{**dump(EnrollmentOut, e), "course": dump(CourseOut, c)} for e, c in rows],
    }


@router.post("/assignments/{assignment_id}/submit", status_code=201)
def submit_assignment(
    assignment_id: uuid.UUID,
    submission_text: str | None = Form(None),
    file: UploadFile | None = File(None),
    user: User = Depends(require_student),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")

    if not _is_enrolled(db, assignment.course_id, user.id):
        raise Forbidden("You must be enrolled in this course to submit assignments")

    existing = db.execute(
        select(AssignmentSubmission.id).where(
            AssignmentSubmission.assignment_id == assignment.id,
            AssignmentSubmission.student_id == user.id,
        )
    ).first()
    if existing:
        raise Conflict("You have already submitted this assignment")

    has_file = file is not None and bool(file.filename)
    if not has_file and not (submission_text or "").strip():
        raise ValidationFailed([], detail="Submission text or file is required")

    file_url = ""
    if has_file:
        file_url = public_path(save_upload(file, settings.uploads_dir))

    submission = AssignmentSubmission(
        assignment_id=assignment.id,
        student_id=user.id,
        submission_text=(submission_text or "").strip(),
        file_url=file_url,
        status="submitted",
        submitted_at=utcnow(),
    )
    db.add(submission)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("You have already submitted this assignment", status_code=409) from exc
    db.refresh(submission)

    return {
        "success": True,
        "message": "Assignment submitted successfully",
        "submission": dump(SubmissionOut, submission),
    }


@router.get("/assignments/{assignment_id}/submissions")
def list_submissions(assignment_id: uuid.UUID, user: User = Depends(authenticate), db: DbSession = Depends(get_db)):
    rows = db.execute(
        select(AssignmentSubmission)
        .where(AssignmentSubmission.assignment_id == assignment_id, AssignmentSubmission.student_id == user.id)
        .order_by(AssignmentSubmission.submitted_at.desc())
    ).scalars().all()
    return {"success": True, "submissions": [dump(SubmissionOut, s) for s in rows]}


def _assignment_course(db: DbSession, assignment: Assignment) -> Course:
    return db.get(Course, assignment.course_id)


@router.post("/submissions/{submission_id}/grade")
def grade_submission(
    submission_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: GradeIn = Depends(validated(GRADE_RULES, GradeIn)),
    db: DbSession = Depends(get_db),
):
    submission = db.get(AssignmentSubmission, submission_id)
    if not submission:
        raise NotFound("Submission not found")

    assignment = db.get(Assignment, submission.assignment_id)
    course = _assignment_course(db, assignment) if assignment else None
    if not course or course.tutor_id != user.id:
        raise Forbidden("You can only grade submissions for your courses")

    submission.grade = payload.grade
    submission.feedback = (payload.feedback or "").strip()
    submission.graded_at = utcnow()
    submission.status = "graded"
    db.commit()
    db.refresh(submission)
    logger.info("Tutor %s graded submission %s", user.id, submission.id)

    return {"success": True, "message": "Submission graded successfully", "submission": dump(SubmissionOut, submission)}


@router.get("/assignments/{assignment_id}/all-submissions")
def list_all_submissions(
    assignment_id: uuid.UUID,
    user: User = Depends(require_tutor),
    page: Page = Depends(page_params(10)),
    db: DbSession = Depends(get_db),
):
    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if _assignment_course(db, assignment).tutor_id != user.id:
        raise Forbidden("You can only view submissions for your courses")

    stmt = (
        select(AssignmentSubmission, User)
        .join(User, User.id == AssignmentSubmission.student_id)
        .where(AssignmentSubmission.assignment_id == assignment.id)
        .order_by(AssignmentSubmission.submitted_at.desc())
    )
    rows, pagination = paginate(db, stmt, page)
    return {
        "success": True,
        "message": "Submissions fetched successfully",
        "submissions": [
            {
                **dump(SubmissionOut, submission),
                "student": {"id": str(student.id), "first_name": student.first_name, "last_name": student.last_name},
            }
            for submission, student in rows
        ],
        "pagination": pagination,
    }
