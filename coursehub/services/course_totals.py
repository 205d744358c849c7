from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from coursehub.models.assignment import Assignment
from coursehub.models.course import Course
from coursehub.models.video import Video


def recompute_course_totals(db: DbSession, course: Course) -> Course:
    """Refresh the counters on ``course`` from its child rows.

    Flushes first so pending child writes are counted; the caller commits,
    which puts the child write and the counters in the same transaction.
    """
    db.flush()

    videos, duration = db.execute(
        select(func.count(Video.id), func.coalesce(func.sum(Video.duration), 0)).where(
            Video.course_id == course.id
        )
    ).one()
    assignments = db.execute(
        select(func.count(Assignment.id)).where(Assignment.course_id == course.id)
    ).scalar_one()

    course.total_videos = int(videos or 0)
    course.total_duration = int(duration or 0)
    course.total_assignments = int(assignments or 0)
    return course
