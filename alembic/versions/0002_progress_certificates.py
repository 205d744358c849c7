"""watch progress, certificates and grading

Revision ID: 0002_progress_certificates
Revises: 0001_initial_schema
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002_progress_certificates"
down_revision: Union[str, None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _fk(name: str, target: str, nullable: bool = False):
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target, ondelete="CASCADE"), nullable=nullable)


def upgrade() -> None:
    op.add_column("enrollments", sa.Column("progress", sa.Integer(), nullable=True, server_default="0"))
    op.add_column("enrollments", sa.Column("completed_at", sa.DateTime(), nullable=True))

    op.add_column("assignment_submissions", sa.Column("grade", sa.Float(), nullable=True))
    op.add_column("assignment_submissions", sa.Column("feedback", sa.Text(), nullable=True))
    op.add_column("assignment_submissions", sa.Column("graded_at", sa.DateTime(), nullable=True))

    op.create_table(
        "video_watches",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _fk("enrollment_id", "enrollments.id"),
        _fk("video_id", "videos.id"),
        sa.Column("watched_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("enrollment_id", "video_id", name="uq_watch_enrollment_video"),
    )
    op.create_index("ix_video_watches_enrollment_id", "video_watches", ["enrollment_id"])
    op.create_index("ix_video_watches_video_id", "video_watches", ["video_id"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _fk("enrollment_id", "enrollments.id"),
        _fk("student_id", "users.id"),
        _fk("course_id", "courses.id"),
        sa.Column("certificate_number", sa.String(100), nullable=False),
        sa.Column("issued_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("enrollment_id"),
    )
    op.create_index("ix_certificates_certificate_number", "certificates", ["certificate_number"], unique=True)
    op.create_index("ix_certificates_student_id", "certificates", ["student_id"])
    op.create_index("ix_certificates_course_id", "certificates", ["course_id"])


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_table("video_watches")
    with op.batch_alter_table("assignment_submissions") as batch:
        batch.drop_column("graded_at")
        batch.drop_column("feedback")
        batch.drop_column("grade")
    with op.batch_alter_table("enrollments") as batch:
        batch.drop_column("completed_at")
        batch.drop_column("progress")
