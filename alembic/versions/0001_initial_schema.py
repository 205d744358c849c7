"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column("id", sa.Uuid(), primary_key=True)


def _fk(name: str, target: str, nullable: bool = False):
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target, ondelete="CASCADE"), nullable=nullable)


def _timestamps():
    return [sa.Column("created_at", sa.DateTime(), nullable=True), sa.Column("updated_at", sa.DateTime(), nullable=True)]


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=True),
        sa.Column("avatar_url", sa.String(1500), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "refresh_tokens",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_token", "refresh_tokens", ["token"], unique=True)
    op.create_index("ix_refresh_tokens_user_exp", "refresh_tokens", ["user_id", "expires_at"])

    op.create_table(
        "email_verification_tokens",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_email_verification_tokens_user_id", "email_verification_tokens", ["user_id"])
    op.create_index("ix_email_verification_tokens_token", "email_verification_tokens", ["token"], unique=True)
    op.create_index("ix_email_token_user_exp", "email_verification_tokens", ["user_id", "expires_at"])

    op.create_table(
        "password_reset_tokens",
        _id(),
        _fk("user_id", "users.id"),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"])
    op.create_index("ix_password_reset_tokens_token", "password_reset_tokens", ["token"])

    op.create_table(
        "courses",
        _id(),
        _fk("tutor_id", "users.id"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("playlist_name", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("prerequisites", sa.JSON(), nullable=True),
        sa.Column("syllabus", sa.JSON(), nullable=True),
        sa.Column("motive", sa.Text(), nullable=True),
        sa.Column("total_videos", sa.Integer(), nullable=True),
        sa.Column("total_duration", sa.Integer(), nullable=True),
        sa.Column("total_assignments", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_courses_tutor_id", "courses", ["tutor_id"])

    op.create_table(
        "modules",
        _id(),
        _fk("course_id", "courses.id"),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_modules_course_id", "modules", ["course_id"])

    op.create_table(
        "videos",
        _id(),
        _fk("course_id", "courses.id"),
        _fk("module_id", "modules.id"),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.String(1500), nullable=True),
        sa.Column("public_id", sa.String(500), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=True),
        sa.Column("is_demo", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_videos_course_id", "videos", ["course_id"])
    op.create_index("ix_videos_module_id", "videos", ["module_id"])

    op.create_table(
        "assignments",
        _id(),
        _fk("course_id", "courses.id"),
        _fk("module_id", "modules.id"),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("instructions", sa.Text(), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_assignments_course_id", "assignments", ["course_id"])
    op.create_index("ix_assignments_module_id", "assignments", ["module_id"])

    op.create_table(
        "enrollments",
        _id(),
        _fk("course_id", "courses.id"),
        _fk("student_id", "users.id"),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("enrolled_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("course_id", "student_id", name="uq_enrollment_course_student"),
    )
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])

    op.create_table(
        "assignment_submissions",
        _id(),
        _fk("assignment_id", "assignments.id"),
        _fk("student_id", "users.id"),
        sa.Column("submission_text", sa.Text(), nullable=True),
        sa.Column("file_url", sa.String(1500), nullable=True),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("assignment_id", "student_id", name="uq_submission_assignment_student"),
    )
    op.create_index("ix_assignment_submissions_assignment_id", "assignment_submissions", ["assignment_id"])
    op.create_index("ix_assignment_submissions_student_id", "assignment_submissions", ["student_id"])


def downgrade() -> None:
    for table in (
        "assignment_submissions",
        "enrollments",
        "assignments",
        "videos",
        "modules",
        "courses",
        "password_reset_tokens",
        "email_verification_tokens",
        "refresh_tokens",
        "users",
    ):
        op.drop_table(table)
