import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from coursehub.database import Base
from coursehub.services.tokens import utcnow


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Float, default=0)
    category: Mapped[str] = mapped_column(String(100), nullable=False)

    # CDN folder for this course's videos, e.g. "python_basics"
    playlist_name: Mapped[str] = mapped_column(String(50), nullable=False)

    # draft | published
    status: Mapped[str] = mapped_column(String(20), default="draft")

    prerequisites: Mapped[list | None] = mapped_column(JSON, nullable=True)
    syllabus: Mapped[list | None] = mapped_column(JSON, nullable=True)
    motive: Mapped[str | None] = mapped_column(Text, nullable=True)

    # denormalized, see services/course_totals.py
    total_videos: Mapped[int] = mapped_column(Integer, default=0)
    total_duration: Mapped[int] = mapped_column(Integer, default=0)
    total_assignments: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
