import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class Enrollment(Base):
    """
    Student placement per school year. One active record per (student, school_year).
    Rollover creates NEW records; the old record is closed (active=false, end_date set).
    """

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint(
            "institution_id", "school_year_id", "enrollment_number",
            name="uq_enrollment_institution_year_number",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False)
    school_year_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    institution_id = Column(UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    enrollment_number = Column(String(20), nullable=False)  # e.g. "2026-00001"
    start_date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student")
    course = relationship("Course", foreign_keys=[course_id])
