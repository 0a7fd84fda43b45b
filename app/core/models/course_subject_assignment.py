"""Course-subject mapping with the teacher who teaches it and the grade scale used for display."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class CourseSubjectAssignment(Base):
    __tablename__ = "course_subject_assignments"
    __table_args__ = (
        UniqueConstraint("subject_id", "course_id", name="uq_assignment_subject_course"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), nullable=False)
    grade_scale_id = Column(UUID(as_uuid=True), ForeignKey("grade_scales.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    course = relationship("Course", back_populates="subject_assignments")
    subject = relationship("Subject")
    grade_scale = relationship("GradeScale")
    schedules = relationship(
        "AssignmentSchedule",
        back_populates="assignment",
        order_by="AssignmentSchedule.weekday",
        cascade="all, delete-orphan",
    )


class AssignmentSchedule(Base):
    """Weekly slot of an assignment."""

    __tablename__ = "assignment_schedules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    assignment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("course_subject_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    weekday = Column(Integer, nullable=False)  # 0=Monday .. 6=Sunday
    hour = Column(String(20), nullable=False)  # e.g. "07:30-08:15"
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    assignment = relationship("CourseSubjectAssignment", back_populates="schedules")
