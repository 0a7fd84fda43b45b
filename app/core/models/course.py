"""Courses (class/group) of a school year. next_course_id is the course students advance into."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(100), nullable=False)
    level = Column(String(50), nullable=False)
    section = Column(String(20), nullable=True)
    teacher_id = Column(UUID(as_uuid=True), nullable=True)
    capacity = Column(Integer, nullable=True)
    # Self reference; may point at a course created later (or form a cycle)
    next_course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="SET NULL"), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_year = relationship("SchoolYear")
    next_course = relationship("Course", remote_side=[id], foreign_keys=[next_course_id], post_update=True)
    subject_assignments = relationship("CourseSubjectAssignment", back_populates="course")
