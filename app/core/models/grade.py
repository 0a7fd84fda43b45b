"""Scored evaluation items. A grade points at its sub-period directly or through an insumo."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class Insumo(Base):
    """Evaluation item (homework, lesson, exam) inside a sub-period."""

    __tablename__ = "insumos"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sub_period_id = Column(UUID(as_uuid=True), ForeignKey("sub_periods.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    sub_period = relationship("SubPeriod")


class Grade(Base):
    __tablename__ = "grades"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    sub_period_id = Column(UUID(as_uuid=True), ForeignKey("sub_periods.id", ondelete="CASCADE"), nullable=True)
    insumo_id = Column(UUID(as_uuid=True), ForeignKey("insumos.id", ondelete="CASCADE"), nullable=True)
    score = Column(Numeric(6, 3), nullable=False)  # 0..10
    # "metadata" is reserved on declarative classes
    grade_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    insumo = relationship("Insumo")
