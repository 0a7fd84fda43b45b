"""Institution-scoped display scales (e.g. A/B/C). Copied, never recomputed, during rollover."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class GradeScale(Base):
    __tablename__ = "grade_scales"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    institution_id = Column(UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    details = relationship(
        "GradeScaleDetail",
        back_populates="grade_scale",
        order_by="GradeScaleDetail.order",
        cascade="all, delete-orphan",
    )


class GradeScaleDetail(Base):
    __tablename__ = "grade_scale_details"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    grade_scale_id = Column(UUID(as_uuid=True), ForeignKey("grade_scales.id", ondelete="CASCADE"), nullable=False)
    label = Column(String(50), nullable=False)
    numeric_value = Column(Numeric(5, 2), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    grade_scale = relationship("GradeScale", back_populates="details")
