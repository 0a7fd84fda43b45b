"""Grading periods (e.g. quarters) of a school year and their weighted sub-periods."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class Period(Base):
    __tablename__ = "periods"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    # Supplementary periods never count towards the general average
    is_supplementary = Column(Boolean, nullable=False, default=False)
    minimum_passing_grade = Column(Numeric(4, 2), nullable=False, default=7.0)
    weight_percent = Column(Numeric(5, 2), nullable=False, default=100)
    active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_year = relationship("SchoolYear")
    sub_periods = relationship(
        "SubPeriod",
        back_populates="period",
        order_by="SubPeriod.order",
        cascade="all, delete-orphan",
    )


class SubPeriod(Base):
    """Weighted component of a period. Weights of one period add up to at most 100."""

    __tablename__ = "sub_periods"
    __table_args__ = (
        UniqueConstraint("period_id", "name", name="uq_sub_period_period_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    period_id = Column(UUID(as_uuid=True), ForeignKey("periods.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    weight_percent = Column(Numeric(5, 2), nullable=False)
    order = Column(Integer, nullable=False, default=0)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    period = relationship("Period", back_populates="sub_periods")
