import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class SchoolYear(Base):
    """
    School year per institution. Only one per institution can be active = true;
    rollover deactivates the previous year before activating the new one.
    The (institution_id, name) constraint is what makes a second rollover into
    the same year fail.
    """

    __tablename__ = "school_years"
    __table_args__ = (
        UniqueConstraint("institution_id", "name", name="uq_school_year_institution_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    institution_id = Column(UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    calendar_year = Column(Integer, nullable=False)
    name = Column(String(50), nullable=False)  # e.g. "2025-2026"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    institution = relationship("Institution", back_populates="school_years")
