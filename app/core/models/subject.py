"""Year-specific subjects (e.g. Math, Science). Natural key: (code, institution, school year)."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.session import Base


class Subject(Base):
    __tablename__ = "subjects"
    __table_args__ = (
        UniqueConstraint("code", "institution_id", "school_year_id", name="uq_subject_code_institution_year"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    institution_id = Column(UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id", ondelete="RESTRICT"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    credits = Column(Integer, nullable=False, default=1)
    hours = Column(Integer, nullable=True)
    minimum_supplementary_average = Column(Numeric(4, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    school_year = relationship("SchoolYear")
