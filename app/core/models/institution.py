import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.enums import InstitutionStatus
from app.db.session import Base


class Institution(Base):
    """
    School (institution). Every academic entity is scoped to one institution,
    directly or through its school year.
    """

    __tablename__ = "institutions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    # Human-readable public identifier; never used as FK
    code = Column(String(20), unique=True, nullable=True)
    status = Column(String(20), nullable=False, default=InstitutionStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    school_years = relationship("SchoolYear", back_populates="institution", cascade="all, delete-orphan")
