"""
Enrollment numbers, unique per (institution, school year).
Format: calendar year + dash + 5-digit sequence, e.g. 2026-00001.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationFailure
from app.core.models import Enrollment, SchoolYear

SEQUENCE_DIGITS = 5


def format_enrollment_number(calendar_year: int, sequence: int) -> str:
    return f"{calendar_year}-{sequence:0{SEQUENCE_DIGITS}d}"


def parse_enrollment_sequence(enrollment_number: Optional[str], calendar_year: int) -> Optional[int]:
    """Sequence part of a number of the given year; None for foreign or malformed numbers."""
    if not enrollment_number:
        return None
    parts = enrollment_number.split("-")
    if len(parts) != 2 or parts[0] != str(calendar_year) or not parts[1].isdigit():
        return None
    return int(parts[1])


async def last_enrollment_sequence(db: AsyncSession, institution_id: UUID, school_year: SchoolYear) -> int:
    result = await db.execute(
        select(Enrollment.enrollment_number).where(
            Enrollment.institution_id == institution_id,
            Enrollment.school_year_id == school_year.id,
        )
    )
    sequences = [parse_enrollment_sequence(n, school_year.calendar_year) for n in result.scalars().all()]
    return max((s for s in sequences if s is not None), default=0)


async def next_enrollment_number(db: AsyncSession, institution_id: UUID, school_year: SchoolYear) -> str:
    """Next free number for the institution and year, based on what is already stored."""
    if school_year.institution_id != institution_id:
        raise ValidationFailure("School year does not belong to the institution")
    last = await last_enrollment_sequence(db, institution_id, school_year)
    return format_enrollment_number(school_year.calendar_year, last + 1)


class EnrollmentNumberSequence:
    """
    Consecutive numbers for one transaction. Seeded once from the store, then
    incremented in memory, so numbers stay gap-free even before the new
    enrollments are flushed. Must not be shared between concurrent tasks.
    """

    def __init__(self, db: AsyncSession, institution_id: UUID, school_year: SchoolYear) -> None:
        self.db = db
        self.institution_id = institution_id
        self.school_year = school_year
        self._last: Optional[int] = None

    async def next(self) -> str:
        if self._last is None:
            if self.school_year.institution_id != self.institution_id:
                raise ValidationFailure("School year does not belong to the institution")
            self._last = await last_enrollment_sequence(self.db, self.institution_id, self.school_year)
        self._last += 1
        return format_enrollment_number(self.school_year.calendar_year, self._last)
