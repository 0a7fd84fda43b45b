from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PeriodAverage(BaseModel):
    """Average of one regular period for a student in a subject."""

    period_id: UUID
    period_name: str
    order: int = 0
    average: Decimal = Field(..., description="Truncated period average on the 0-10 scale")
    weighted_average: Decimal = Field(..., description="average * period weight / 100, truncated")
    weight_percent: Decimal
    minimum_passing_grade: Decimal
    has_grades: bool = False
    replaced_by_supplementary: bool = False
    original_average: Optional[Decimal] = Field(
        None,
        description="Average before the supplementary score replaced it (kept for audit)",
    )


class StudentGeneralAverage(BaseModel):
    student_id: UUID
    subject_id: UUID
    school_year_id: UUID
    general_average: Decimal
    period_averages: List[PeriodAverage]


class EligibilityResult(BaseModel):
    """Whether a student may sit the supplementary exam of a subject."""

    student_id: UUID
    subject_id: UUID
    school_year_id: UUID
    qualifies: bool
    general_average: Decimal
    minimum_required_sum: Decimal = Field(..., description="Sum of minimum passing grades of regular periods")
    minimum_average_per_period: Decimal
    period_count: int
    lowest_periods: List[PeriodAverage] = Field(
        default_factory=list,
        description="Periods below their own minimum, lowest first",
    )
    period_averages: List[PeriodAverage] = Field(default_factory=list)


class SupplementaryApply(BaseModel):
    """Score of a supplementary exam to test against a student's period averages."""

    student_id: UUID
    subject_id: UUID
    school_year_id: UUID
    supplementary_score: Decimal = Field(..., ge=0, le=10)


class SupplementaryApplyResult(BaseModel):
    student_id: UUID
    subject_id: UUID
    original_general_average: Decimal
    adjusted_general_average: Decimal
    replaced_period_ids: List[UUID] = Field(default_factory=list)
    period_averages: List[PeriodAverage]


class EligibleStudent(BaseModel):
    student_id: UUID
    full_name: Optional[str] = None
    identification_number: Optional[str] = None
    course_id: UUID
    course_name: str
    course_level: Optional[str] = None
    course_section: Optional[str] = None
    general_average: Decimal
    minimum_required_sum: Decimal
    minimum_average_per_period: Decimal
    lowest_periods: List[PeriodAverage] = Field(default_factory=list)


class EligibleStudentsResponse(BaseModel):
    data: List[EligibleStudent]
    total: int
    minimum_required_sum: Decimal
