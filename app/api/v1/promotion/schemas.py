from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class SubjectPromotionResult(BaseModel):
    subject_id: UUID
    subject_name: str
    subject_code: str
    average: Decimal
    passed: bool
    minimum_grade: Decimal
    has_grades: bool = False


class PromotionStatus(BaseModel):
    """Pass/fail of one student in one course for a school year."""

    student_id: UUID
    school_year_id: UUID
    course_id: UUID
    passes: bool = Field(..., description="True only when every subject is passed and some grade exists")
    subjects: List[SubjectPromotionResult] = Field(default_factory=list)
    overall_average: Decimal = Field(..., description="Truncated mean of the subject averages")
    reason: str
