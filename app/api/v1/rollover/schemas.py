from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.promotion.schemas import SubjectPromotionResult


class StudentDecision(BaseModel):
    """
    Administrator decision for one student.
    action: promote | repeat | unassign. For promote/repeat the student goes into the
    copy of target_course_id, or of source_course_id when target_course_id is absent;
    both are course ids of the current (source) school year.
    """

    student_id: UUID
    action: Optional[str] = Field(None, description="promote, repeat or unassign")
    target_course_id: Optional[UUID] = Field(None, description="Current-year course whose copy receives the student")
    source_course_id: Optional[UUID] = Field(None, description="Fallback current-year course, mapped to its copy")


class RolloverPreviewRequest(BaseModel):
    target_year: int = Field(..., ge=1900, le=9998, description="Calendar year the new school year starts in")
    decisions: List[StudentDecision] = Field(default_factory=list)


class RolloverExecute(BaseModel):
    target_year: int = Field(..., ge=1900, le=9998, description="Calendar year the new school year starts in")
    decisions: List[StudentDecision] = Field(default_factory=list)


class SchoolYearSummary(BaseModel):
    id: UUID
    name: str
    calendar_year: int
    start_date: date
    end_date: date
    active: bool

    class Config:
        from_attributes = True


class NewSchoolYearProjection(BaseModel):
    name: str
    calendar_year: int
    start_date: date
    end_date: date


class CourseToCopy(BaseModel):
    id: UUID
    name: str
    level: str
    section: Optional[str] = None
    capacity: Optional[int] = None
    next_course_id: Optional[UUID] = None
    next_course_name: Optional[str] = None
    total_students: int = 0


class SubjectToCopy(BaseModel):
    id: UUID
    code: str
    name: str
    credits: int
    hours: Optional[int] = None
    minimum_supplementary_average: Optional[Decimal] = None


class GradeScaleDetailItem(BaseModel):
    label: str
    numeric_value: Decimal
    order: int


class GradeScaleToCopy(BaseModel):
    id: UUID
    name: str
    total_details: int
    details: List[GradeScaleDetailItem] = Field(default_factory=list)


class SubPeriodProjection(BaseModel):
    id: UUID
    name: str
    weight_percent: Decimal
    order: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None


class PeriodToCopy(BaseModel):
    id: UUID
    name: str
    order: int
    start_date: date
    end_date: date
    new_start_date: date
    new_end_date: date
    is_supplementary: bool
    minimum_passing_grade: Decimal
    weight_percent: Decimal
    total_sub_periods: int
    sub_periods: List[SubPeriodProjection] = Field(default_factory=list)


class StudentPromotionPreview(BaseModel):
    student_id: UUID
    full_name: Optional[str] = None
    identification_number: Optional[str] = None
    course_id: UUID
    course_name: str
    course_level: Optional[str] = None
    course_section: Optional[str] = None
    next_course_id: Optional[UUID] = None
    next_course_name: Optional[str] = None
    passes: bool
    overall_average: Decimal
    subjects: List[SubjectPromotionResult] = Field(default_factory=list)
    reason: str
    suggested_action: str = Field(..., description="Default decision offered to the administrator")
    suggested_source_course_id: Optional[UUID] = None


class RolloverPreviewSummary(BaseModel):
    total_courses: int
    total_subjects: int
    total_periods: int
    total_grade_scales: int
    total_students: int
    students_passing: int
    students_failing: int


class DecisionError(BaseModel):
    index: int = Field(..., description="0-based position in the decisions list")
    student_id: UUID
    message: str


class RolloverPlan(BaseModel):
    """Everything execute would copy and move, computed without writing."""

    current_school_year: SchoolYearSummary
    new_school_year: NewSchoolYearProjection
    summary: RolloverPreviewSummary
    courses: List[CourseToCopy]
    subjects: List[SubjectToCopy]
    grade_scales: List[GradeScaleToCopy]
    periods: List[PeriodToCopy]
    students_passing: List[StudentPromotionPreview]
    students_failing: List[StudentPromotionPreview]
    warnings: List[str] = Field(default_factory=list)
    decision_errors: List[DecisionError] = Field(default_factory=list)


class RolloverCounts(BaseModel):
    subjects_copied: int = 0
    subjects_reused: int = 0
    grade_scales_copied: int = 0
    grade_scales_reused: int = 0
    periods_copied: int = 0
    sub_periods_copied: int = 0
    courses_copied: int = 0
    assignments_copied: int = 0
    schedules_copied: int = 0
    students_promoted: int = 0
    students_repeating: int = 0
    students_unassigned: int = 0
    students_skipped: int = 0


class RolloverResult(BaseModel):
    message: str
    previous_school_year_id: UUID
    new_school_year: SchoolYearSummary
    summary: RolloverCounts
