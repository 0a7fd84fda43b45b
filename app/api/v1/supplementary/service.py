import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import grading
from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationFailure
from app.core.models import Course, CourseSubjectAssignment, Grade, Insumo, Period, SchoolYear, Student, Subject

from .schemas import (
    EligibilityResult,
    EligibleStudent,
    EligibleStudentsResponse,
    PeriodAverage,
    StudentGeneralAverage,
    SupplementaryApplyResult,
)

logger = logging.getLogger(__name__)


def period_minimum(period: Period) -> Decimal:
    if period.minimum_passing_grade is None:
        return grading.to_decimal(settings.default_period_minimum_grade)
    return grading.to_decimal(period.minimum_passing_grade)


def period_weight(period: Period) -> Decimal:
    if period.weight_percent is None:
        return grading.HUNDRED
    return grading.to_decimal(period.weight_percent)


async def get_school_year_or_404(db: AsyncSession, school_year_id: UUID) -> SchoolYear:
    school_year = await db.get(SchoolYear, school_year_id)
    if not school_year:
        raise NotFoundError("School year", school_year_id)
    return school_year


async def list_regular_periods(db: AsyncSession, school_year_id: UUID) -> List[Period]:
    """Non-supplementary periods of the year with their sub-periods, in period order."""
    result = await db.execute(
        select(Period)
        .where(
            Period.school_year_id == school_year_id,
            Period.is_supplementary.is_(False),
        )
        .options(selectinload(Period.sub_periods))
        .order_by(Period.order)
    )
    return list(result.scalars().all())


def sum_minimum_grades(periods: Iterable[Period]) -> Decimal:
    return sum((period_minimum(p) for p in periods), grading.ZERO)


async def minimum_required_sum(db: AsyncSession, school_year_id: UUID) -> Decimal:
    """Total weighted score a student must reach: sum of the regular periods' minimum grades."""
    periods = await list_regular_periods(db, school_year_id)
    return sum_minimum_grades(periods)


async def _load_scores_by_sub_period(
    db: AsyncSession,
    student_id: UUID,
    subject_id: UUID,
    sub_period_ids: Sequence[UUID],
) -> Dict[UUID, List[Decimal]]:
    """Scores of the student in the subject grouped by effective sub-period (direct or via insumo)."""
    if not sub_period_ids:
        return {}
    effective_sub_period = func.coalesce(Grade.sub_period_id, Insumo.sub_period_id)
    result = await db.execute(
        select(effective_sub_period, Grade.score)
        .select_from(Grade)
        .outerjoin(Insumo, Grade.insumo_id == Insumo.id)
        .where(
            Grade.student_id == student_id,
            Grade.subject_id == subject_id,
            effective_sub_period.in_(list(sub_period_ids)),
        )
    )
    scores: Dict[UUID, List[Decimal]] = defaultdict(list)
    for sub_period_id, score in result.all():
        scores[sub_period_id].append(grading.to_decimal(score))
    return scores


def build_period_averages(
    periods: Iterable[Period],
    scores_by_sub_period: Dict[UUID, List[Decimal]],
) -> List[PeriodAverage]:
    """Run the aggregator over each period. A period without grades averages 0; it is not skipped."""
    averages: List[PeriodAverage] = []
    for period in periods:
        entries = []
        has_grades = False
        for sub_period in period.sub_periods:
            scores = scores_by_sub_period.get(sub_period.id, [])
            if scores:
                has_grades = True
            entries.append((grading.sub_period_average(scores), sub_period.weight_percent or 0))
        weight = period_weight(period)
        average, contribution = grading.period_average(entries, weight)
        averages.append(
            PeriodAverage(
                period_id=period.id,
                period_name=period.name,
                order=period.order or 0,
                average=average,
                weighted_average=contribution,
                weight_percent=weight,
                minimum_passing_grade=period_minimum(period),
                has_grades=has_grades,
            )
        )
    return averages


async def general_average_for_periods(
    db: AsyncSession,
    student_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
    periods: List[Period],
) -> StudentGeneralAverage:
    """General average over already loaded regular periods (lets callers reuse one period query)."""
    sub_period_ids = [sp.id for p in periods for sp in p.sub_periods]
    scores = await _load_scores_by_sub_period(db, student_id, subject_id, sub_period_ids)
    period_averages = build_period_averages(periods, scores)
    return StudentGeneralAverage(
        student_id=student_id,
        subject_id=subject_id,
        school_year_id=school_year_id,
        general_average=grading.general_average(pa.weighted_average for pa in period_averages),
        period_averages=period_averages,
    )


async def compute_student_general_average(
    db: AsyncSession,
    student_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
) -> StudentGeneralAverage:
    """Sum of the truncated weighted averages of every regular period of the year."""
    await get_school_year_or_404(db, school_year_id)
    periods = await list_regular_periods(db, school_year_id)
    return await general_average_for_periods(db, student_id, subject_id, school_year_id, periods)


def qualifies_for_supplementary(general: Decimal, required_sum: Decimal, period_count: int) -> bool:
    """
    A student qualifies when the general average is below the required sum, or
    when the average per period is below the minimum per period.
    """
    below_required_sum = general < required_sum
    below_per_period = False
    if period_count > 0:
        # Independent comparison; do not fold into below_required_sum.
        below_per_period = (general / period_count) < (required_sum / period_count)
    return below_required_sum or below_per_period


def lowest_periods(period_averages: Iterable[PeriodAverage]) -> List[PeriodAverage]:
    """Periods whose average is below their own minimum, lowest average first."""
    below = [pa for pa in period_averages if pa.average < pa.minimum_passing_grade]
    return sorted(below, key=lambda pa: pa.average)


def replace_with_supplementary(
    period_averages: List[PeriodAverage],
    supplementary_score,
) -> List[PeriodAverage]:
    """
    Substitute the supplementary score into every period below its minimum.
    Pure: returns new objects in the original order, keeps original_average.
    """
    score = grading.truncate(supplementary_score)
    replaced: Dict[UUID, PeriodAverage] = {}
    for pa in lowest_periods(period_averages):
        replaced[pa.period_id] = pa.model_copy(
            update={
                "average": score,
                "weighted_average": grading.truncate(score * (pa.weight_percent / grading.HUNDRED)),
                "replaced_by_supplementary": True,
                "original_average": pa.average,
            }
        )
    return [replaced.get(pa.period_id, pa) for pa in period_averages]


def _eligibility_from_averages(
    averages: StudentGeneralAverage,
    required_sum: Decimal,
    period_count: int,
) -> EligibilityResult:
    if period_count > 0:
        minimum_per_period = grading.truncate(required_sum / period_count)
    else:
        minimum_per_period = grading.truncate(settings.default_period_minimum_grade)
    return EligibilityResult(
        student_id=averages.student_id,
        subject_id=averages.subject_id,
        school_year_id=averages.school_year_id,
        qualifies=qualifies_for_supplementary(averages.general_average, required_sum, period_count),
        general_average=averages.general_average,
        minimum_required_sum=required_sum,
        minimum_average_per_period=minimum_per_period,
        period_count=period_count,
        lowest_periods=lowest_periods(averages.period_averages),
        period_averages=averages.period_averages,
    )


async def compute_supplementary_eligibility(
    db: AsyncSession,
    student_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
) -> EligibilityResult:
    if not await db.get(Student, student_id):
        raise NotFoundError("Student", student_id)
    if not await db.get(Subject, subject_id):
        raise NotFoundError("Subject", subject_id)
    await get_school_year_or_404(db, school_year_id)

    periods = await list_regular_periods(db, school_year_id)
    averages = await general_average_for_periods(db, student_id, subject_id, school_year_id, periods)
    return _eligibility_from_averages(averages, sum_minimum_grades(periods), len(periods))


async def apply_supplementary_score(
    db: AsyncSession,
    student_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
    supplementary_score: Decimal,
) -> SupplementaryApplyResult:
    """What the general average becomes if the supplementary score replaces the weak periods. No writes."""
    averages = await compute_student_general_average(db, student_id, subject_id, school_year_id)
    adjusted = replace_with_supplementary(averages.period_averages, supplementary_score)
    return SupplementaryApplyResult(
        student_id=student_id,
        subject_id=subject_id,
        original_general_average=averages.general_average,
        adjusted_general_average=grading.general_average(pa.weighted_average for pa in adjusted),
        replaced_period_ids=[pa.period_id for pa in adjusted if pa.replaced_by_supplementary],
        period_averages=adjusted,
    )


async def list_students_eligible_for_supplementary(
    db: AsyncSession,
    institution_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
    period_id: Optional[UUID] = None,
) -> EligibleStudentsResponse:
    """Students of every course that has the subject this year and who qualify for its supplementary exam."""
    subject = await db.get(Subject, subject_id)
    if not subject or subject.institution_id != institution_id:
        raise NotFoundError("Subject", subject_id)
    await get_school_year_or_404(db, school_year_id)
    if period_id is not None:
        period = await db.get(Period, period_id)
        if not period:
            raise NotFoundError("Period", period_id)
        if not period.is_supplementary:
            raise ValidationFailure("The given period is not a supplementary period")

    periods = await list_regular_periods(db, school_year_id)
    required_sum = sum_minimum_grades(periods)

    courses_result = await db.execute(
        select(Course)
        .join(CourseSubjectAssignment, CourseSubjectAssignment.course_id == Course.id)
        .where(
            CourseSubjectAssignment.subject_id == subject_id,
            Course.school_year_id == school_year_id,
        )
    )
    courses = {c.id: c for c in courses_result.scalars().all()}
    if not courses:
        return EligibleStudentsResponse(data=[], total=0, minimum_required_sum=required_sum)

    students_result = await db.execute(
        select(Student)
        .where(
            Student.institution_id == institution_id,
            Student.current_course_id.in_(list(courses.keys())),
            Student.withdrawn.is_(False),
        )
        .order_by(Student.full_name)
    )
    eligible: List[EligibleStudent] = []
    for student in students_result.scalars().all():
        averages = await general_average_for_periods(db, student.id, subject_id, school_year_id, periods)
        result = _eligibility_from_averages(averages, required_sum, len(periods))
        if not result.qualifies:
            continue
        course = courses[student.current_course_id]
        eligible.append(
            EligibleStudent(
                student_id=student.id,
                full_name=student.full_name,
                identification_number=student.identification_number,
                course_id=course.id,
                course_name=course.name,
                course_level=course.level,
                course_section=course.section,
                general_average=result.general_average,
                minimum_required_sum=result.minimum_required_sum,
                minimum_average_per_period=result.minimum_average_per_period,
                lowest_periods=result.lowest_periods,
            )
        )
    logger.debug(
        "Supplementary list for subject %s: %d eligible students across %d courses",
        subject_id,
        len(eligible),
        len(courses),
    )
    return EligibleStudentsResponse(data=eligible, total=len(eligible), minimum_required_sum=required_sum)
