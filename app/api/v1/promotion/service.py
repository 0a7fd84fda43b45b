"""
Promotion status: a student passes the year when every subject of the course
reaches the promotion grade. Missing data never raises; it produces a negative
result with a reason so a preview can render every student.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import grading
from app.core.config import settings
from app.core.models import Course, CourseSubjectAssignment, Period, Subject
from app.api.v1.supplementary import service as supplementary_service

from .schemas import PromotionStatus, SubjectPromotionResult

REASON_COURSE_NOT_FOUND = "Curso no encontrado"
REASON_NO_SUBJECTS = "No hay materias asignadas al curso"
REASON_NO_GRADES = "No hay calificaciones registradas"
REASON_ALL_PASSED = "Aprobó todas las materias"
REASON_NOT_ALL_PASSED = "No aprobó todas las materias"


def _negative(student_id: UUID, school_year_id: UUID, course_id: UUID, reason: str) -> PromotionStatus:
    return PromotionStatus(
        student_id=student_id,
        school_year_id=school_year_id,
        course_id=course_id,
        passes=False,
        subjects=[],
        overall_average=grading.truncate(0),
        reason=reason,
    )


async def compute_promotion_status(
    db: AsyncSession,
    student_id: UUID,
    school_year_id: UUID,
    course_id: UUID,
    periods: Optional[List[Period]] = None,
) -> PromotionStatus:
    """
    Per-subject general averages against the promotion grade (not the per-period minimums).
    `periods` may be passed by callers that evaluate many students of the same year.
    overall_average is the truncated mean over every assigned subject; subjects
    without grades count as 0 rather than being left out of the divisor.
    """
    course = await db.get(Course, course_id)
    if not course:
        return _negative(student_id, school_year_id, course_id, REASON_COURSE_NOT_FOUND)

    result = await db.execute(
        select(CourseSubjectAssignment, Subject)
        .join(Subject, CourseSubjectAssignment.subject_id == Subject.id)
        .where(CourseSubjectAssignment.course_id == course_id)
        .order_by(Subject.code)
    )
    rows = result.all()
    if not rows:
        return _negative(student_id, school_year_id, course_id, REASON_NO_SUBJECTS)

    if periods is None:
        periods = await supplementary_service.list_regular_periods(db, school_year_id)
    minimum = grading.to_decimal(settings.minimum_promotion_grade)

    subjects: List[SubjectPromotionResult] = []
    for _assignment, subject in rows:
        averages = await supplementary_service.general_average_for_periods(
            db, student_id, subject.id, school_year_id, periods
        )
        subjects.append(
            SubjectPromotionResult(
                subject_id=subject.id,
                subject_name=subject.name,
                subject_code=subject.code,
                average=averages.general_average,
                passed=averages.general_average >= minimum,
                minimum_grade=minimum,
                has_grades=any(pa.has_grades for pa in averages.period_averages),
            )
        )

    all_passed = all(s.passed for s in subjects)
    any_grades = any(s.has_grades for s in subjects)
    if not any_grades:
        reason = REASON_NO_GRADES
    elif all_passed:
        reason = REASON_ALL_PASSED
    else:
        reason = REASON_NOT_ALL_PASSED

    return PromotionStatus(
        student_id=student_id,
        school_year_id=school_year_id,
        course_id=course_id,
        passes=all_passed and any_grades,
        subjects=subjects,
        overall_average=grading.mean(s.average for s in subjects),
        reason=reason,
    )
