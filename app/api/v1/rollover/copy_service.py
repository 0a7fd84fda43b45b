"""
Copy helpers for the school year rollover. Natural-key entities (subjects, grade
scales) are find-or-create; everything else is copied into the new year. None of
these commit; the caller owns the transaction.
"""

import logging
import uuid
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import grading
from app.core.config import settings
from app.core.models import (
    AssignmentSchedule,
    Course,
    CourseSubjectAssignment,
    GradeScale,
    GradeScaleDetail,
    Period,
    SubPeriod,
    Subject,
)

logger = logging.getLogger(__name__)


def shift_date(value: Optional[date], years: int) -> Optional[date]:
    """Same month/day `years` later. 29 Feb lands on 28 Feb in a non-leap year."""
    if value is None:
        return None
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


async def find_or_create_subject(
    db: AsyncSession,
    subject: Subject,
    school_year_id: UUID,
) -> Tuple[Subject, bool]:
    """Subject with the same code in the target year, created if missing. Returns (subject, created)."""
    result = await db.execute(
        select(Subject).where(
            Subject.code == subject.code,
            Subject.institution_id == subject.institution_id,
            Subject.school_year_id == school_year_id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        return existing, False
    new_subject = Subject(
        id=uuid.uuid4(),
        institution_id=subject.institution_id,
        school_year_id=school_year_id,
        code=subject.code,
        name=subject.name,
        credits=subject.credits or 1,
        hours=subject.hours,
        minimum_supplementary_average=subject.minimum_supplementary_average,
    )
    db.add(new_subject)
    await db.flush()
    return new_subject, True


def _detail_signature(details: Iterable[GradeScaleDetail]) -> List[Tuple[str, object]]:
    ordered = sorted(details, key=lambda d: d.order or 0)
    return [(d.label, grading.to_decimal(d.numeric_value)) for d in ordered]


async def find_or_create_grade_scale(
    db: AsyncSession,
    grade_scale: GradeScale,
    institution_id: UUID,
) -> Tuple[GradeScale, bool]:
    """
    Reuse a scale of the institution with the same name and the same ordered
    (label, value) details; otherwise create a copy. `grade_scale.details` must be loaded.
    """
    signature = _detail_signature(grade_scale.details)
    result = await db.execute(
        select(GradeScale)
        .where(
            GradeScale.institution_id == institution_id,
            GradeScale.name == grade_scale.name,
        )
        .options(selectinload(GradeScale.details))
        .order_by(GradeScale.created_at)
    )
    for candidate in result.scalars().all():
        if _detail_signature(candidate.details) == signature:
            return candidate, False

    new_scale = GradeScale(id=uuid.uuid4(), institution_id=institution_id, name=grade_scale.name)
    db.add(new_scale)
    for detail in sorted(grade_scale.details, key=lambda d: d.order or 0):
        db.add(
            GradeScaleDetail(
                id=uuid.uuid4(),
                grade_scale_id=new_scale.id,
                label=detail.label,
                numeric_value=detail.numeric_value,
                order=detail.order or 0,
            )
        )
    await db.flush()
    return new_scale, True


async def copy_period(
    db: AsyncSession,
    period: Period,
    school_year_id: UUID,
    years: int,
) -> Tuple[Period, int]:
    """Copy a period and its sub-periods with dates shifted by `years`. New periods start inactive."""
    new_period = Period(
        id=uuid.uuid4(),
        school_year_id=school_year_id,
        name=period.name,
        start_date=shift_date(period.start_date, years),
        end_date=shift_date(period.end_date, years),
        order=period.order,
        is_supplementary=bool(period.is_supplementary),
        minimum_passing_grade=(
            period.minimum_passing_grade
            if period.minimum_passing_grade is not None
            else settings.default_period_minimum_grade
        ),
        weight_percent=period.weight_percent if period.weight_percent is not None else 100,
        active=False,
    )
    db.add(new_period)
    sub_periods = sorted(period.sub_periods, key=lambda sp: sp.order or 0)
    for sub_period in sub_periods:
        db.add(
            SubPeriod(
                id=uuid.uuid4(),
                period_id=new_period.id,
                name=sub_period.name,
                weight_percent=sub_period.weight_percent,
                order=sub_period.order,
                start_date=shift_date(sub_period.start_date, years),
                end_date=shift_date(sub_period.end_date, years),
            )
        )
    await db.flush()
    return new_period, len(sub_periods)


async def copy_courses(
    db: AsyncSession,
    courses: List[Course],
    school_year_id: UUID,
) -> Dict[UUID, UUID]:
    """
    Copy courses in two passes: create every row without next_course_id to get a
    complete old -> new id map, then point next_course_id at the copies. The
    source graph may reference later courses or contain cycles.
    """
    copies: Dict[UUID, Course] = {}
    for course in courses:
        copy = Course(
            id=uuid.uuid4(),
            school_year_id=school_year_id,
            name=course.name,
            level=course.level,
            section=course.section,
            teacher_id=course.teacher_id,
            capacity=course.capacity or settings.default_course_capacity,
            sort_order=course.sort_order or 0,
            next_course_id=None,
        )
        db.add(copy)
        copies[course.id] = copy
    await db.flush()
    course_map = {old_id: copy.id for old_id, copy in copies.items()}

    for course in courses:
        if course.next_course_id is None:
            continue
        new_next_id = course_map.get(course.next_course_id)
        if new_next_id is None:
            logger.warning(
                "Course %s points at course %s outside the copied year; link dropped",
                course.id,
                course.next_course_id,
            )
            continue
        copies[course.id].next_course_id = new_next_id
    await db.flush()
    return course_map


async def copy_assignments(
    db: AsyncSession,
    assignments: List[CourseSubjectAssignment],
    course_map: Dict[UUID, UUID],
    subject_map: Dict[UUID, UUID],
    grade_scale_map: Dict[UUID, UUID],
) -> Tuple[int, int]:
    """Copy assignments and their schedules through the id maps. Returns (assignments, schedules)."""
    copied = 0
    schedules = 0
    for assignment in assignments:
        new_course_id = course_map.get(assignment.course_id)
        new_subject_id = subject_map.get(assignment.subject_id)
        if new_course_id is None or new_subject_id is None:
            logger.warning("Assignment %s references a course or subject outside the year; skipped", assignment.id)
            continue
        grade_scale_id = assignment.grade_scale_id
        if grade_scale_id is not None:
            grade_scale_id = grade_scale_map.get(grade_scale_id, grade_scale_id)
        new_assignment = CourseSubjectAssignment(
            id=uuid.uuid4(),
            course_id=new_course_id,
            subject_id=new_subject_id,
            teacher_id=assignment.teacher_id,
            grade_scale_id=grade_scale_id,
        )
        db.add(new_assignment)
        copied += 1
        for slot in assignment.schedules:
            db.add(
                AssignmentSchedule(
                    id=uuid.uuid4(),
                    assignment_id=new_assignment.id,
                    weekday=slot.weekday,
                    hour=slot.hour,
                )
            )
            schedules += 1
    await db.flush()
    return copied, schedules
