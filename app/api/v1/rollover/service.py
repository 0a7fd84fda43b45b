"""
School year rollover: preview what would be copied and who passes, then execute
the copy and the student moves in a single transaction.
"""

import asyncio
import io
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core import grading
from app.core.config import settings
from app.core.enums import PromotionAction
from app.core.exceptions import ConflictError, NotFoundError, ServiceError, TransactionFailure, ValidationFailure
from app.core.models import (
    Course,
    CourseSubjectAssignment,
    Enrollment,
    GradeScale,
    Institution,
    Period,
    SchoolYear,
    Student,
    Subject,
)
from app.api.v1.promotion import service as promotion_service

from . import copy_service
from .enrollment_numbers import EnrollmentNumberSequence
from .schemas import (
    CourseToCopy,
    DecisionError,
    GradeScaleDetailItem,
    GradeScaleToCopy,
    NewSchoolYearProjection,
    PeriodToCopy,
    RolloverCounts,
    RolloverPlan,
    RolloverPreviewSummary,
    RolloverResult,
    SchoolYearSummary,
    StudentDecision,
    StudentPromotionPreview,
    SubjectToCopy,
    SubPeriodProjection,
)

logger = logging.getLogger(__name__)

COURSE_ACTIONS = (PromotionAction.PROMOTE, PromotionAction.REPEAT)

_institution_locks: Dict[UUID, asyncio.Lock] = {}
# Guards holding or waiting on each lock; the entry is dropped when this reaches 0
_institution_lock_users: Dict[UUID, int] = {}


def school_year_name(calendar_year: int) -> str:
    return f"{calendar_year}-{calendar_year + 1}"


def _institution_lock(institution_id: UUID) -> asyncio.Lock:
    lock = _institution_locks.get(institution_id)
    if lock is None:
        lock = asyncio.Lock()
        _institution_locks[institution_id] = lock
    _institution_lock_users[institution_id] = _institution_lock_users.get(institution_id, 0) + 1
    return lock


def _release_institution_lock(institution_id: UUID) -> None:
    users = _institution_lock_users[institution_id] - 1
    if users:
        _institution_lock_users[institution_id] = users
    else:
        del _institution_lock_users[institution_id]
        del _institution_locks[institution_id]


@asynccontextmanager
async def institution_guard(institution_id: UUID):
    """Serialize rollover work per institution; give up after rollover_max_wait_seconds."""
    lock = _institution_lock(institution_id)
    try:
        try:
            await asyncio.wait_for(lock.acquire(), timeout=settings.rollover_max_wait_seconds)
        except asyncio.TimeoutError:
            logger.warning("Rollover lock for institution %s not acquired in time", institution_id)
            raise TransactionFailure(
                "Another rollover is in progress for this institution, try again later",
                retryable=True,
            )
        try:
            yield
        finally:
            lock.release()
    finally:
        _release_institution_lock(institution_id)


# ----- loading -----


async def _get_institution_or_404(db: AsyncSession, institution_id: UUID) -> Institution:
    institution = await db.get(Institution, institution_id)
    if not institution:
        raise NotFoundError("Institution", institution_id)
    return institution


async def get_active_school_year(db: AsyncSession, institution_id: UUID) -> SchoolYear:
    result = await db.execute(
        select(SchoolYear).where(
            SchoolYear.institution_id == institution_id,
            SchoolYear.active.is_(True),
        )
    )
    school_year = result.scalars().first()
    if not school_year:
        raise NotFoundError("School year", message="No active school year for this institution")
    return school_year


async def _ensure_year_name_free(db: AsyncSession, institution_id: UUID, name: str) -> None:
    result = await db.execute(
        select(SchoolYear.id).where(
            SchoolYear.institution_id == institution_id,
            SchoolYear.name == name,
        )
    )
    if result.first() is not None:
        raise ConflictError(f"School year {name} already exists for this institution")


async def _load_courses(db: AsyncSession, school_year_id: UUID) -> List[Course]:
    result = await db.execute(
        select(Course).where(Course.school_year_id == school_year_id).order_by(Course.sort_order, Course.name)
    )
    return list(result.scalars().all())


async def _load_subjects(db: AsyncSession, institution_id: UUID, school_year_id: UUID) -> List[Subject]:
    result = await db.execute(
        select(Subject)
        .where(Subject.institution_id == institution_id, Subject.school_year_id == school_year_id)
        .order_by(Subject.code)
    )
    return list(result.scalars().all())


async def _load_periods(db: AsyncSession, school_year_id: UUID) -> List[Period]:
    result = await db.execute(
        select(Period)
        .where(Period.school_year_id == school_year_id)
        .options(selectinload(Period.sub_periods))
        .order_by(Period.order)
    )
    return list(result.scalars().all())


async def _load_assignments(db: AsyncSession, school_year_id: UUID) -> List[CourseSubjectAssignment]:
    result = await db.execute(
        select(CourseSubjectAssignment)
        .join(Course, CourseSubjectAssignment.course_id == Course.id)
        .where(Course.school_year_id == school_year_id)
        .options(selectinload(CourseSubjectAssignment.schedules))
    )
    return list(result.scalars().all())


async def _load_grade_scales(
    db: AsyncSession,
    institution_id: UUID,
    assignments: Sequence[CourseSubjectAssignment],
) -> List[GradeScale]:
    """Only the scales some assignment of the year actually uses."""
    scale_ids = {a.grade_scale_id for a in assignments if a.grade_scale_id is not None}
    if not scale_ids:
        return []
    result = await db.execute(
        select(GradeScale)
        .where(GradeScale.id.in_(list(scale_ids)), GradeScale.institution_id == institution_id)
        .options(selectinload(GradeScale.details))
        .order_by(GradeScale.name)
    )
    return list(result.scalars().all())


async def _load_students(db: AsyncSession, institution_id: UUID, course_ids: Sequence[UUID]) -> List[Student]:
    if not course_ids:
        return []
    result = await db.execute(
        select(Student)
        .where(
            Student.institution_id == institution_id,
            Student.current_course_id.in_(list(course_ids)),
            Student.withdrawn.is_(False),
        )
        .order_by(Student.full_name)
    )
    return list(result.scalars().all())


# ----- decisions -----


def validate_decisions(decisions: Sequence[StudentDecision], source_course_ids) -> List[DecisionError]:
    """Problems with the administrator's decisions, one entry per offending decision."""
    errors: List[DecisionError] = []
    seen = set()
    valid_actions = {a.value for a in PromotionAction}
    for index, decision in enumerate(decisions):
        message = None
        if not decision.action:
            message = "Missing action"
        elif decision.action not in valid_actions:
            message = f"Unknown action '{decision.action}'"
        elif decision.student_id in seen:
            message = "Duplicate decision for student"
        elif PromotionAction(decision.action) in COURSE_ACTIONS:
            if decision.target_course_id is None and decision.source_course_id is None:
                message = f"Action '{decision.action}' needs target_course_id or source_course_id"
            elif decision.target_course_id is not None and decision.target_course_id not in source_course_ids:
                message = "target_course_id is not a course of the current school year"
            elif decision.target_course_id is None and decision.source_course_id not in source_course_ids:
                message = "source_course_id is not a course of the current school year"
        seen.add(decision.student_id)
        if message:
            errors.append(DecisionError(index=index, student_id=decision.student_id, message=message))
    return errors


def resolve_target_course(decision: StudentDecision, course_map: Dict[UUID, UUID]) -> Optional[UUID]:
    """New-year course for a promote/repeat decision."""
    if decision.target_course_id is not None:
        return course_map.get(decision.target_course_id)
    if decision.source_course_id is not None:
        return course_map.get(decision.source_course_id)
    return None


# ----- preview -----


async def preview_rollover(
    db: AsyncSession,
    institution_id: UUID,
    target_year: int,
    decisions: Optional[Sequence[StudentDecision]] = None,
) -> RolloverPlan:
    """Read-only. Raises Conflict when the target year already exists."""
    await _get_institution_or_404(db, institution_id)
    async with institution_guard(institution_id):
        return await _build_plan(db, institution_id, target_year, decisions)


async def _build_plan(
    db: AsyncSession,
    institution_id: UUID,
    target_year: int,
    decisions: Optional[Sequence[StudentDecision]],
) -> RolloverPlan:
    source_year = await get_active_school_year(db, institution_id)
    new_name = school_year_name(target_year)
    await _ensure_year_name_free(db, institution_id, new_name)
    years = target_year - source_year.calendar_year

    courses = await _load_courses(db, source_year.id)
    course_by_id = {c.id: c for c in courses}
    subjects = await _load_subjects(db, institution_id, source_year.id)
    assignments = await _load_assignments(db, source_year.id)
    grade_scales = await _load_grade_scales(db, institution_id, assignments)
    periods = await _load_periods(db, source_year.id)
    regular_periods = [p for p in periods if not p.is_supplementary]
    students = await _load_students(db, institution_id, list(course_by_id.keys()))

    students_per_course: Dict[UUID, int] = {}
    passing: List[StudentPromotionPreview] = []
    failing: List[StudentPromotionPreview] = []
    for student in students:
        course = course_by_id[student.current_course_id]
        students_per_course[course.id] = students_per_course.get(course.id, 0) + 1
        status = await promotion_service.compute_promotion_status(
            db, student.id, source_year.id, course.id, periods=regular_periods
        )
        next_course = course_by_id.get(course.next_course_id) if course.next_course_id else None
        if status.passes and next_course is not None:
            suggested_action, suggested_course_id = PromotionAction.PROMOTE, next_course.id
        else:
            suggested_action, suggested_course_id = PromotionAction.UNASSIGN, None
        preview = StudentPromotionPreview(
            student_id=student.id,
            full_name=student.full_name,
            identification_number=student.identification_number,
            course_id=course.id,
            course_name=course.name,
            course_level=course.level,
            course_section=course.section,
            next_course_id=next_course.id if next_course else None,
            next_course_name=next_course.name if next_course else None,
            passes=status.passes,
            overall_average=status.overall_average,
            subjects=status.subjects,
            reason=status.reason,
            suggested_action=suggested_action.value,
            suggested_source_course_id=suggested_course_id,
        )
        (passing if status.passes else failing).append(preview)

    warnings: List[str] = []
    for period in periods:
        weights = [sp.weight_percent or 0 for sp in period.sub_periods]
        if not grading.sub_period_weights_within_limit(weights):
            total = sum((grading.to_decimal(w) for w in weights), grading.ZERO)
            warnings.append(f"Sub-period weights of period '{period.name}' add up to {total}%, above 100%")

    decision_errors: List[DecisionError] = []
    if decisions:
        decision_errors = validate_decisions(decisions, set(course_by_id.keys()))

    plan = RolloverPlan(
        current_school_year=SchoolYearSummary.model_validate(source_year),
        new_school_year=NewSchoolYearProjection(
            name=new_name,
            calendar_year=target_year,
            start_date=copy_service.shift_date(source_year.start_date, years),
            end_date=copy_service.shift_date(source_year.end_date, years),
        ),
        summary=RolloverPreviewSummary(
            total_courses=len(courses),
            total_subjects=len(subjects),
            total_periods=len(periods),
            total_grade_scales=len(grade_scales),
            total_students=len(students),
            students_passing=len(passing),
            students_failing=len(failing),
        ),
        courses=[
            CourseToCopy(
                id=c.id,
                name=c.name,
                level=c.level,
                section=c.section,
                capacity=c.capacity,
                next_course_id=c.next_course_id,
                next_course_name=course_by_id[c.next_course_id].name if c.next_course_id in course_by_id else None,
                total_students=students_per_course.get(c.id, 0),
            )
            for c in courses
        ],
        subjects=[
            SubjectToCopy(
                id=s.id,
                code=s.code,
                name=s.name,
                credits=s.credits or 1,
                hours=s.hours,
                minimum_supplementary_average=s.minimum_supplementary_average,
            )
            for s in subjects
        ],
        grade_scales=[
            GradeScaleToCopy(
                id=g.id,
                name=g.name,
                total_details=len(g.details),
                details=[
                    GradeScaleDetailItem(label=d.label, numeric_value=d.numeric_value, order=d.order or 0)
                    for d in g.details
                ],
            )
            for g in grade_scales
        ],
        periods=[_period_projection(p, years) for p in periods],
        students_passing=passing,
        students_failing=failing,
        warnings=warnings,
        decision_errors=decision_errors,
    )
    logger.info(
        "Rollover preview for institution %s into %s: %d courses, %d students (%d passing)",
        institution_id,
        new_name,
        len(courses),
        len(students),
        len(passing),
    )
    return plan


def _period_projection(period: Period, years: int) -> PeriodToCopy:
    sub_periods = sorted(period.sub_periods, key=lambda sp: sp.order or 0)
    return PeriodToCopy(
        id=period.id,
        name=period.name,
        order=period.order or 0,
        start_date=period.start_date,
        end_date=period.end_date,
        new_start_date=copy_service.shift_date(period.start_date, years),
        new_end_date=copy_service.shift_date(period.end_date, years),
        is_supplementary=bool(period.is_supplementary),
        minimum_passing_grade=grading.to_decimal(
            period.minimum_passing_grade
            if period.minimum_passing_grade is not None
            else settings.default_period_minimum_grade
        ),
        weight_percent=grading.to_decimal(period.weight_percent if period.weight_percent is not None else 100),
        total_sub_periods=len(sub_periods),
        sub_periods=[
            SubPeriodProjection(
                id=sp.id,
                name=sp.name,
                weight_percent=grading.to_decimal(sp.weight_percent),
                order=sp.order or 0,
                start_date=sp.start_date,
                end_date=sp.end_date,
                new_start_date=copy_service.shift_date(sp.start_date, years),
                new_end_date=copy_service.shift_date(sp.end_date, years),
            )
            for sp in sub_periods
        ],
    )


STUDENT_SHEET_HEADERS = [
    "student_id",
    "full_name",
    "identification_number",
    "course",
    "next_course",
    "passes",
    "overall_average",
    "reason",
    "suggested_action",
    "suggested_course_id",
]


def export_rollover_plan_xlsx(plan: RolloverPlan) -> bytes:
    """Workbook with Summary, Students, Courses and Periods sheets for offline review."""
    wb = Workbook()

    ws_summary = wb.active
    ws_summary.title = "Summary"
    ws_summary.append(["current_school_year", plan.current_school_year.name])
    ws_summary.append(["new_school_year", plan.new_school_year.name])
    ws_summary.append(["new_start_date", plan.new_school_year.start_date])
    ws_summary.append(["new_end_date", plan.new_school_year.end_date])
    for key, value in plan.summary.model_dump().items():
        ws_summary.append([key, value])
    for warning in plan.warnings:
        ws_summary.append(["warning", warning])

    ws_students = wb.create_sheet("Students")
    ws_students.append(STUDENT_SHEET_HEADERS)
    for s in plan.students_passing + plan.students_failing:
        ws_students.append(
            [
                str(s.student_id),
                s.full_name or "",
                s.identification_number or "",
                s.course_name,
                s.next_course_name or "",
                "yes" if s.passes else "no",
                float(s.overall_average),
                s.reason,
                s.suggested_action,
                str(s.suggested_source_course_id) if s.suggested_source_course_id else "",
            ]
        )

    ws_courses = wb.create_sheet("Courses")
    ws_courses.append(["course_id", "name", "level", "section", "capacity", "next_course", "students"])
    for c in plan.courses:
        ws_courses.append(
            [str(c.id), c.name, c.level, c.section or "", c.capacity, c.next_course_name or "", c.total_students]
        )

    ws_periods = wb.create_sheet("Periods")
    ws_periods.append(["name", "order", "supplementary", "new_start_date", "new_end_date", "sub_periods"])
    for p in plan.periods:
        ws_periods.append(
            [p.name, p.order, "yes" if p.is_supplementary else "no", p.new_start_date, p.new_end_date, p.total_sub_periods]
        )

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


# ----- execute -----


async def execute_rollover(
    db: AsyncSession,
    institution_id: UUID,
    target_year: int,
    decisions: Sequence[StudentDecision],
) -> RolloverResult:
    """
    Create the new school year from the active one and apply the student decisions.
    All or nothing: on any failure the session is rolled back and the previous
    year stays active.
    """
    await _get_institution_or_404(db, institution_id)
    async with institution_guard(institution_id):
        logger.info("Rollover for institution %s into %s started", institution_id, school_year_name(target_year))
        try:
            result = await asyncio.wait_for(
                _execute_steps(db, institution_id, target_year, decisions),
                timeout=settings.rollover_timeout_seconds,
            )
            await db.commit()
        except ServiceError:
            await db.rollback()
            raise
        except asyncio.TimeoutError:
            await db.rollback()
            logger.error("Rollover for institution %s timed out; rolled back", institution_id)
            raise TransactionFailure("School year rollover took too long and was rolled back", retryable=True)
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Rollover for institution %s hit a constraint: %s", institution_id, e.orig)
            raise ConflictError(f"School year {school_year_name(target_year)} was created concurrently or data conflicts")
        except Exception as e:
            await db.rollback()
            logger.exception("Rollover for institution %s failed; rolled back", institution_id)
            raise TransactionFailure(f"School year rollover failed and was rolled back: {e}")

    logger.info("Rollover for institution %s finished: %s", institution_id, result.summary.model_dump())
    return result


async def _execute_steps(
    db: AsyncSession,
    institution_id: UUID,
    target_year: int,
    decisions: Sequence[StudentDecision],
) -> RolloverResult:
    source_year = await get_active_school_year(db, institution_id)
    new_name = school_year_name(target_year)
    await _ensure_year_name_free(db, institution_id, new_name)

    courses = await _load_courses(db, source_year.id)
    errors = validate_decisions(decisions, {c.id for c in courses})
    if errors:
        raise ValidationFailure(
            f"{len(errors)} invalid student decision(s); nothing was changed",
            errors=[e.model_dump(mode="json") for e in errors],
        )

    years = target_year - source_year.calendar_year
    counts = RolloverCounts()

    source_year.active = False
    await db.flush()
    new_year = SchoolYear(
        id=uuid.uuid4(),
        institution_id=institution_id,
        calendar_year=target_year,
        name=new_name,
        start_date=copy_service.shift_date(source_year.start_date, years),
        end_date=copy_service.shift_date(source_year.end_date, years),
        active=True,
    )
    db.add(new_year)
    await db.flush()

    subject_map: Dict[UUID, UUID] = {}
    for subject in await _load_subjects(db, institution_id, source_year.id):
        new_subject, created = await copy_service.find_or_create_subject(db, subject, new_year.id)
        subject_map[subject.id] = new_subject.id
        if created:
            counts.subjects_copied += 1
        else:
            counts.subjects_reused += 1

    assignments = await _load_assignments(db, source_year.id)
    grade_scale_map: Dict[UUID, UUID] = {}
    for scale in await _load_grade_scales(db, institution_id, assignments):
        new_scale, created = await copy_service.find_or_create_grade_scale(db, scale, institution_id)
        grade_scale_map[scale.id] = new_scale.id
        if created:
            counts.grade_scales_copied += 1
        else:
            counts.grade_scales_reused += 1

    for period in await _load_periods(db, source_year.id):
        _, sub_period_count = await copy_service.copy_period(db, period, new_year.id, years)
        counts.periods_copied += 1
        counts.sub_periods_copied += sub_period_count

    course_map = await copy_service.copy_courses(db, courses, new_year.id)
    counts.courses_copied = len(course_map)

    counts.assignments_copied, counts.schedules_copied = await copy_service.copy_assignments(
        db, assignments, course_map, subject_map, grade_scale_map
    )

    await _apply_decisions(db, institution_id, source_year, new_year, decisions, course_map, counts)

    return RolloverResult(
        message=f"School year {new_name} created from {source_year.name}",
        previous_school_year_id=source_year.id,
        new_school_year=SchoolYearSummary.model_validate(new_year),
        summary=counts,
    )


async def _close_active_enrollment(db: AsyncSession, student_id: UUID, school_year_id: UUID, now: datetime) -> None:
    result = await db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.school_year_id == school_year_id,
            Enrollment.active.is_(True),
        )
    )
    for enrollment in result.scalars().all():
        enrollment.active = False
        enrollment.end_date = now


async def _apply_decisions(
    db: AsyncSession,
    institution_id: UUID,
    source_year: SchoolYear,
    new_year: SchoolYear,
    decisions: Sequence[StudentDecision],
    course_map: Dict[UUID, UUID],
    counts: RolloverCounts,
) -> None:
    sequence = EnrollmentNumberSequence(db, institution_id, new_year)
    now = datetime.utcnow()
    for decision in decisions:
        student = await db.get(Student, decision.student_id)
        if not student or student.institution_id != institution_id:
            logger.warning("Rollover: student %s not found in institution %s, skipped", decision.student_id, institution_id)
            counts.students_skipped += 1
            continue

        action = PromotionAction(decision.action)
        if action is PromotionAction.UNASSIGN:
            student.current_course_id = None
            await _close_active_enrollment(db, student.id, source_year.id, now)
            counts.students_unassigned += 1
            continue

        target_course_id = resolve_target_course(decision, course_map)
        if target_course_id is None:
            raise ValidationFailure(f"No new course for student {decision.student_id}")
        student.current_course_id = target_course_id
        db.add(
            Enrollment(
                id=uuid.uuid4(),
                student_id=student.id,
                course_id=target_course_id,
                school_year_id=new_year.id,
                institution_id=institution_id,
                enrollment_number=await sequence.next(),
                start_date=now,
                active=True,
            )
        )
        await _close_active_enrollment(db, student.id, source_year.id, now)
        if action is PromotionAction.PROMOTE:
            counts.students_promoted += 1
        else:
            counts.students_repeating += 1
    await db.flush()
