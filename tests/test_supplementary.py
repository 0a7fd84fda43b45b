"""Supplementary exam eligibility."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.supplementary import service
from app.api.v1.supplementary.schemas import PeriodAverage
from app.core.exceptions import NotFoundError, ValidationFailure

from factories import (
    add_grade,
    add_insumo_grade,
    assign_subject,
    create_course,
    create_institution,
    create_period,
    create_school_year,
    create_student,
    create_subject,
)


def _period_average(average: str, order: int, minimum: str = "7", weight: str = "100") -> PeriodAverage:
    avg = Decimal(average)
    return PeriodAverage(
        period_id=uuid.uuid4(),
        period_name=f"Trimestre {order}",
        order=order,
        average=avg,
        weighted_average=avg * Decimal(weight) / Decimal("100"),
        weight_percent=Decimal(weight),
        minimum_passing_grade=Decimal(minimum),
        has_grades=True,
    )


async def _three_term_year(db: AsyncSession):
    """Institution with three regular terms (minimum 7, weight 100) and one supplementary period."""
    institution = await create_institution(db)
    school_year = await create_school_year(db, institution)
    terms = []
    for order in (1, 2, 3):
        period, sub_periods = await create_period(db, school_year, f"Trimestre {order}", order)
        terms.append((period, sub_periods))
    supplementary, _ = await create_period(db, school_year, "Supletorio", 4, is_supplementary=True)
    subject = await create_subject(db, institution, school_year)
    course = await create_course(db, school_year, "Octavo A")
    await assign_subject(db, course, subject)
    return institution, school_year, terms, supplementary, subject, course


def test_qualifies_below_required_sum() -> None:
    assert service.qualifies_for_supplementary(Decimal("20"), Decimal("21"), 3) is True


def test_does_not_qualify_at_required_sum() -> None:
    assert service.qualifies_for_supplementary(Decimal("21"), Decimal("21"), 3) is False
    assert service.qualifies_for_supplementary(Decimal("25.50"), Decimal("21"), 3) is False


def test_zero_periods_never_qualifies() -> None:
    assert service.qualifies_for_supplementary(Decimal("0"), Decimal("0"), 0) is False


def test_lowest_periods_only_below_minimum_lowest_first() -> None:
    averages = [
        _period_average("6.50", 1),
        _period_average("8.00", 2),
        _period_average("5.10", 3),
        _period_average("7.00", 4),
    ]
    lowest = service.lowest_periods(averages)
    assert [pa.order for pa in lowest] == [3, 1]


def test_replace_with_supplementary_keeps_original_and_order() -> None:
    averages = [_period_average("6.50", 1), _period_average("8.00", 2), _period_average("5.10", 3)]
    replaced = service.replace_with_supplementary(averages, Decimal("7.5"))

    assert [pa.order for pa in replaced] == [1, 2, 3]
    assert replaced[0].average == Decimal("7.50")
    assert replaced[0].original_average == Decimal("6.50")
    assert replaced[0].replaced_by_supplementary is True
    assert replaced[1] is averages[1]
    assert replaced[2].original_average == Decimal("5.10")
    # Input untouched
    assert averages[0].average == Decimal("6.50")
    assert averages[0].replaced_by_supplementary is False


@pytest.mark.asyncio
async def test_general_average_20_qualifies(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, course = await _three_term_year(db_session)
    student = await create_student(db_session, institution, course)
    for (period, sub_periods), score in zip(terms, (7, 7, 6)):
        await add_grade(db_session, student, subject, sub_periods[0], score)

    result = await service.compute_supplementary_eligibility(db_session, student.id, subject.id, school_year.id)

    assert result.general_average == Decimal("20.00")
    assert result.minimum_required_sum == Decimal("21")
    assert result.period_count == 3
    assert result.minimum_average_per_period == Decimal("7.00")
    assert result.qualifies is True
    assert [pa.period_name for pa in result.lowest_periods] == ["Trimestre 3"]


@pytest.mark.asyncio
async def test_general_average_21_does_not_qualify(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, course = await _three_term_year(db_session)
    student = await create_student(db_session, institution, course)
    for period, sub_periods in terms:
        await add_grade(db_session, student, subject, sub_periods[0], 7)

    result = await service.compute_supplementary_eligibility(db_session, student.id, subject.id, school_year.id)

    assert result.general_average == Decimal("21.00")
    assert result.qualifies is False
    assert result.lowest_periods == []


@pytest.mark.asyncio
async def test_period_without_grades_counts_as_zero(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, course = await _three_term_year(db_session)
    student = await create_student(db_session, institution, course)
    await add_grade(db_session, student, subject, terms[0][1][0], 10)
    await add_grade(db_session, student, subject, terms[1][1][0], 10)

    averages = await service.compute_student_general_average(db_session, student.id, subject.id, school_year.id)

    assert averages.general_average == Decimal("20.00")
    assert [pa.has_grades for pa in averages.period_averages] == [True, True, False]
    assert averages.period_averages[2].average == Decimal("0.00")


@pytest.mark.asyncio
async def test_supplementary_periods_excluded_from_required_sum(db_session: AsyncSession) -> None:
    _, school_year, _, _, _, _ = await _three_term_year(db_session)
    assert await service.minimum_required_sum(db_session, school_year.id) == Decimal("21")


@pytest.mark.asyncio
async def test_grades_through_insumos_are_aggregated(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, course = await _three_term_year(db_session)
    student = await create_student(db_session, institution, course)
    sub_period = terms[0][1][0]
    await add_grade(db_session, student, subject, sub_period, 9)
    await add_insumo_grade(db_session, student, subject, sub_period, Decimal("6.995"))

    averages = await service.compute_student_general_average(db_session, student.id, subject.id, school_year.id)

    # (9 + 6.995) / 2 = 7.9975
    assert averages.period_averages[0].average == Decimal("7.99")


@pytest.mark.asyncio
async def test_apply_supplementary_score_replaces_weak_periods(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, course = await _three_term_year(db_session)
    student = await create_student(db_session, institution, course)
    for (period, sub_periods), score in zip(terms, (5, 8, 6)):
        await add_grade(db_session, student, subject, sub_periods[0], score)

    result = await service.apply_supplementary_score(
        db_session, student.id, subject.id, school_year.id, Decimal("9")
    )

    assert result.original_general_average == Decimal("19.00")
    assert result.adjusted_general_average == Decimal("26.00")
    assert result.replaced_period_ids == [terms[0][0].id, terms[2][0].id]


@pytest.mark.asyncio
async def test_eligibility_unknown_student_is_not_found(db_session: AsyncSession) -> None:
    _, school_year, _, _, subject, _ = await _three_term_year(db_session)
    with pytest.raises(NotFoundError):
        await service.compute_supplementary_eligibility(db_session, uuid.uuid4(), subject.id, school_year.id)


@pytest.mark.asyncio
async def test_list_eligible_students(db_session: AsyncSession) -> None:
    institution, school_year, terms, supplementary, subject, course = await _three_term_year(db_session)
    weak = await create_student(db_session, institution, course, full_name="Bruno Weak")
    strong = await create_student(db_session, institution, course, full_name="Carla Strong")
    withdrawn = await create_student(db_session, institution, course, full_name="Diego Gone", withdrawn=True)
    for period, sub_periods in terms:
        await add_grade(db_session, weak, subject, sub_periods[0], 5)
        await add_grade(db_session, strong, subject, sub_periods[0], 9)
        await add_grade(db_session, withdrawn, subject, sub_periods[0], 2)

    response = await service.list_students_eligible_for_supplementary(
        db_session, institution.id, subject.id, school_year.id, period_id=supplementary.id
    )

    assert response.total == 1
    assert response.data[0].student_id == weak.id
    assert response.data[0].general_average == Decimal("15.00")
    assert response.minimum_required_sum == Decimal("21")


@pytest.mark.asyncio
async def test_list_eligible_students_rejects_regular_period(db_session: AsyncSession) -> None:
    institution, school_year, terms, _, subject, _ = await _three_term_year(db_session)
    with pytest.raises(ValidationFailure):
        await service.list_students_eligible_for_supplementary(
            db_session, institution.id, subject.id, school_year.id, period_id=terms[0][0].id
        )
