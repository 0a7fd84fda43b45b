from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import EligibilityResult, EligibleStudentsResponse, SupplementaryApply, SupplementaryApplyResult
from . import service

router = APIRouter(prefix="/api/v1", tags=["supplementary"])


@router.get(
    "/supplementary/eligibility",
    response_model=EligibilityResult,
)
async def get_student_supplementary_eligibility(
    student_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> EligibilityResult:
    """Whether the student may sit the supplementary exam of the subject, with all period averages."""
    try:
        return await service.compute_supplementary_eligibility(db, student_id, subject_id, school_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/supplementary/apply",
    response_model=SupplementaryApplyResult,
)
async def apply_supplementary_score(
    payload: SupplementaryApply,
    db: AsyncSession = Depends(get_db),
) -> SupplementaryApplyResult:
    """Preview the general average after replacing the weak periods with the supplementary score. Nothing is stored."""
    try:
        return await service.apply_supplementary_score(
            db,
            payload.student_id,
            payload.subject_id,
            payload.school_year_id,
            payload.supplementary_score,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/institutions/{institution_id}/supplementary/eligible-students",
    response_model=EligibleStudentsResponse,
)
async def list_students_eligible_for_supplementary(
    institution_id: UUID,
    subject_id: UUID,
    school_year_id: UUID,
    period_id: Optional[UUID] = Query(None, description="Supplementary period the exam belongs to"),
    db: AsyncSession = Depends(get_db),
) -> EligibleStudentsResponse:
    try:
        return await service.list_students_eligible_for_supplementary(
            db, institution_id, subject_id, school_year_id, period_id=period_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
