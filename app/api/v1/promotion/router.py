from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db

from .schemas import PromotionStatus
from . import service

router = APIRouter(prefix="/api/v1/promotion", tags=["promotion"])


@router.get(
    "/status",
    response_model=PromotionStatus,
)
async def get_promotion_status(
    student_id: UUID,
    school_year_id: UUID,
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PromotionStatus:
    """Pass/fail for the student in the course. Always 200; missing data shows up in `reason`."""
    return await service.compute_promotion_status(db, student_id, school_year_id, course_id)
