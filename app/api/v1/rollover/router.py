from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError, ValidationFailure
from app.db.session import get_db

from .schemas import RolloverExecute, RolloverPlan, RolloverPreviewRequest, RolloverResult
from . import service

router = APIRouter(prefix="/api/v1/institutions/{institution_id}/rollover", tags=["rollover"])


@router.get("/preview", response_model=RolloverPlan)
async def preview_rollover(
    institution_id: UUID,
    target_year: int = Query(..., ge=1900, le=9998),
    db: AsyncSession = Depends(get_db),
) -> RolloverPlan:
    """What a rollover into target_year would copy, and which students pass. Read-only."""
    try:
        return await service.preview_rollover(db, institution_id, target_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/preview", response_model=RolloverPlan)
async def preview_rollover_with_decisions(
    institution_id: UUID,
    payload: RolloverPreviewRequest,
    db: AsyncSession = Depends(get_db),
) -> RolloverPlan:
    """Same as GET preview, plus validation of the supplied decisions (reported in decision_errors)."""
    try:
        return await service.preview_rollover(db, institution_id, payload.target_year, payload.decisions)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/preview.xlsx")
async def export_rollover_preview(
    institution_id: UUID,
    target_year: int = Query(..., ge=1900, le=9998),
    db: AsyncSession = Depends(get_db),
):
    try:
        plan = await service.preview_rollover(db, institution_id, target_year)
        content = service.export_rollover_plan_xlsx(plan)
        return Response(
            content=content,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f"attachment; filename=rollover_{target_year}.xlsx"},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/execute", response_model=RolloverResult, status_code=status.HTTP_201_CREATED)
async def execute_rollover(
    institution_id: UUID,
    payload: RolloverExecute,
    db: AsyncSession = Depends(get_db),
) -> RolloverResult:
    """Create the new school year and move the students. All or nothing."""
    try:
        return await service.execute_rollover(db, institution_id, payload.target_year, payload.decisions)
    except ValidationFailure as e:
        raise HTTPException(status_code=e.status_code, detail={"message": e.message, "errors": e.errors})
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
