from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date, timedelta
from typing import Optional

from ..core.permissions import require_manager_up
from ..services.reports import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/low-stock")
async def low_stock_report(current_user: dict = Depends(require_manager_up)):
    return ReportService.low_stock_report(current_user["restaurant_id"])


@router.get("/inventory-value")
async def inventory_value_report(current_user: dict = Depends(require_manager_up)):
    return ReportService.inventory_value_report(current_user["restaurant_id"])


@router.get("/summary")
async def revenue_summary(current_user: dict = Depends(require_manager_up)):
    return ReportService.summary(current_user["restaurant_id"])


@router.get("/daily")
async def daily_revenue(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: dict = Depends(require_manager_up)
):
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=6)
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    if (end_date - start_date).days > 366:
        raise HTTPException(status_code=400, detail="Date range cannot exceed one year")

    return {
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "days": ReportService.daily_revenue(current_user["restaurant_id"], start_date, end_date),
    }
