"""
Analytics report routes for the admin dashboard.

Every endpoint returns ``{"success": true, "data": {...}}``.
"""
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from skillconnect.api.dependencies import get_admin_user, get_db
from skillconnect.api.schemas import CamelModel
from skillconnect.models.users import User
from skillconnect.services.report_service import ReportService


router = APIRouter(prefix="/reports", tags=["reports"])


class ReportResponse(CamelModel):
    success: bool = True
    data: Any


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


@router.get("/totals", response_model=ReportResponse)
def totals(
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    """Active users, active providers and total population (banned included)."""
    return ReportResponse(data=reports.totals())


@router.get("/demographics", response_model=ReportResponse)
def demographics(
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    return ReportResponse(data=reports.demographics())


@router.get("/skills", response_model=ReportResponse)
def skills(
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    return ReportResponse(data=reports.skills())


@router.get("/skilled-per-trade", response_model=ReportResponse)
def skilled_per_trade(
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    return ReportResponse(data=reports.skilled_per_trade())


@router.get("/most-booked-services", response_model=ReportResponse)
def most_booked_services(
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    return ReportResponse(data=reports.most_booked_services())


@router.get("/totals-over-time", response_model=ReportResponse)
def totals_over_time(
    months: int = Query(12, ge=1, le=60, description="Number of months, ending with the current one"),
    admin: User = Depends(get_admin_user),
    reports: ReportService = Depends(get_report_service),
) -> ReportResponse:
    return ReportResponse(data=reports.totals_over_time(months=months))
