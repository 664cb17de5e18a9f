"""
Analytics routes backed by the per-connection snapshot cache.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_required_user
from ..dependencies import get_analytics_service
from ..models.enums import Platform
from ..models.user import User
from ..responses import success
from ..worker.analytics_cache import AnalyticsService

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/overview")
def get_analytics_overview(
    current_user: User = Depends(get_required_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Stored counters for every connected platform, plus totals."""
    return success(service.overview(current_user))


@router.get("/{platform}")
def get_platform_analytics(
    platform: Platform,
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to 30 days ago"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    force_refresh: bool = Query(False),
    current_user: User = Depends(get_required_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Analytics for one platform; served from cache when younger than an hour."""
    return success(service.get_analytics(current_user, platform.value, start_date, end_date, force_refresh))


@router.post("/{platform}/refresh")
def refresh_platform_analytics(
    platform: Platform,
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    current_user: User = Depends(get_required_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return success(
        service.refresh(current_user, platform.value, start_date, end_date),
        "Analytics refreshed",
    )
