"""
FastAPI dependency providers for the scheduler, analytics and AI services.

Tests swap these out through app.dependency_overrides.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .integrations.llm import ContentAdvisor
from .worker.analytics_cache import AnalyticsService
from .worker.platform_publish import PlatformPublisher
from .worker.scheduler import PostScheduler


def get_platform_publisher() -> PlatformPublisher:
    return PlatformPublisher(get_settings())


def get_post_scheduler(
    db: Session = Depends(get_db),
    publisher: PlatformPublisher = Depends(get_platform_publisher),
) -> PostScheduler:
    return PostScheduler(db, publisher, get_settings())


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db, get_settings())


def get_content_advisor() -> ContentAdvisor:
    """Raises ConfigurationError (503) when no LLM key is set"""
    return ContentAdvisor(get_settings())
