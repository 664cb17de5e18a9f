from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from ..models.enums import Platform, MediaType


class PostContent(BaseModel):
    message: str
    link: Optional[str] = None
    media_urls: List[str] = []
    media_type: MediaType = MediaType.NONE


class ScheduledPostCreate(PostContent):
    platform: Platform
    scheduled_time: datetime
    timezone: str = "UTC"
    ai_generated: bool = False
    ai_prompt: Optional[str] = None


class ScheduledPostUpdate(BaseModel):
    message: Optional[str] = None
    link: Optional[str] = None
    media_urls: Optional[List[str]] = None
    media_type: Optional[MediaType] = None
    scheduled_time: Optional[datetime] = None
    timezone: Optional[str] = None


class FacebookPublishRequest(PostContent):
    """One-shot publish of content not tied to a stored post"""
    pass


class ProcessResult(BaseModel):
    success: bool
    post_id: int
    platform: Optional[str] = None
    published_post_id: Optional[str] = None
    published_post_url: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False


class ProcessSummary(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[ProcessResult] = Field(default_factory=list)
