from .auth import UserCreate, UserLogin, UserResponse, TokenResponse, RefreshRequest
from .scheduled_post import (
    PostContent,
    ScheduledPostCreate,
    ScheduledPostUpdate,
    FacebookPublishRequest,
    ProcessResult,
    ProcessSummary,
)
from .ai import CaptionRequest, SentimentRequest

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse", "RefreshRequest",
    "PostContent", "ScheduledPostCreate", "ScheduledPostUpdate", "FacebookPublishRequest",
    "ProcessResult", "ProcessSummary",
    "CaptionRequest", "SentimentRequest",
]
