from .enums import Platform, PostStatus, MediaType
from .user import User
from .platform_connection import PlatformConnection
from .scheduled_post import ScheduledPost

__all__ = [
    "Platform",
    "PostStatus",
    "MediaType",
    "User",
    "PlatformConnection",
    "ScheduledPost",
]
