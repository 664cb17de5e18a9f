"""
Enumerations shared by models, schemas and workers.
"""
from enum import Enum


class Platform(str, Enum):
    """Supported social platforms"""
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"


class PostStatus(str, Enum):
    """Scheduled post lifecycle"""
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MediaType(str, Enum):
    NONE = "none"
    IMAGE = "image"
    VIDEO = "video"
    LINK = "link"


TERMINAL_STATUSES = {PostStatus.PUBLISHED, PostStatus.CANCELLED, PostStatus.FAILED}
