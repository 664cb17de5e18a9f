"""
ScheduledPost model for queued platform posts.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..clock import utcnow, isoformat
from ..database import Base
from .enums import PostStatus, MediaType

MAX_MESSAGE_LENGTH = 5000


class ScheduledPost(Base):
    __tablename__ = "scheduled_posts"
    __table_args__ = (
        # Due-post lookups filter on status and order by scheduled_time
        Index("ix_scheduled_posts_status_time", "status", "scheduled_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(20), nullable=False)  # facebook, instagram, youtube, tiktok
    page_id = Column(String(100), nullable=True)
    page_name = Column(String(255), nullable=True)

    # Content
    message = Column(Text, nullable=False)
    link = Column(String(2048), nullable=True)
    media_urls = Column(JSON, default=list)
    media_type = Column(String(10), nullable=False, default=MediaType.NONE.value)

    # Scheduling
    scheduled_time = Column(DateTime, nullable=False, index=True)
    timezone = Column(String(64), default="UTC")  # display only
    status = Column(String(20), nullable=False, default=PostStatus.SCHEDULED.value, index=True)

    # Outcome
    published_at = Column(DateTime, nullable=True)
    published_post_id = Column(String(255), nullable=True)
    published_post_url = Column(String(2048), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    # Provenance
    ai_generated = Column(Boolean, default=False)
    ai_prompt = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="scheduled_posts")

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "platform": self.platform,
            "page_id": self.page_id,
            "page_name": self.page_name,
            "content": {
                "message": self.message,
                "link": self.link,
                "media_urls": self.media_urls or [],
                "media_type": self.media_type,
            },
            "scheduled_time": isoformat(self.scheduled_time),
            "timezone": self.timezone,
            "status": self.status,
            "published_at": isoformat(self.published_at),
            "published_post_id": self.published_post_id,
            "published_post_url": self.published_post_url,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "ai_generated": bool(self.ai_generated),
            "ai_prompt": self.ai_prompt,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
