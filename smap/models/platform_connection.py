"""
PlatformConnection model: one OAuth-connected social account per user and platform,
carrying the latest analytics snapshot and its summary counters.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from ..clock import utcnow, isoformat
from ..database import Base


class PlatformConnection(Base):
    __tablename__ = "platform_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_platform_connections_user_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    is_connected = Column(Boolean, default=False, nullable=False)

    # Credentials
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    page_access_token = Column(Text, nullable=True)  # facebook / instagram page token
    token_expires_at = Column(DateTime, nullable=True)

    # Account identity
    account_id = Column(String(255), nullable=True)  # channel id, IG business id, TikTok open id
    page_id = Column(String(255), nullable=True)
    account_name = Column(String(255), nullable=True)  # channel title, page name, username
    category = Column(String(255), nullable=True)

    # Summary counters, written together with the snapshot
    followers_count = Column(Integer, default=0)  # subscribers / fans / followers
    media_count = Column(Integer, default=0)  # videos / posts
    view_count = Column(Integer, default=0)
    engagement_count = Column(Integer, default=0)  # likes, talking-about

    # Analytics snapshot
    latest_analytics = Column(JSON, nullable=True)
    last_analytics_update = Column(DateTime, nullable=True)
    last_synced = Column(DateTime, nullable=True)

    connected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="connections")

    def to_dict(self) -> dict:
        """Public view of the connection; never includes tokens"""
        return {
            "id": self.id,
            "platform": self.platform,
            "is_connected": self.is_connected,
            "account_id": self.account_id,
            "page_id": self.page_id,
            "account_name": self.account_name,
            "category": self.category,
            "followers_count": self.followers_count or 0,
            "media_count": self.media_count or 0,
            "view_count": self.view_count or 0,
            "engagement_count": self.engagement_count or 0,
            "last_analytics_update": isoformat(self.last_analytics_update),
            "last_synced": isoformat(self.last_synced),
            "connected_at": isoformat(self.connected_at),
        }
