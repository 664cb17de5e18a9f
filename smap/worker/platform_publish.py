"""
Platform Publish Integration

Publish post content to a connected account:
- Facebook Pages (via the Graph API)

Other platforms are recognised but rejected with a PlatformError so the
scheduler records the attempt as a failure.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import requests

from ..config import Settings, get_settings
from ..exceptions import PlatformError, PlatformNotConnectedError
from ..integrations.meta import MetaClient
from ..logging_config import platform_logger
from ..models.enums import MediaType, Platform
from .formatting import html_to_plain_text, transmittable_media

FACEBOOK_POST_URL = "https://facebook.com/{post_id}"


@dataclass
class PublishContent:
    """What gets sent, independent of where it is stored"""
    message: str
    link: Optional[str] = None
    media_urls: List[str] = field(default_factory=list)
    media_type: str = MediaType.NONE.value
    page_id: Optional[str] = None

    @classmethod
    def from_post(cls, post) -> "PublishContent":
        return cls(
            message=post.message,
            link=post.link,
            media_urls=list(post.media_urls or []),
            media_type=post.media_type or MediaType.NONE.value,
            page_id=post.page_id,
        )


@dataclass
class PublishResult:
    """Result of a successful publish"""
    platform: str
    post_id: str
    url: str
    response: Dict = field(default_factory=dict)


# ============================================================
# FACEBOOK
# ============================================================

def facebook_request(page_id: str, content: PublishContent) -> Tuple[str, dict]:
    """
    Pick the Graph endpoint and body for a piece of content.

    Returns (path, body) without the access token.
    """
    media_type = getattr(content.media_type, "value", content.media_type)
    media = transmittable_media(content.media_urls)
    body = {"message": html_to_plain_text(content.message)}

    if media_type == MediaType.IMAGE.value and media:
        body["url"] = media[0]
        return f"{page_id}/photos", body
    if media_type == MediaType.VIDEO.value and media:
        body["file_url"] = media[0]
        return f"{page_id}/videos", body

    if media_type == MediaType.LINK.value and content.link:
        body["link"] = content.link
    return f"{page_id}/feed", body


class FacebookPublisher:
    """Publish to a Facebook Page with its page access token"""

    platform = Platform.FACEBOOK.value

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session

    def publish(self, connection, content: PublishContent) -> PublishResult:
        if connection is None or not connection.is_connected or not connection.page_access_token:
            raise PlatformNotConnectedError(
                self.platform,
                "Facebook page not connected. Please connect your Facebook page first.",
            )

        # A stored post keeps the page it was scheduled for
        page_id = content.page_id or connection.page_id
        path, body = facebook_request(page_id, content)
        client = MetaClient(connection.page_access_token, self.settings, self.session)
        data = client.post(path, body)

        post_id = data.get("id") or data.get("post_id")
        if not post_id:
            raise PlatformError(self.platform, "Facebook response did not include a post id")

        platform_logger.info("Published to Facebook", page_id=page_id, post_id=post_id, endpoint=path)
        return PublishResult(
            platform=self.platform,
            post_id=str(post_id),
            url=FACEBOOK_POST_URL.format(post_id=post_id),
            response=data,
        )


# ============================================================
# UNIFIED PUBLISHER
# ============================================================

class PlatformPublisher:
    """Unified interface for all platform publishing"""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.publishers = {
            Platform.FACEBOOK.value: FacebookPublisher(settings, session),
        }

    def supported_platforms(self) -> List[str]:
        return list(self.publishers)

    def publish(self, platform: str, connection, content: PublishContent) -> PublishResult:
        """Publish to the given platform; raises PlatformError when it cannot"""
        platform = getattr(platform, "value", platform)
        publisher = self.publishers.get(platform)
        if publisher is None:
            raise PlatformError(platform, f"Publishing to {platform} is not supported")
        return publisher.publish(connection, content)
