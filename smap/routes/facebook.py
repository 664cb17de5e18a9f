"""
Facebook publishing routes: one-shot publish and publish history.
"""
from fastapi import APIRouter, Depends

from ..auth import get_required_user
from ..dependencies import get_platform_publisher, get_post_scheduler
from ..logging_config import api_logger
from ..models.enums import Platform
from ..models.user import User
from ..responses import require, success
from ..schemas.scheduled_post import FacebookPublishRequest
from ..worker.platform_publish import PlatformPublisher, PublishContent
from ..worker.scheduler import PostScheduler

router = APIRouter(prefix="/api/facebook", tags=["facebook"])


@router.post("/publish")
def publish_now(
    data: FacebookPublishRequest,
    current_user: User = Depends(get_required_user),
    publisher: PlatformPublisher = Depends(get_platform_publisher),
):
    """Publish content to the user's Facebook page without storing a post."""
    require(data.message, "message", "Message")
    connection = current_user.get_connection(Platform.FACEBOOK.value)
    content = PublishContent(
        message=data.message,
        link=data.link,
        media_urls=list(data.media_urls),
        media_type=data.media_type.value,
    )
    result = publisher.publish(Platform.FACEBOOK.value, connection, content)
    api_logger.info("One-shot Facebook publish", user_id=current_user.id, post_id=result.post_id)
    return success(
        {
            "post_id": result.post_id,
            "post_url": result.url,
            "facebook_response": result.response,
        },
        "Post published successfully to Facebook",
    )


@router.get("/publish")
def publish_history(
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Recently published and failed Facebook posts."""
    history = scheduler.history(current_user, Platform.FACEBOOK.value)
    return success({
        "published_posts": [post.to_dict() for post in history["published_posts"]],
        "failed_posts": [post.to_dict() for post in history["failed_posts"]],
    })
