"""
Scheduled post routes: authoring, cancellation, publish-now and the batch trigger.
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_required_user
from ..config import get_settings
from ..dependencies import get_post_scheduler
from ..logging_config import api_logger
from ..models.enums import Platform, PostStatus
from ..models.user import User
from ..responses import ApiException, created, paginated, success, unauthorized, updated
from ..schemas.scheduled_post import ScheduledPostCreate, ScheduledPostUpdate
from ..worker.scheduler import PostScheduler

router = APIRouter(prefix="/api/scheduled-posts", tags=["scheduled-posts"])


def _check_cron_secret(secret: Optional[str]):
    expected = get_settings().cron_secret
    if expected and not hmac.compare_digest(secret or "", expected):
        api_logger.warning("Rejected batch trigger with bad secret")
        unauthorized("Invalid cron secret")


# The batch trigger is registered before /{post_id} so "process" is never read as an id
@router.api_route("/process", methods=["GET", "POST"])
def process_due_posts(
    secret: Optional[str] = Query(None),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Publish every due post (up to the batch size). Meant for cron callers."""
    _check_cron_secret(secret)
    summary = scheduler.process_due_posts()
    message = f"Processed {summary.processed} posts" if summary.results else "No posts to process"
    return success(summary.model_dump(), message)


@router.post("", status_code=201)
def create_scheduled_post(
    data: ScheduledPostCreate,
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Schedule a post for one of the user's connected platforms."""
    post = scheduler.create(current_user, data)
    return created(post.to_dict(), "Post scheduled successfully")


@router.get("")
def list_scheduled_posts(
    status: Optional[PostStatus] = Query(None),
    platform: Optional[Platform] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """List the user's scheduled posts, soonest first."""
    items, total = scheduler.list_posts(
        current_user,
        status=status.value if status else None,
        platform=platform.value if platform else None,
        page=page,
        limit=limit,
    )
    return paginated([post.to_dict() for post in items], total, page, limit)


@router.get("/{post_id}")
def get_scheduled_post(
    post_id: int,
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    return success(scheduler.get_post(current_user, post_id).to_dict())


@router.patch("/{post_id}")
def update_scheduled_post(
    post_id: int,
    data: ScheduledPostUpdate,
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Edit a post that has not started publishing yet."""
    post = scheduler.update(current_user, post_id, data)
    return updated(post.to_dict(), "Post updated successfully")


@router.delete("/{post_id}")
def cancel_scheduled_post(
    post_id: int,
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Cancel a scheduled post. The record is kept with status 'cancelled'."""
    post = scheduler.cancel(current_user, post_id)
    return success(post.to_dict(), "Post cancelled successfully")


@router.post("/{post_id}/publish")
def publish_scheduled_post(
    post_id: int,
    current_user: User = Depends(get_required_user),
    scheduler: PostScheduler = Depends(get_post_scheduler),
):
    """Publish a stored post right away."""
    post, result = scheduler.publish_now(current_user, post_id)
    if not result.success:
        raise ApiException(502, result.error or "Failed to publish post", "PLATFORM_ERROR", {"post": post.to_dict()})
    return success(
        {"post": post.to_dict(), "result": result.model_dump()},
        "Post published successfully",
    )
