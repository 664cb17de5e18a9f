"""
Scheduled Post Processing

Queue posts for publishing at a specific time:
- Validate and store posts for a connected account
- Detect due posts, oldest first, in bounded batches
- Claim each post atomically before calling the platform
- Record the outcome, retrying until max_retries is reached

Runs from the /api/scheduled-posts/process endpoint or the cron script in
scripts/process_scheduled_posts.py.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..clock import to_utc, utcnow
from ..config import Settings, get_settings
from ..exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PlatformNotConnectedError,
    SmapError,
    ValidationError,
)
from ..logging_config import scheduler_logger
from ..models.enums import TERMINAL_STATUSES, Platform, PostStatus
from ..models.scheduled_post import MAX_MESSAGE_LENGTH, ScheduledPost
from ..models.user import User
from ..schemas.scheduled_post import (
    ProcessResult,
    ProcessSummary,
    ScheduledPostCreate,
    ScheduledPostUpdate,
)
from .platform_publish import PlatformPublisher, PublishContent


def select_due_posts(db: Session, now: datetime, limit: int = 10) -> List[ScheduledPost]:
    """Scheduled posts whose time has come, oldest first, at most `limit`"""
    return (
        db.query(ScheduledPost)
        .filter(
            ScheduledPost.status == PostStatus.SCHEDULED.value,
            ScheduledPost.scheduled_time <= to_utc(now),
        )
        .order_by(ScheduledPost.scheduled_time.asc(), ScheduledPost.id.asc())
        .limit(limit)
        .all()
    )


def _validate_message(message: Optional[str]) -> str:
    if message is None or not message.strip():
        raise ValidationError("Message is required", "message")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters", "message")
    return message


def _validate_time(scheduled_time: Optional[datetime], now: datetime) -> datetime:
    if scheduled_time is None:
        raise ValidationError("Scheduled time is required", "scheduled_time")
    scheduled_time = to_utc(scheduled_time)
    if scheduled_time <= now:
        raise ValidationError("Scheduled time must be in the future", "scheduled_time")
    return scheduled_time


class PostScheduler:
    """
    Lifecycle of scheduled posts for one database session.

    States: scheduled -> publishing -> published | failed, and
    scheduled -> cancelled. Every transition out of `scheduled` or
    `publishing` is a conditional UPDATE so two workers can never both act
    on the same post.
    """

    def __init__(
        self,
        db: Session,
        publisher: Optional[PlatformPublisher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.publisher = publisher or PlatformPublisher(self.settings)

    # ============================================================
    # AUTHORING
    # ============================================================

    def create(self, user: User, data: ScheduledPostCreate) -> ScheduledPost:
        now = utcnow()
        message = _validate_message(data.message)
        scheduled_time = _validate_time(data.scheduled_time, now)
        platform = data.platform.value
        if platform not in self.publisher.supported_platforms():
            raise ValidationError(f"Scheduling posts for {platform} is not supported yet", "platform")

        connection = user.get_connection(platform)
        if connection is None or not connection.is_connected:
            raise PlatformNotConnectedError(platform)
        if platform == Platform.FACEBOOK.value and not connection.page_access_token:
            raise PlatformNotConnectedError(
                platform,
                "Facebook page not connected. Please connect your Facebook page first.",
            )

        post = ScheduledPost(
            user_id=user.id,
            platform=platform,
            page_id=connection.page_id,
            page_name=connection.account_name,
            message=message,
            link=data.link,
            media_urls=list(data.media_urls or []),
            media_type=data.media_type.value,
            scheduled_time=scheduled_time,
            timezone=data.timezone or "UTC",
            status=PostStatus.SCHEDULED.value,
            retry_count=0,
            max_retries=self.settings.default_max_retries,
            ai_generated=data.ai_generated,
            ai_prompt=data.ai_prompt,
        )
        self.db.add(post)
        self.db.commit()
        self.db.refresh(post)

        scheduler_logger.info(
            "Post scheduled",
            post_id=post.id,
            user_id=user.id,
            platform=platform,
            scheduled_time=post.scheduled_time.isoformat(),
        )
        return post

    def get_post(self, user: User, post_id: int) -> ScheduledPost:
        post = (
            self.db.query(ScheduledPost)
            .filter(ScheduledPost.id == post_id, ScheduledPost.user_id == user.id)
            .first()
        )
        if post is None:
            raise NotFoundError("Scheduled post", post_id)
        return post

    def list_posts(
        self,
        user: User,
        status: Optional[str] = None,
        platform: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[ScheduledPost], int]:
        query = self.db.query(ScheduledPost).filter(ScheduledPost.user_id == user.id)
        if status:
            query = query.filter(ScheduledPost.status == status)
        if platform:
            query = query.filter(ScheduledPost.platform == platform)

        total = query.count()
        items = (
            query.order_by(ScheduledPost.scheduled_time.asc(), ScheduledPost.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def update(self, user: User, post_id: int, data: ScheduledPostUpdate) -> ScheduledPost:
        post = self.get_post(user, post_id)
        if post.status != PostStatus.SCHEDULED.value:
            raise InvalidTransitionError(
                post.status,
                PostStatus.SCHEDULED.value,
                f"Only scheduled posts can be edited (post is {post.status})",
            )

        changes = data.model_dump(exclude_unset=True)
        values = {}
        if "message" in changes:
            values["message"] = _validate_message(changes["message"])
        if "scheduled_time" in changes:
            values["scheduled_time"] = _validate_time(changes["scheduled_time"], utcnow())
        if "link" in changes:
            values["link"] = changes["link"]
        if changes.get("media_urls") is not None:
            values["media_urls"] = list(changes["media_urls"])
        if changes.get("media_type") is not None:
            values["media_type"] = data.media_type.value
        if changes.get("timezone"):
            values["timezone"] = changes["timezone"]
        if not values:
            return post

        values["updated_at"] = utcnow()
        count = (
            self.db.query(ScheduledPost)
            .filter(ScheduledPost.id == post.id, ScheduledPost.status == PostStatus.SCHEDULED.value)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(post)
        if count != 1:
            raise InvalidTransitionError(post.status, PostStatus.SCHEDULED.value, "Post changed while being edited")
        return post

    def cancel(self, user: User, post_id: int) -> ScheduledPost:
        post = self.get_post(user, post_id)
        count = (
            self.db.query(ScheduledPost)
            .filter(ScheduledPost.id == post.id, ScheduledPost.status == PostStatus.SCHEDULED.value)
            .update(
                {"status": PostStatus.CANCELLED.value, "updated_at": utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(post)

        if count != 1:
            raise InvalidTransitionError(
                post.status,
                PostStatus.CANCELLED.value,
                f"Cannot cancel a post that is {post.status}",
            )
        scheduler_logger.info("Post cancelled", post_id=post.id, user_id=user.id)
        return post

    def history(self, user: User, platform: str = Platform.FACEBOOK.value) -> dict:
        """Recently published and failed posts for a platform"""
        base = self.db.query(ScheduledPost).filter(
            ScheduledPost.user_id == user.id,
            ScheduledPost.platform == platform,
        )
        published = (
            base.filter(ScheduledPost.status == PostStatus.PUBLISHED.value)
            .order_by(ScheduledPost.published_at.desc())
            .limit(20)
            .all()
        )
        failed = (
            base.filter(ScheduledPost.status == PostStatus.FAILED.value)
            .order_by(ScheduledPost.updated_at.desc())
            .limit(10)
            .all()
        )
        return {"published_posts": published, "failed_posts": failed}

    # ============================================================
    # STATE TRANSITIONS
    # ============================================================

    def claim(self, post: ScheduledPost, allow_stale: bool = False) -> bool:
        """
        Move a post to `publishing` if nobody else has.

        With allow_stale, a post stuck in `publishing` longer than the stale
        window is reclaimed too.
        """
        now = utcnow()
        claimable = ScheduledPost.status == PostStatus.SCHEDULED.value
        if allow_stale:
            stale_before = now - timedelta(minutes=self.settings.publishing_stale_minutes)
            claimable = or_(
                claimable,
                and_(
                    ScheduledPost.status == PostStatus.PUBLISHING.value,
                    ScheduledPost.updated_at < stale_before,
                ),
            )

        count = (
            self.db.query(ScheduledPost)
            .filter(ScheduledPost.id == post.id, claimable)
            .update(
                {"status": PostStatus.PUBLISHING.value, "updated_at": now},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(post)
        return count == 1

    def _finish(self, post: ScheduledPost, values: dict) -> bool:
        values["updated_at"] = utcnow()
        count = (
            self.db.query(ScheduledPost)
            .filter(ScheduledPost.id == post.id, ScheduledPost.status == PostStatus.PUBLISHING.value)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(post)
        return count == 1

    def mark_published(self, post: ScheduledPost, post_id: str, post_url: str) -> bool:
        return self._finish(post, {
            "status": PostStatus.PUBLISHED.value,
            "published_at": utcnow(),
            "published_post_id": post_id,
            "published_post_url": post_url,
            "error_message": None,
        })

    def mark_failed(self, post: ScheduledPost, error_message: str) -> bool:
        """Count the attempt; give up once retry_count reaches max_retries"""
        retry_count = (post.retry_count or 0) + 1
        exhausted = retry_count >= (post.max_retries or 0)
        return self._finish(post, {
            "status": PostStatus.FAILED.value if exhausted else PostStatus.SCHEDULED.value,
            "retry_count": retry_count,
            "error_message": error_message,
        })

    # ============================================================
    # EXECUTION
    # ============================================================

    def publish(self, post: ScheduledPost, allow_stale: bool = False) -> ProcessResult:
        """Claim, publish and record the outcome of one post"""
        if not self.claim(post, allow_stale=allow_stale):
            scheduler_logger.info("Post already claimed, skipping", post_id=post.id, status=post.status)
            return ProcessResult(
                success=False,
                post_id=post.id,
                platform=post.platform,
                status=post.status,
                error="Post is not in a publishable state",
                skipped=True,
            )

        try:
            user = self.db.get(User, post.user_id)
            if user is None:
                raise NotFoundError("User")
            result = self.publisher.publish(post.platform, user.get_connection(post.platform), PublishContent.from_post(post))
        except SmapError as e:
            error_message = str(e)
            scheduler_logger.warning("Publish attempt failed", post_id=post.id, platform=post.platform, error_message=error_message)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            scheduler_logger.error("Unexpected error while publishing", error=e, post_id=post.id)
        else:
            self.mark_published(post, result.post_id, result.url)
            scheduler_logger.info("Post published", post_id=post.id, platform=post.platform, published_post_id=result.post_id)
            return ProcessResult(
                success=True,
                post_id=post.id,
                platform=post.platform,
                published_post_id=result.post_id,
                published_post_url=result.url,
                status=post.status,
            )

        self.mark_failed(post, error_message)
        return ProcessResult(
            success=False,
            post_id=post.id,
            platform=post.platform,
            status=post.status,
            error=error_message,
        )

    def publish_now(self, user: User, post_id: int) -> Tuple[ScheduledPost, ProcessResult]:
        """Publish a stored post immediately instead of waiting for its time"""
        post = self.get_post(user, post_id)
        if post.status in {status.value for status in TERMINAL_STATUSES}:
            raise InvalidTransitionError(
                post.status,
                PostStatus.PUBLISHING.value,
                f"Cannot publish a post that is {post.status}",
            )

        result = self.publish(post, allow_stale=True)
        if result.skipped:
            raise InvalidTransitionError(
                post.status,
                PostStatus.PUBLISHING.value,
                "Post is already being published",
            )
        return post, result

    def process_due_posts(self, now: Optional[datetime] = None) -> ProcessSummary:
        """One batch pass over due posts; a failing post never stops the batch"""
        now = to_utc(now) if now else utcnow()
        due = select_due_posts(self.db, now, self.settings.scheduler_batch_size)
        summary = ProcessSummary()

        if not due:
            scheduler_logger.debug("No posts due", now=now.isoformat())
            return summary

        scheduler_logger.info("Processing due posts", count=len(due))
        for post in due:
            result = self.publish(post)
            summary.results.append(result)
            if result.skipped:
                summary.skipped += 1
                continue
            summary.processed += 1
            if result.success:
                summary.successful += 1
            else:
                summary.failed += 1

        scheduler_logger.info(
            "Batch complete",
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary
