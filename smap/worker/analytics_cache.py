"""
Analytics Cache

Platform analytics are slow and rate limited, so the latest snapshot is
kept on the user's PlatformConnection row:
- A snapshot younger than the TTL (1 hour) is served as-is
- force_refresh, a missing snapshot or a different date range fetch live
- A live fetch writes snapshot, timestamp and counters in one UPDATE
"""
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ..clock import isoformat, to_utc, utcnow
from ..config import Settings, get_settings
from ..exceptions import PlatformError, PlatformNotConnectedError, TokenExpiredError, ValidationError
from ..integrations.meta import MetaClient
from ..integrations.tiktok import TikTokClient
from ..integrations.youtube import YouTubeClient
from ..logging_config import platform_logger
from ..models.enums import Platform
from ..models.platform_connection import PlatformConnection
from ..models.user import User

DEFAULT_TTL = timedelta(hours=1)


def should_refetch(last_update: Optional[datetime], now: datetime, ttl: timedelta = DEFAULT_TTL) -> bool:
    """True when there is no snapshot or it is at least `ttl` old"""
    if last_update is None:
        return True
    return to_utc(now) - to_utc(last_update) >= ttl


def default_date_range(days: int = 30, today: Optional[date] = None) -> Tuple[str, str]:
    today = today or utcnow().date()
    return (today - timedelta(days=days)).isoformat(), today.isoformat()


def _parse_day(value: str, field: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", field)


def _insight_total(insights: dict, metric: str) -> int:
    values = (insights or {}).get(metric, {}).get("values") or []
    return sum(v.get("value") or 0 for v in values if isinstance(v.get("value"), (int, float)))


class AnalyticsService:
    """Cached per-platform analytics for one user"""

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        youtube_client: Callable[..., YouTubeClient] = YouTubeClient,
        meta_client: Callable[..., MetaClient] = MetaClient,
        tiktok_client: Callable[..., TikTokClient] = TikTokClient,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.youtube_client = youtube_client
        self.meta_client = meta_client
        self.tiktok_client = tiktok_client
        self.fetchers = {
            Platform.YOUTUBE.value: self._fetch_youtube,
            Platform.FACEBOOK.value: self._fetch_facebook,
            Platform.INSTAGRAM.value: self._fetch_instagram,
            Platform.TIKTOK.value: self._fetch_tiktok,
        }

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.analytics_cache_ttl_minutes)

    # ============================================================
    # PUBLIC
    # ============================================================

    def connection_for(self, user: User, platform: str) -> PlatformConnection:
        if platform not in self.fetchers:
            raise ValidationError(f"Unsupported platform: {platform}", "platform")
        connection = user.get_connection(platform)
        if connection is None or not connection.is_connected:
            raise PlatformNotConnectedError(platform)
        return connection

    def get_analytics(
        self,
        user: User,
        platform: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        force_refresh: bool = False,
    ) -> dict:
        connection = self.connection_for(user, platform)

        default_start, default_end = default_date_range(self.settings.analytics_default_days)
        requested = start_date is not None or end_date is not None
        start = _parse_day(start_date, "start_date") if start_date else default_start
        end = _parse_day(end_date, "end_date") if end_date else default_end
        if start > end:
            raise ValidationError("start_date must not be after end_date", "start_date")

        now = utcnow()
        cached = connection.latest_analytics
        if cached and not force_refresh and not should_refetch(connection.last_analytics_update, now, self.ttl):
            same_range = cached.get("date_range") == {"start_date": start, "end_date": end}
            if same_range or not requested:
                platform_logger.debug("Serving cached analytics", platform=platform, user_id=user.id)
                return self._response(connection, cached, from_cache=True)

        platform_logger.info(
            "Fetching live analytics",
            platform=platform,
            user_id=user.id,
            force_refresh=force_refresh,
            start_date=start,
            end_date=end,
        )
        analytics, counters = self.fetchers[platform](connection, start, end)
        self._store(connection, analytics, counters, now)
        return self._response(connection, analytics, from_cache=False)

    def refresh(self, user: User, platform: str, start_date: Optional[str] = None, end_date: Optional[str] = None) -> dict:
        return self.get_analytics(user, platform, start_date, end_date, force_refresh=True)

    def overview(self, user: User) -> dict:
        """Stored counters across every connection; never calls a platform"""
        now = utcnow()
        platforms = {}
        totals = {"followers_count": 0, "media_count": 0, "view_count": 0, "engagement_count": 0}
        for connection in user.connections:
            if not connection.is_connected:
                continue
            summary = connection.to_dict()
            summary["is_fresh"] = not should_refetch(connection.last_analytics_update, now, self.ttl)
            platforms[connection.platform] = summary
            for key in totals:
                totals[key] += getattr(connection, key) or 0

        return {
            "connected_platforms": sorted(platforms),
            "platforms": platforms,
            "totals": totals,
        }

    def sync_tiktok(self, user: User) -> PlatformConnection:
        """Pull TikTok profile stats into the connection counters"""
        connection = self.connection_for(user, Platform.TIKTOK.value)
        info = self._with_tiktok_refresh(connection, lambda client: client.user_info())
        now = utcnow()
        self._update(connection, {
            "account_name": info["display_name"] or connection.account_name,
            "followers_count": info["follower_count"],
            "media_count": info["video_count"],
            "engagement_count": info["likes_count"],
            "last_synced": now,
        })
        return connection

    # ============================================================
    # STORAGE
    # ============================================================

    def _update(self, connection: PlatformConnection, values: dict):
        values["updated_at"] = utcnow()
        (
            self.db.query(PlatformConnection)
            .filter(PlatformConnection.id == connection.id)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(connection)

    def _store(self, connection: PlatformConnection, analytics: dict, counters: Dict[str, int], now: datetime):
        """Snapshot, timestamp and counters land together or not at all"""
        self._update(connection, {
            "latest_analytics": analytics,
            "last_analytics_update": now,
            "last_synced": now,
            **counters,
        })

    def _response(self, connection: PlatformConnection, analytics: dict, from_cache: bool) -> dict:
        return {
            "analytics": analytics,
            "from_cache": from_cache,
            "last_updated": isoformat(connection.last_analytics_update),
            "account": connection.to_dict(),
        }

    # ============================================================
    # FETCHERS
    # ============================================================

    def _fetch_youtube(self, connection: PlatformConnection, start: str, end: str):
        client = self.youtube_client(connection.access_token, connection.refresh_token, self.settings)
        try:
            analytics = client.analytics(start, end)
        except PlatformError as e:
            if e.status_code != 401 or not connection.refresh_token:
                raise
            platform_logger.info("YouTube token rejected, refreshing", connection_id=connection.id)
            try:
                tokens = client.refresh()
            except PlatformError:
                raise TokenExpiredError(Platform.YOUTUBE.value)
            self._update(connection, {
                "access_token": tokens["access_token"],
                "refresh_token": tokens.get("refresh_token") or connection.refresh_token,
                "token_expires_at": to_utc(tokens.get("expiry")),
            })
            try:
                analytics = client.analytics(start, end)
            except PlatformError as retry_error:
                if retry_error.status_code == 401:
                    raise TokenExpiredError(Platform.YOUTUBE.value)
                raise

        metrics = analytics["channel_metrics"]
        videos = analytics.get("recent_videos") or []
        return analytics, {
            "account_id": metrics.get("channel_id") or connection.account_id,
            "account_name": metrics.get("channel_title") or connection.account_name,
            "followers_count": metrics.get("subscriber_count") or 0,
            "media_count": metrics.get("total_video_count") or 0,
            "view_count": metrics.get("total_view_count") or 0,
            "engagement_count": sum(v.get("like_count", 0) + v.get("comment_count", 0) for v in videos),
        }

    def _fetch_facebook(self, connection: PlatformConnection, start: str, end: str):
        if not connection.page_id or not connection.page_access_token:
            raise PlatformNotConnectedError(
                Platform.FACEBOOK.value,
                "Facebook page not connected. Please connect your Facebook page first.",
            )
        client = self.meta_client(connection.page_access_token, self.settings)
        analytics = client.facebook_analytics(connection.page_id, start, end)

        page = analytics["page_metrics"]
        return analytics, {
            "account_name": page.get("name") or connection.account_name,
            "category": page.get("category") or connection.category,
            "followers_count": page.get("fan_count") or 0,
            "media_count": len(analytics.get("recent_posts") or []),
            "view_count": _insight_total(analytics.get("insights"), "page_views_total"),
            "engagement_count": page.get("talking_about_count") or 0,
        }

    def _fetch_instagram(self, connection: PlatformConnection, start: str, end: str):
        token = connection.page_access_token or connection.access_token
        if not connection.account_id or not token:
            raise PlatformNotConnectedError(Platform.INSTAGRAM.value)
        client = self.meta_client(token, self.settings, platform=Platform.INSTAGRAM.value)
        analytics = client.instagram_analytics(connection.account_id, start, end)

        account = analytics["account_metrics"]
        return analytics, {
            "account_name": account.get("username") or connection.account_name,
            "followers_count": account.get("followers_count") or 0,
            "media_count": account.get("media_count") or 0,
            "view_count": _insight_total(analytics.get("insights"), "profile_views"),
            "engagement_count": (analytics.get("engagement") or {}).get("total_engagement", 0),
        }

    def _with_tiktok_refresh(self, connection: PlatformConnection, call):
        client = self.tiktok_client(connection.access_token, self.settings)
        try:
            return call(client)
        except PlatformError as e:
            if e.status_code != 401 or not connection.refresh_token:
                raise
            try:
                tokens = client.refresh(connection.refresh_token)
            except PlatformError:
                raise TokenExpiredError(Platform.TIKTOK.value)

        values = {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token") or connection.refresh_token,
        }
        if tokens.get("expires_in"):
            values["token_expires_at"] = utcnow() + timedelta(seconds=int(tokens["expires_in"]))
        self._update(connection, values)
        return call(self.tiktok_client(connection.access_token, self.settings))

    def _fetch_tiktok(self, connection: PlatformConnection, start: str, end: str):
        analytics = self._with_tiktok_refresh(connection, lambda client: client.analytics(start, end))
        account = analytics["account_metrics"]
        return analytics, {
            "account_name": account.get("display_name") or connection.account_name,
            "followers_count": account.get("follower_count") or 0,
            "media_count": account.get("video_count") or 0,
            "view_count": sum(v.get("view_count") or 0 for v in analytics.get("recent_videos") or []),
            "engagement_count": account.get("likes_count") or 0,
        }
