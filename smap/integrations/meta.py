"""
Meta Graph API client (Facebook Pages and Instagram Business accounts).

A client is built per request with the token it should act with; nothing
here keeps credentials at module level.
"""
import json
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError, PlatformError, TokenExpiredError
from ..logging_config import platform_logger, timed

FACEBOOK_SCOPES = [
    "pages_read_engagement",
    "pages_read_user_content",
    "pages_show_list",
    "pages_manage_posts",
    "business_management",
    "read_insights",
]

INSTAGRAM_SCOPES = [
    "pages_show_list",
    "pages_read_engagement",
    "business_management",
    "instagram_basic",
    "instagram_manage_insights",
]

FACEBOOK_INSIGHT_METRICS = "page_impressions,page_reach,page_fan_adds,page_fan_removes,page_views_total"
INSTAGRAM_INSIGHT_METRICS = "impressions,reach,follower_count,profile_views"

# Feed pagination is capped to stay under Graph API rate limits
MAX_FEED_PAGES = 5
FEED_PAGE_DELAY_SECONDS = 1.0

# OAuthException code for expired or revoked tokens
EXPIRED_TOKEN_CODE = 190


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return fallback


def _error_code(payload: Any) -> Optional[int]:
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return payload["error"].get("code")
    return None


def summarize_insights(entries: Optional[List[dict]]) -> Dict[str, dict]:
    """Index Graph insight entries by metric name"""
    return {
        entry["name"]: {
            "title": entry.get("title"),
            "description": entry.get("description"),
            "values": entry.get("values", []),
            "period": entry.get("period"),
        }
        for entry in entries or []
        if entry.get("name")
    }


def _post_engagement(post: dict) -> int:
    likes = (post.get("likes") or {}).get("summary", {}).get("total_count", 0)
    comments = (post.get("comments") or {}).get("summary", {}).get("total_count", 0)
    shares = (post.get("shares") or {}).get("count", 0)
    return likes + comments + shares


# ============================================================
# OAUTH
# ============================================================

def build_auth_url(platform: str, state: str, settings: Optional[Settings] = None) -> str:
    """Build the Facebook Login dialog URL for a Facebook or Instagram connection"""
    settings = settings or get_settings()
    if not settings.meta_client_id or not settings.meta_redirect_uri:
        raise ConfigurationError("Meta OAuth is not configured. Set META_CLIENT_ID and META_REDIRECT_URI.")

    scopes = INSTAGRAM_SCOPES if platform == "instagram" else FACEBOOK_SCOPES
    params = {
        "client_id": settings.meta_client_id,
        "redirect_uri": settings.meta_redirect_uri,
        "scope": ",".join(scopes),
        "response_type": "code",
        "state": json.dumps({"platform": platform, "state": state}),
    }
    if platform == "instagram":
        params["auth_type"] = "rerequest"
    return f"https://www.facebook.com/v18.0/dialog/oauth?{urlencode(params)}"


# ============================================================
# CLIENT
# ============================================================

class MetaClient:
    """Thin wrapper around the Graph API for one access token"""

    def __init__(
        self,
        access_token: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        platform: str = "facebook",
    ):
        self.platform = platform
        self.access_token = access_token
        self.settings = settings or get_settings()
        self.base_url = self.settings.graph_api_url.rstrip("/")
        self.session = session or requests.Session()
        self.page_delay = FEED_PAGE_DELAY_SECONDS

    # -- transport ----------------------------------------------------

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _parse(self, response: requests.Response, fallback: str) -> dict:
        try:
            payload = response.json()
        except ValueError:
            raise PlatformError(self.platform, f"{fallback}: invalid JSON response", response.status_code)

        if not response.ok:
            if _error_code(payload) == EXPIRED_TOKEN_CODE:
                raise TokenExpiredError(self.platform)
            raise PlatformError(self.platform, _error_message(payload, fallback), response.status_code)
        if not isinstance(payload, dict):
            raise PlatformError(self.platform, f"{fallback}: unexpected response", response.status_code)
        return payload

    def get(self, path: str, params: Optional[dict] = None, token: Optional[str] = None) -> dict:
        query = dict(params or {})
        if not path.startswith("http"):
            query.setdefault("access_token", token or self.access_token)
        try:
            response = self.session.get(self._url(path), params=query, timeout=self.settings.http_timeout_seconds)
        except requests.RequestException as e:
            raise PlatformError(self.platform, f"Graph API request failed: {e}")
        return self._parse(response, "Graph API request failed")

    def post(self, path: str, data: dict, token: Optional[str] = None) -> dict:
        body = dict(data)
        body.setdefault("access_token", token or self.access_token)
        try:
            response = self.session.post(self._url(path), json=body, timeout=self.settings.http_timeout_seconds)
        except requests.RequestException as e:
            raise PlatformError(self.platform, f"Graph API request failed: {e}")
        return self._parse(response, "Failed to publish to Facebook")

    # -- tokens -------------------------------------------------------

    def exchange_code(self, code: str) -> dict:
        """Exchange an OAuth code for a long-lived (60 day) user token"""
        short_lived = self.get("oauth/access_token", {
            "client_id": self.settings.meta_client_id,
            "client_secret": self.settings.meta_client_secret,
            "redirect_uri": self.settings.meta_redirect_uri,
            "code": code,
        }, token="")
        return self.long_lived_token(short_lived["access_token"])

    def long_lived_token(self, short_lived_token: str) -> dict:
        return self.get("oauth/access_token", {
            "grant_type": "fb_exchange_token",
            "client_id": self.settings.meta_client_id,
            "client_secret": self.settings.meta_client_secret,
            "fb_exchange_token": short_lived_token,
        }, token="")

    @timed(platform_logger)
    def verify_token(self, token: Optional[str] = None) -> bool:
        """A token is valid if /me answers with it"""
        try:
            self.get("me", {"fields": "id"}, token=token)
        except PlatformError:
            return False
        return True

    # -- pages and accounts ---------------------------------------------

    def pages(self) -> List[dict]:
        data = self.get("me/accounts").get("data") or []
        if not data:
            raise PlatformError(self.platform, "No Facebook pages found. Please create a Facebook Page first.")
        return data

    @timed(platform_logger)
    def page_info(self, page_id: str, token: Optional[str] = None) -> dict:
        data = self.get(page_id, {
            "fields": "id,name,about,category,fan_count,talking_about_count,picture",
        }, token=token)
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "about": data.get("about"),
            "category": data.get("category"),
            "fan_count": data.get("fan_count", 0),
            "talking_about_count": data.get("talking_about_count", 0),
            "picture": ((data.get("picture") or {}).get("data") or {}).get("url"),
        }

    def first_page(self) -> dict:
        """First managed page with its page access token"""
        page = self.pages()[0]
        info = self.page_info(page["id"], token=page["access_token"])
        info["access_token"] = page["access_token"]
        return info

    @timed(platform_logger)
    def instagram_account(self) -> dict:
        """Find the Instagram Business account linked to one of the user's pages"""
        for page in self.pages():
            try:
                linked = self.get(page["id"], {"fields": "instagram_business_account"}, token=page["access_token"])
            except PlatformError as e:
                platform_logger.warning("Instagram lookup failed for page", page_id=page["id"], error_message=str(e))
                continue

            business = linked.get("instagram_business_account")
            if not business:
                continue

            account = self.get(business["id"], {
                "fields": "id,username,name,biography,website,followers_count,media_count,profile_picture_url",
            }, token=page["access_token"])
            return {
                "id": account.get("id"),
                "username": account.get("username"),
                "name": account.get("name"),
                "followers_count": account.get("followers_count", 0),
                "media_count": account.get("media_count", 0),
                "profile_picture_url": account.get("profile_picture_url"),
                "page_id": page["id"],
                "page_access_token": page["access_token"],
            }

        raise PlatformError(
            "instagram",
            "No Instagram Business Account found. Convert the account to Business/Professional "
            "and link it to your Facebook page.",
        )

    # -- analytics ----------------------------------------------------

    def _insights(self, object_id: str, metrics: str, start_date: str, end_date: str) -> dict:
        try:
            data = self.get(f"{object_id}/insights", {
                "metric": metrics,
                "period": "day",
                "since": start_date,
                "until": end_date,
            })
        except PlatformError as e:
            # Insights need extra permissions; analytics still work without them
            platform_logger.warning("Insights unavailable", object_id=object_id, error_message=str(e))
            return {}
        return summarize_insights(data.get("data"))

    def page_feed(self, page_id: str) -> List[dict]:
        """Page posts, following pagination up to MAX_FEED_PAGES"""
        posts: List[dict] = []
        url = f"{page_id}/feed"
        params: Optional[dict] = {
            "fields": "id,message,created_time,likes.summary(true),comments.summary(true),shares",
            "limit": 100,
        }

        for page_number in range(MAX_FEED_PAGES):
            try:
                data = self.get(url, params)
            except PlatformError as e:
                platform_logger.warning("Feed pagination stopped", page=page_number + 1, error_message=str(e))
                break

            posts.extend(data.get("data") or [])
            next_url = (data.get("paging") or {}).get("next")
            if not next_url:
                break
            url, params = next_url, None
            if self.page_delay:
                time.sleep(self.page_delay)

        return posts

    @timed(platform_logger)
    def facebook_analytics(self, page_id: str, start_date: str, end_date: str) -> dict:
        page = self.page_info(page_id)
        posts = self.page_feed(page_id)
        fan_count = page.get("fan_count") or 0

        engagement: Dict[str, Any] = {}
        if posts:
            likes = sum((p.get("likes") or {}).get("summary", {}).get("total_count", 0) for p in posts)
            comments = sum((p.get("comments") or {}).get("summary", {}).get("total_count", 0) for p in posts)
            shares = sum((p.get("shares") or {}).get("count", 0) for p in posts)
            total = likes + comments + shares
            engagement = {
                "average_likes": round(likes / len(posts)),
                "average_comments": round(comments / len(posts)),
                "average_shares": round(shares / len(posts)),
                "total_engagement": total,
                "engagement_rate": round(total / len(posts) / fan_count * 100, 2) if fan_count else 0,
            }

        return {
            "date_range": {"start_date": start_date, "end_date": end_date},
            "page_metrics": {
                "fan_count": fan_count,
                "talking_about_count": page.get("talking_about_count") or 0,
                "name": page.get("name"),
                "category": page.get("category"),
            },
            "insights": self._insights(page_id, FACEBOOK_INSIGHT_METRICS, start_date, end_date),
            "recent_posts": posts,
            "top_posts": sorted(posts, key=_post_engagement, reverse=True)[:10],
            "engagement": engagement,
        }

    @timed(platform_logger)
    def instagram_analytics(self, account_id: str, start_date: str, end_date: str) -> dict:
        account = self.get(account_id, {"fields": "id,username,name,followers_count,media_count"})
        followers = account.get("followers_count") or 0

        try:
            media = self.get(f"{account_id}/media", {
                "fields": "id,media_type,media_url,thumbnail_url,permalink,caption,timestamp,like_count,comments_count",
                "limit": 25,
            }).get("data") or []
        except PlatformError as e:
            platform_logger.warning("Instagram media unavailable", account_id=account_id, error_message=str(e))
            media = []

        # Graph timestamps look like 2024-05-01T10:00:00+0000; the date prefix is enough
        recent = [m for m in media if start_date <= (m.get("timestamp") or "")[:10] <= end_date]

        def score(item: dict) -> int:
            return (item.get("like_count") or 0) + (item.get("comments_count") or 0)

        engagement: Dict[str, Any] = {}
        if recent:
            likes = sum(m.get("like_count") or 0 for m in recent)
            comments = sum(m.get("comments_count") or 0 for m in recent)
            total = likes + comments
            engagement = {
                "average_likes": round(likes / len(recent)),
                "average_comments": round(comments / len(recent)),
                "total_engagement": total,
                "engagement_rate": round(total / (followers * len(recent)) * 100, 2) if followers else 0,
            }

        return {
            "date_range": {"start_date": start_date, "end_date": end_date},
            "account_metrics": {
                "followers_count": followers,
                "media_count": account.get("media_count") or 0,
                "username": account.get("username"),
                "name": account.get("name"),
            },
            "insights": self._insights(account_id, INSTAGRAM_INSIGHT_METRICS, start_date, end_date),
            "recent_media": recent,
            "top_media": sorted(recent, key=score, reverse=True)[:5],
            "engagement": engagement,
        }
