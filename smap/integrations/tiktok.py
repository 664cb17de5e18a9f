"""
TikTok Open API (v2) client for account stats and video lists.
"""
import base64
import json
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlencode

import requests

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError, PlatformError
from ..logging_config import platform_logger, timed

SCOPES = [
    "user.info.basic",
    "user.info.profile",
    "user.info.stats",
    "video.list",
]
AUTHORIZE_URL = "https://www.tiktok.com/v2/auth/authorize/"

USER_FIELDS = "open_id,union_id,avatar_url,display_name,bio_description,follower_count,following_count,likes_count,video_count"
VIDEO_FIELDS = "id,title,video_description,create_time,cover_image_url,share_url,view_count,like_count,comment_count,share_count"


def encode_state(state: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(state).encode()).decode()


def decode_state(raw: str) -> dict:
    try:
        state = json.loads(base64.urlsafe_b64decode(raw.encode()).decode())
    except (ValueError, UnicodeDecodeError):
        return {}
    return state if isinstance(state, dict) else {}


def build_auth_url(state: dict, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    if not settings.tiktok_client_key or not settings.tiktok_redirect_uri:
        raise ConfigurationError("TikTok OAuth is not configured. Set TIKTOK_CLIENT_KEY and TIKTOK_REDIRECT_URI.")
    params = {
        "client_key": settings.tiktok_client_key,
        "scope": ",".join(SCOPES),
        "response_type": "code",
        "redirect_uri": settings.tiktok_redirect_uri,
        "state": encode_state(state),
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


class TikTokClient:
    """Calls made on behalf of one connected TikTok account"""

    platform = "tiktok"

    def __init__(
        self,
        access_token: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token
        self.settings = settings or get_settings()
        self.base_url = self.settings.tiktok_api_url.rstrip("/")
        self.session = session or requests.Session()

    def _parse(self, response: requests.Response, action: str) -> dict:
        try:
            payload = response.json()
        except ValueError:
            raise PlatformError(self.platform, f"{action}: invalid JSON response", response.status_code)
        if not isinstance(payload, dict):
            raise PlatformError(self.platform, f"{action}: unexpected response", response.status_code)

        error = payload.get("error")
        if isinstance(error, dict) and error.get("code") not in (None, "ok"):
            raise PlatformError(self.platform, error.get("message") or f"{action} failed", response.status_code)
        if not response.ok:
            message = payload.get("error_description") or f"{action} failed"
            raise PlatformError(self.platform, message, response.status_code)
        return payload

    def _request(self, method: str, path: str, action: str, **kwargs) -> dict:
        headers = kwargs.pop("headers", {})
        if self.access_token:
            headers.setdefault("Authorization", f"Bearer {self.access_token}")
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=self.settings.http_timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise PlatformError(self.platform, f"{action} failed: {e}")
        return self._parse(response, action)

    # -- tokens -------------------------------------------------------

    def _token_request(self, data: dict, action: str) -> dict:
        if not self.settings.tiktok_client_key or not self.settings.tiktok_client_secret:
            raise ConfigurationError("TikTok OAuth is not configured. Set TIKTOK_CLIENT_KEY and TIKTOK_CLIENT_SECRET.")
        body = {
            "client_key": self.settings.tiktok_client_key,
            "client_secret": self.settings.tiktok_client_secret,
            **data,
        }
        return self._request(
            "POST",
            "/v2/oauth/token/",
            action,
            data=body,
            headers={"Content-Type": "application/x-www-form-urlencoded", "Cache-Control": "no-cache"},
        )

    @timed(platform_logger)
    def exchange_code(self, code: str) -> dict:
        return self._token_request({
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.settings.tiktok_redirect_uri,
        }, "Token exchange")

    @timed(platform_logger)
    def refresh(self, refresh_token: str) -> dict:
        return self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }, "Token refresh")

    # -- account ------------------------------------------------------

    @timed(platform_logger)
    def user_info(self) -> dict:
        data = self._request("GET", "/v2/user/info/", "User info", params={"fields": USER_FIELDS})
        user = (data.get("data") or {}).get("user") or {}
        return {
            "open_id": user.get("open_id"),
            "display_name": user.get("display_name"),
            "avatar_url": user.get("avatar_url"),
            "bio_description": user.get("bio_description"),
            "follower_count": user.get("follower_count") or 0,
            "following_count": user.get("following_count") or 0,
            "likes_count": user.get("likes_count") or 0,
            "video_count": user.get("video_count") or 0,
        }

    def verify_token(self) -> bool:
        try:
            self._request("GET", "/v2/user/info/", "Token check", params={"fields": "open_id"})
        except PlatformError:
            return False
        return True

    def videos(self, max_count: int = 20) -> List[dict]:
        data = self._request(
            "POST",
            "/v2/video/list/",
            "Video list",
            params={"fields": VIDEO_FIELDS},
            json={"max_count": max_count},
        )
        return (data.get("data") or {}).get("videos") or []

    @timed(platform_logger)
    def analytics(self, start_date: str, end_date: str) -> dict:
        user = self.user_info()
        videos = []
        for video in self.videos():
            created = video.get("create_time")
            day = datetime.fromtimestamp(created, tz=timezone.utc).strftime("%Y-%m-%d") if created else ""
            if start_date <= day <= end_date:
                videos.append({**video, "published_at": day})

        engagement = {}
        if videos:
            views = sum(v.get("view_count") or 0 for v in videos)
            interactions = sum(
                (v.get("like_count") or 0) + (v.get("comment_count") or 0) + (v.get("share_count") or 0)
                for v in videos
            )
            engagement = {
                "average_views": round(views / len(videos)),
                "total_engagement": interactions,
                "engagement_rate": round(interactions / views * 100, 2) if views else 0,
            }

        return {
            "date_range": {"start_date": start_date, "end_date": end_date},
            "account_metrics": {
                "follower_count": user["follower_count"],
                "following_count": user["following_count"],
                "likes_count": user["likes_count"],
                "video_count": user["video_count"],
                "display_name": user["display_name"],
            },
            "recent_videos": videos,
            "top_videos": sorted(videos, key=lambda v: v.get("view_count") or 0, reverse=True)[:10],
            "engagement": engagement,
        }
