"""
YouTube Data API client.

Each client owns its own Credentials object built from the tokens stored on
the user's connection, so concurrent requests never share OAuth state.
"""
from typing import Dict, List, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError, PlatformError
from ..logging_config import platform_logger, timed

SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/userinfo.profile",
    "openid",
]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# ============================================================
# OAUTH
# ============================================================

def build_flow(settings: Optional[Settings] = None) -> Flow:
    """OAuth web flow for connecting a YouTube channel"""
    settings = settings or get_settings()
    if not settings.youtube_client_id or not settings.youtube_client_secret:
        raise ConfigurationError("YouTube OAuth is not configured. Set YOUTUBE_CLIENT_ID and YOUTUBE_CLIENT_SECRET.")

    flow = Flow.from_client_config(
        {
            "web": {
                "client_id": settings.youtube_client_id,
                "client_secret": settings.youtube_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": TOKEN_URI,
                "redirect_uris": [settings.youtube_redirect_uri],
            }
        },
        scopes=SCOPES,
    )
    flow.redirect_uri = settings.youtube_redirect_uri
    return flow


def build_auth_url(state: str, settings: Optional[Settings] = None) -> str:
    # prompt=consent forces Google to hand out a refresh token every time
    url, _ = build_flow(settings).authorization_url(
        access_type="offline",
        prompt="consent",
        state=state,
    )
    return url


def exchange_code(code: str, settings: Optional[Settings] = None) -> Dict[str, Optional[str]]:
    flow = build_flow(settings)
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        raise PlatformError("youtube", f"Failed to exchange YouTube authorization code: {e}")
    credentials = flow.credentials
    return {
        "access_token": credentials.token,
        "refresh_token": credentials.refresh_token,
        "expiry": credentials.expiry,
    }


# ============================================================
# CLIENT
# ============================================================

class YouTubeClient:
    """Read-only channel statistics for one connected account"""

    platform = "youtube"

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.credentials = Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.settings.youtube_client_id,
            client_secret=self.settings.youtube_client_secret,
            scopes=SCOPES,
        )
        self._service = None

    @property
    def service(self):
        if self._service is None:
            self._service = build("youtube", "v3", credentials=self.credentials, cache_discovery=False)
        return self._service

    def _execute(self, request, action: str):
        try:
            return request.execute()
        except HttpError as e:
            raise PlatformError(self.platform, f"{action} failed: {e.reason}", e.resp.status)
        except RefreshError as e:
            raise PlatformError(self.platform, f"{action} failed: {e}", 401)

    @timed(platform_logger)
    def verify_token(self) -> bool:
        try:
            self._execute(self.service.channels().list(part="snippet", mine=True, maxResults=1), "Token check")
        except PlatformError:
            return False
        return True

    @timed(platform_logger)
    def refresh(self) -> Dict[str, Optional[str]]:
        """Trade the refresh token for a new access token"""
        if not self.credentials.refresh_token:
            raise PlatformError(self.platform, "No YouTube refresh token stored", 401)
        try:
            self.credentials.refresh(GoogleAuthRequest())
        except RefreshError as e:
            raise PlatformError(self.platform, f"Failed to refresh YouTube token: {e}", 401)
        self._service = None
        return {
            "access_token": self.credentials.token,
            "refresh_token": self.credentials.refresh_token,
            "expiry": self.credentials.expiry,
        }

    def channel_info(self) -> dict:
        response = self._execute(
            self.service.channels().list(part="snippet,statistics,contentDetails", mine=True),
            "Channel lookup",
        )
        items = response.get("items") or []
        if not items:
            # Google accounts without a channel still connect
            return {
                "channel_id": "no-channel",
                "title": "No YouTube Channel",
                "description": "This Google account does not have a YouTube channel yet.",
                "thumbnails": {},
                "subscriber_count": 0,
                "video_count": 0,
                "view_count": 0,
                "uploads_playlist_id": None,
                "published_at": None,
            }

        channel = items[0]
        snippet = channel.get("snippet", {})
        statistics = channel.get("statistics", {})
        return {
            "channel_id": channel["id"],
            "title": snippet.get("title"),
            "description": snippet.get("description"),
            "thumbnails": snippet.get("thumbnails", {}),
            "subscriber_count": _int(statistics.get("subscriberCount")),
            "video_count": _int(statistics.get("videoCount")),
            "view_count": _int(statistics.get("viewCount")),
            "uploads_playlist_id": channel.get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads"),
            "published_at": snippet.get("publishedAt"),
        }

    def videos(self, uploads_playlist_id: Optional[str], max_results: int = 50) -> List[dict]:
        """Most recent uploads with view/like/comment counts"""
        if not uploads_playlist_id:
            return []

        playlist = self._execute(
            self.service.playlistItems().list(part="snippet", playlistId=uploads_playlist_id, maxResults=max_results),
            "Playlist lookup",
        )
        video_ids = [item["snippet"]["resourceId"]["videoId"] for item in playlist.get("items") or []]
        if not video_ids:
            return []

        stats = self._execute(
            self.service.videos().list(part="statistics,snippet", id=",".join(video_ids)),
            "Video statistics",
        )
        return [
            {
                "video_id": video["id"],
                "title": video["snippet"].get("title"),
                "description": video["snippet"].get("description"),
                "thumbnails": video["snippet"].get("thumbnails", {}),
                "published_at": video["snippet"].get("publishedAt"),
                "view_count": _int(video.get("statistics", {}).get("viewCount")),
                "like_count": _int(video.get("statistics", {}).get("likeCount")),
                "comment_count": _int(video.get("statistics", {}).get("commentCount")),
            }
            for video in stats.get("items") or []
        ]

    @timed(platform_logger)
    def analytics(self, start_date: str, end_date: str) -> dict:
        channel = self.channel_info()
        videos = self.videos(channel["uploads_playlist_id"])

        engagement = {}
        if videos:
            views = sum(v["view_count"] for v in videos)
            likes = sum(v["like_count"] for v in videos)
            comments = sum(v["comment_count"] for v in videos)
            engagement = {
                "average_views": round(views / len(videos)),
                "average_likes": round(likes / len(videos)),
                "average_comments": round(comments / len(videos)),
                "engagement_rate": round((likes + comments) / views * 100, 2) if views else 0,
            }

        return {
            "date_range": {"start_date": start_date, "end_date": end_date},
            "channel_metrics": {
                "subscriber_count": channel["subscriber_count"],
                "total_video_count": channel["video_count"],
                "total_view_count": channel["view_count"],
                "channel_title": channel["title"],
                "channel_id": channel["channel_id"],
            },
            "recent_videos": videos,
            "top_videos": sorted(videos, key=lambda v: v["view_count"], reverse=True)[:10],
            "engagement": engagement,
        }
