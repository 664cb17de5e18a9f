"""
Platform connection routes: OAuth connect/callback, disconnect and listing.

The OAuth state parameter carries a short-lived signed token for the user,
since the platform redirect arrives without our bearer token.
"""
import json
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..auth import create_state_token, decode_user_id, get_required_user
from ..clock import to_utc, utcnow
from ..config import get_settings
from ..database import get_db
from ..dependencies import get_analytics_service
from ..exceptions import PlatformNotConnectedError, SmapError
from ..integrations import meta, tiktok, youtube
from ..logging_config import api_logger
from ..models.enums import Platform
from ..models.platform_connection import PlatformConnection
from ..models.user import User
from ..responses import success
from ..worker.analytics_cache import AnalyticsService

router = APIRouter(prefix="/api/connections", tags=["connections"])

TOKEN_FIELDS = ("access_token", "refresh_token", "page_access_token", "token_expires_at")


def _redirect(**params) -> RedirectResponse:
    settings = get_settings()
    return RedirectResponse(f"{settings.frontend_url}/connect?{urlencode(params)}", status_code=302)


def _expiry(seconds) -> Optional[datetime]:
    if not seconds:
        return None
    return utcnow() + timedelta(seconds=int(seconds))


def save_connection(db: Session, user: User, platform: str, **values) -> PlatformConnection:
    """Create or overwrite the user's connection row for a platform"""
    connection = user.get_connection(platform)
    if connection is None:
        connection = PlatformConnection(user_id=user.id, platform=platform)
        db.add(connection)
    for key, value in values.items():
        setattr(connection, key, value)
    connection.is_connected = True
    connection.connected_at = utcnow()
    connection.last_synced = utcnow()
    db.commit()
    db.refresh(connection)
    api_logger.info("Platform connected", user_id=user.id, platform=platform)
    return connection


def _state_user(db: Session, state: Optional[str]) -> Optional[User]:
    user_id = decode_user_id(state or "", "oauth_state")
    if user_id is None:
        return None
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


# ============================================================
# LISTING AND DISCONNECT
# ============================================================

@router.get("")
def list_connections(current_user: User = Depends(get_required_user)):
    """Connection status for every supported platform."""
    connections = {}
    for platform in Platform:
        connection = current_user.get_connection(platform.value)
        connections[platform.value] = (
            connection.to_dict() if connection else {"platform": platform.value, "is_connected": False}
        )
    return success(connections)


@router.delete("/{platform}")
def disconnect(
    platform: Platform,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Forget the platform's tokens. The row and its last snapshot are kept."""
    connection = current_user.get_connection(platform.value)
    if connection is not None:
        for field in TOKEN_FIELDS:
            setattr(connection, field, None)
        connection.is_connected = False
        db.commit()
        api_logger.info("Platform disconnected", user_id=current_user.id, platform=platform.value)
    return success({"platform": platform.value, "is_connected": False}, f"{platform.value.capitalize()} disconnected")


@router.get("/{platform}/verify")
def verify_connection(platform: Platform, current_user: User = Depends(get_required_user)):
    """Ask the platform whether the stored token still works."""
    connection = current_user.get_connection(platform.value)
    if connection is None or not connection.is_connected:
        raise PlatformNotConnectedError(platform.value)

    if platform == Platform.YOUTUBE:
        client = youtube.YouTubeClient(connection.access_token, connection.refresh_token)
    elif platform == Platform.TIKTOK:
        client = tiktok.TikTokClient(connection.access_token)
    else:
        token = connection.page_access_token or connection.access_token
        client = meta.MetaClient(token, platform=platform.value)

    valid = client.verify_token()
    if not valid:
        api_logger.warning("Stored platform token rejected", user_id=current_user.id, platform=platform.value)
    return success({"platform": platform.value, "valid": valid})


@router.post("/tiktok/sync")
def sync_tiktok(
    current_user: User = Depends(get_required_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Pull the latest TikTok profile stats onto the connection."""
    connection = service.sync_tiktok(current_user)
    return success(connection.to_dict(), "TikTok data synced successfully")


# ============================================================
# CONNECT
# ============================================================

@router.get("/{platform}/connect")
def connect(platform: Platform, current_user: User = Depends(get_required_user)):
    """Authorization URL the frontend should send the user to."""
    state = create_state_token(current_user.id)
    if platform == Platform.YOUTUBE:
        auth_url = youtube.build_auth_url(state)
    elif platform == Platform.TIKTOK:
        auth_url = tiktok.build_auth_url({"platform": platform.value, "state": state})
    else:
        auth_url = meta.build_auth_url(platform.value, state)
    return success({"auth_url": auth_url, "platform": platform.value})


# ============================================================
# CALLBACKS
# ============================================================

@router.get("/youtube/callback")
def youtube_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if error:
        return _redirect(error="access_denied")
    if not code:
        return _redirect(error="invalid_request")
    user = _state_user(db, state)
    if user is None:
        return _redirect(error="invalid_state")

    try:
        tokens = youtube.exchange_code(code)
        channel = youtube.YouTubeClient(tokens["access_token"], tokens["refresh_token"]).channel_info()
    except SmapError as e:
        api_logger.warning("YouTube connection failed", user_id=user.id, error_message=str(e))
        return _redirect(error="processing_failed")

    save_connection(
        db, user, Platform.YOUTUBE.value,
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        token_expires_at=to_utc(tokens.get("expiry")),
        account_id=channel["channel_id"],
        account_name=channel["title"],
        followers_count=channel["subscriber_count"],
        media_count=channel["video_count"],
        view_count=channel["view_count"],
    )
    return _redirect(success="youtube_connected")


@router.get("/meta/callback")
def meta_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Shared Facebook Login callback for Facebook and Instagram connections."""
    if error:
        return _redirect(error="access_denied")
    if not code or not state:
        return _redirect(error="invalid_request")

    try:
        payload = json.loads(state)
    except ValueError:
        return _redirect(error="invalid_state")
    platform = payload.get("platform") if isinstance(payload, dict) else None
    if platform not in (Platform.FACEBOOK.value, Platform.INSTAGRAM.value):
        return _redirect(error="invalid_state")
    user = _state_user(db, payload.get("state"))
    if user is None:
        return _redirect(error="invalid_state")

    try:
        client = meta.MetaClient(platform=platform)
        tokens = client.exchange_code(code)
        client.access_token = tokens["access_token"]
        if platform == Platform.FACEBOOK.value:
            page = client.first_page()
            values = dict(
                page_access_token=page["access_token"],
                account_id=page["id"],
                page_id=page["id"],
                account_name=page["name"],
                category=page["category"],
                followers_count=page["fan_count"],
                engagement_count=page["talking_about_count"],
            )
        else:
            account = client.instagram_account()
            values = dict(
                page_access_token=account["page_access_token"],
                account_id=account["id"],
                page_id=account["page_id"],
                account_name=account["username"],
                followers_count=account["followers_count"],
                media_count=account["media_count"],
            )
    except SmapError as e:
        api_logger.warning("Meta connection failed", user_id=user.id, platform=platform, error_message=str(e))
        return _redirect(error="processing_failed", platform=platform)

    save_connection(
        db, user, platform,
        access_token=tokens["access_token"],
        token_expires_at=_expiry(tokens.get("expires_in")),
        **values,
    )
    return _redirect(success=f"{platform}_connected")


@router.get("/tiktok/callback")
def tiktok_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if error:
        return _redirect(error="access_denied")
    if not code or not state:
        return _redirect(error="invalid_request")
    user = _state_user(db, tiktok.decode_state(state).get("state"))
    if user is None:
        return _redirect(error="invalid_state")

    try:
        client = tiktok.TikTokClient()
        tokens = client.exchange_code(code)
        client.access_token = tokens["access_token"]
        info = client.user_info()
    except SmapError as e:
        api_logger.warning("TikTok connection failed", user_id=user.id, error_message=str(e))
        return _redirect(error="processing_failed")

    save_connection(
        db, user, Platform.TIKTOK.value,
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        token_expires_at=_expiry(tokens.get("expires_in")),
        account_id=info["open_id"] or tokens.get("open_id"),
        account_name=info["display_name"],
        followers_count=info["follower_count"],
        media_count=info["video_count"],
        engagement_count=info["likes_count"],
    )
    return _redirect(success="tiktok_connected")
