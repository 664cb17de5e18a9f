"""
AI content routes: caption suggestions, recommendations and sentiment.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..auth import get_required_user
from ..config import get_settings
from ..dependencies import get_content_advisor
from ..integrations.llm import ContentAdvisor
from ..limiter import limiter
from ..models.enums import Platform
from ..models.user import User
from ..responses import success
from ..schemas.ai import CaptionRequest, SentimentRequest

settings = get_settings()

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/captions")
@limiter.limit(settings.ai_rate_limit)
def generate_captions(
    request: Request,
    caption_request: CaptionRequest,
    current_user: User = Depends(get_required_user),
    advisor: ContentAdvisor = Depends(get_content_advisor),
):
    """Three caption suggestions for a topic on a platform."""
    return success(advisor.generate_captions(
        caption_request.topic,
        caption_request.platform,
        tone=caption_request.tone,
        include_hashtags=caption_request.include_hashtags,
        language=caption_request.language,
    ))


@router.get("/recommendations")
@limiter.limit(settings.ai_rate_limit)
def get_recommendations(
    request: Request,
    platform: Optional[Platform] = Query(None, description="Omit for all platforms"),
    current_user: User = Depends(get_required_user),
    advisor: ContentAdvisor = Depends(get_content_advisor),
):
    """Posting and growth recommendations from the user's connected accounts."""
    return success(advisor.recommendations(current_user.connections, platform.value if platform else "all"))


@router.post("/sentiment")
@limiter.limit(settings.ai_rate_limit)
def analyze_sentiment(
    request: Request,
    sentiment_request: SentimentRequest,
    current_user: User = Depends(get_required_user),
    advisor: ContentAdvisor = Depends(get_content_advisor),
):
    return success(advisor.analyze_sentiment(sentiment_request.texts))
