"""
LLM-backed content helpers: captions, recommendations and sentiment.

Gemini is reached through its OpenAI-compatible endpoint so the regular
openai SDK client works unchanged.
"""
import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from openai import OpenAI, OpenAIError

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError, PlatformError
from ..logging_config import get_logger, timed

ai_logger = get_logger("ai")


def extract_json(text: str):
    """Parse JSON from a model reply, with or without a markdown fence"""
    body = text or ""
    if "```json" in body:
        body = body.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in body:
        body = body.split("```", 1)[1].split("```", 1)[0]
    try:
        return json.loads(body.strip())
    except ValueError:
        raise PlatformError("ai", "AI response was not valid JSON")


def describe_connections(connections: Iterable) -> str:
    """Plain-text summary of connected accounts for the recommendations prompt"""
    lines = []
    for connection in connections:
        if not connection.is_connected:
            continue
        name = connection.account_name or "Unknown"
        if connection.platform == "facebook":
            lines += [
                f"Facebook Page: {name}",
                f"- Fans/Likes: {connection.followers_count or 0}",
                f"- Talking About: {connection.engagement_count or 0}",
                f"- Category: {connection.category or 'Unknown'}",
            ]
        elif connection.platform == "youtube":
            lines += [
                f"YouTube Channel: {name}",
                f"- Subscribers: {connection.followers_count or 0}",
                f"- Total Views: {connection.view_count or 0}",
                f"- Videos: {connection.media_count or 0}",
            ]
        elif connection.platform == "instagram":
            lines += [
                f"Instagram: @{name}",
                f"- Followers: {connection.followers_count or 0}",
                f"- Posts: {connection.media_count or 0}",
            ]
        elif connection.platform == "tiktok":
            lines += [
                f"TikTok: {name}",
                f"- Followers: {connection.followers_count or 0}",
                f"- Likes: {connection.engagement_count or 0}",
                f"- Videos: {connection.media_count or 0}",
            ]
    return "\n".join(lines)


class ContentAdvisor:
    """Prompts the configured model and returns parsed JSON"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.gemini_api_key:
                raise ConfigurationError("AI features are not configured. Set GEMINI_API_KEY.")
            client = OpenAI(api_key=self.settings.gemini_api_key, base_url=self.settings.llm_base_url)
        self.client = client

    @timed(ai_logger)
    def _complete(self, prompt: str):
        try:
            response = self.client.chat.completions.create(
                model=self.settings.llm_model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            raise PlatformError("ai", f"AI request failed: {e}")
        return extract_json(response.choices[0].message.content)

    def generate_captions(
        self,
        topic: str,
        platform: str,
        tone: str = "professional",
        include_hashtags: bool = True,
        language: str = "english",
    ) -> dict:
        prompt = f"""Generate 3 engaging social media captions for {platform} about: "{topic}"

Requirements:
- Tone: {tone}
- Language: {language}
- {"Include relevant hashtags" if include_hashtags else "No hashtags"}
- Optimize for {platform} best practices
- Each caption should be unique and engaging

Return ONLY valid JSON in this format:
{{
  "captions": [
    {{"style": "style description", "caption": "the caption text", "hashtags": ["#tag1", "#tag2"]}}
  ]
}}"""
        return self._complete(prompt)

    def recommendations(self, connections: Iterable, platform: str = "all") -> dict:
        context = describe_connections(connections)
        prompt = f"""Analyze the following social media data and provide recommendations:

{context}

Based on this social media data, provide specific, actionable recommendations in the following JSON format:
{{
  "optimal_posting_times": [{{"day": "Monday", "time": "9:00 AM", "reason": "explanation"}}],
  "content_recommendations": [{{"type": "Video/Image/Text", "suggestion": "specific suggestion", "priority": "high/medium/low"}}],
  "engagement_strategies": [{{"strategy": "strategy name", "expected_impact": "expected result"}}],
  "growth_opportunities": [{{"opportunity": "opportunity description", "implementation": "how to implement"}}]
}}

Focus on platform: {"all platforms" if platform == "all" else platform}
Provide 3-5 items for each category. Be specific and actionable.
Return ONLY valid JSON, no markdown or explanation."""
        return {
            "recommendations": self._complete(prompt),
            "platform": platform,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    def analyze_sentiment(self, texts: List[str]) -> dict:
        numbered = "\n".join(f'{i}. "{text}"' for i, text in enumerate(texts, 1))
        prompt = f"""Analyze the sentiment of these social media texts and return a JSON summary:

Texts:
{numbered}

Return ONLY valid JSON:
{{
  "overall": "positive/negative/neutral/mixed",
  "score": 0.0 to 1.0,
  "breakdown": {{"positive": percentage, "negative": percentage, "neutral": percentage}},
  "insights": ["key insight 1", "key insight 2"]
}}"""
        return self._complete(prompt)
