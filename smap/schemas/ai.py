from pydantic import BaseModel, Field
from typing import List


class CaptionRequest(BaseModel):
    topic: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    tone: str = "professional"
    include_hashtags: bool = True
    language: str = "english"


class SentimentRequest(BaseModel):
    texts: List[str] = Field(min_length=1, max_length=100)
