# exam_prep/models/schemas.py
"""
Request models for the HTTP API.

The generation function bodies keep the camelCase field names of the
function invocation contract (questionsCount, examType).
"""

from typing import Optional
from pydantic import BaseModel, Field


class StartSessionRequest(BaseModel):
    source_id: str = Field(..., min_length=1, description="Mock test or previous paper id")
    kind: str = Field("test", description="'test' or 'paper'")


class SelectAnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    option: str = Field(..., description="Option letter a-d")


class NavigateRequest(BaseModel):
    index: int = Field(..., description="Zero-based question index; clamped to the test")


class FetchNewsRequest(BaseModel):
    language: str = Field("english", description="'english' or 'hindi'")
    category: Optional[str] = None
    country: Optional[str] = None


class GenerateTestRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    difficulty: Optional[str] = None
    questionsCount: Optional[int] = None
    examType: Optional[str] = None
    language: Optional[str] = None


class ProviderKeyRequest(BaseModel):
    value: Optional[str] = Field(None, description="API key; empty clears the setting")
