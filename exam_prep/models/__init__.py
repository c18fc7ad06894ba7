# exam_prep/models/__init__.py
"""
Pydantic models for request validation
"""

from .schemas import (
    StartSessionRequest,
    SelectAnswerRequest,
    NavigateRequest,
    FetchNewsRequest,
    GenerateTestRequest,
    ProviderKeyRequest
)

__all__ = [
    "StartSessionRequest",
    "SelectAnswerRequest",
    "NavigateRequest",
    "FetchNewsRequest",
    "GenerateTestRequest",
    "ProviderKeyRequest"
]
