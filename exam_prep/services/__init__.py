# exam_prep/services/__init__.py
"""
Business logic: test sessions, scoring, results, PDF export, generation and content admin
"""

from .session_service import get_session_engine
from .result_service import get_result_service
from .pdf_service import get_pdf_service
from .generation_service import get_generation_service
from .content_service import get_content_service

__all__ = [
    "get_session_engine",
    "get_result_service",
    "get_pdf_service",
    "get_generation_service",
    "get_content_service"
]
