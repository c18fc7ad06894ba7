# exam_prep/__init__.py
"""
Exam preparation backend: timed test sessions with scoring and review,
plus the AI-backed news and mock-test generation pipeline
"""

__version__ = "1.0.0"
__description__ = "Timed test-taking, scoring and AI content generation for competitive exams"

from .core.config import config
from .main import app

__all__ = ["app", "config"]
