# exam_prep/core/utils.py
import logging
import time
import uuid
from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime, date, timezone
from .config import config

logger = logging.getLogger(__name__)

class TestKind(Enum):
    """Which parallel entity a session, attempt or question belongs to"""
    TEST = "test"
    PAPER = "paper"

    @property
    def foreign_key(self) -> str:
        """Column on questions/test_attempts referencing this entity"""
        return "paper_id" if self is TestKind.PAPER else "test_id"

    @property
    def name_field(self) -> str:
        return "paper_name" if self is TestKind.PAPER else "title"

    @property
    def default_name(self) -> str:
        return "Previous Paper" if self is TestKind.PAPER else "Mock Test"

    @classmethod
    def parse(cls, value: Any) -> 'TestKind':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid kind '{value}', expected 'test' or 'paper'")

    @classmethod
    def of_record(cls, record: Dict[str, Any]) -> Optional['TestKind']:
        """Resolve the kind from a record carrying exactly one foreign key"""
        if record.get("test_id"):
            return cls.TEST
        if record.get("paper_id"):
            return cls.PAPER
        return None

class ValidationUtils:
    """Utility functions for data validation"""

    @staticmethod
    def validate_option(option: Any) -> bool:
        """Validate an answer option letter"""
        return isinstance(option, str) and option in config.ANSWER_OPTIONS

    @staticmethod
    def normalize_option(option: Any) -> Optional[str]:
        """Lower-case and trim an option letter, None if it is not a-d"""
        if not isinstance(option, str):
            return None
        value = option.strip().lower().rstrip(").")
        return value if value in config.ANSWER_OPTIONS else None

    @staticmethod
    def validate_language(language: str) -> bool:
        return language in config.NEWS_LANGUAGES

    @staticmethod
    def sanitize_input(input_str: str, max_length: int = 500) -> str:
        """Sanitize user input"""
        if not input_str:
            return ""

        sanitized = input_str.strip()

        if len(sanitized) > max_length:
            sanitized = sanitized[:max_length]

        return sanitized

class DateTimeUtils:
    """Utility functions for date/time operations"""

    @staticmethod
    def get_current_timestamp() -> float:
        """Get current timestamp"""
        return time.time()

    @staticmethod
    def utcnow() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def today_iso() -> str:
        """Today's date as YYYY-MM-DD"""
        return date.today().isoformat()

    @staticmethod
    def format_datetime(value: Any, format_str: str = "%Y-%m-%d %H:%M") -> str:
        """Format a stored datetime for display"""
        if isinstance(value, datetime):
            return value.strftime(format_str)
        if isinstance(value, (int, float)):
            try:
                return datetime.fromtimestamp(value).strftime(format_str)
            except (ValueError, OSError):
                return "Invalid timestamp"
        return str(value) if value else ""

def generate_id() -> str:
    """Generate unique record ID"""
    return str(uuid.uuid4())
