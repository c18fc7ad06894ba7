# exam_prep/core/config.py
import os
from typing import Dict, Any
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Config:
    """Centralized configuration management"""

    # ==================== API Configuration ====================
    API_TITLE = "Exam Prep API"
    API_DESCRIPTION = "Timed test-taking, scoring and AI content generation for competitive exams"
    API_VERSION = "1.0.0"

    # ==================== Database Configuration ====================
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "exam_prep")
    MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

    # Collections
    MOCK_TESTS_COLLECTION = "mock_tests"
    PREVIOUS_PAPERS_COLLECTION = "previous_papers"
    QUESTIONS_COLLECTION = "questions"
    TEST_ATTEMPTS_COLLECTION = "test_attempts"
    USER_ANSWERS_COLLECTION = "user_answers"
    ARTICLES_COLLECTION = "articles"
    ADMIN_SETTINGS_COLLECTION = "admin_settings"

    # ==================== Provider Keys ====================
    # admin_settings entries take precedence over these
    LLM_API_KEY_SETTING = "LLM_API_KEY"
    NEWS_API_KEY_SETTING = "NEWS_API_KEY"
    LLM_API_KEY = os.getenv("LLM_API_KEY", "")
    NEWS_API_KEY = os.getenv("NEWS_API_KEY", "")

    # ==================== AI Service Configuration ====================
    LLM_MODEL = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
    LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "60"))
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "8000"))
    LLM_RETRIES = int(os.getenv("LLM_RETRIES", "1"))  # single attempt

    # ==================== News Provider Configuration ====================
    NEWS_API_URL = os.getenv("NEWS_API_URL", "https://newsapi.org/v2/top-headlines")
    NEWS_PAGE_SIZE = int(os.getenv("NEWS_PAGE_SIZE", "20"))
    NEWS_TIMEOUT = int(os.getenv("NEWS_TIMEOUT", "15"))
    NEWS_DEFAULT_COUNTRY = os.getenv("NEWS_DEFAULT_COUNTRY", "in")
    NEWS_DEFAULT_CATEGORY = os.getenv("NEWS_DEFAULT_CATEGORY", "general")
    NEWS_LANGUAGES = ["english", "hindi"]

    # Dedup policy: "normalized" or "exact"
    DEDUP_POLICY = os.getenv("DEDUP_POLICY", "normalized")

    # ==================== Test Generation Configuration ====================
    DEFAULT_QUESTIONS_COUNT = int(os.getenv("DEFAULT_QUESTIONS_COUNT", "20"))
    MAX_GENERATED_QUESTIONS = int(os.getenv("MAX_GENERATED_QUESTIONS", "100"))
    DEFAULT_DIFFICULTY = os.getenv("DEFAULT_DIFFICULTY", "Medium")
    DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "english")
    MINUTES_PER_QUESTION = int(os.getenv("MINUTES_PER_QUESTION", "2"))
    IMPORTED_PAPER_DURATION_MINUTES = int(os.getenv("IMPORTED_PAPER_DURATION_MINUTES", "120"))

    # ==================== Session Configuration ====================
    COUNTDOWN_TICK_SECONDS = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1.0"))
    SESSION_EXPIRATION_SECONDS = int(os.getenv("SESSION_EXPIRATION_SECONDS", "3600"))
    SESSION_CLEANUP_INTERVAL_SECONDS = int(os.getenv("SESSION_CLEANUP_INTERVAL_SECONDS", "300"))
    ANSWER_OPTIONS = ["a", "b", "c", "d"]

    # ==================== Access Configuration ====================
    # User ids allowed to call admin and generation endpoints
    ADMIN_USER_IDS = [u.strip() for u in os.getenv("ADMIN_USER_IDS", "").split(",") if u.strip()]
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:8080").split(",")

    # ==================== PDF Configuration ====================
    PDF_PAGE_SIZE = os.getenv("PDF_PAGE_SIZE", "A4")

    # ==================== Environment Overrides ====================
    @classmethod
    def from_env(cls) -> 'Config':
        """Create config with environment variable overrides"""
        return cls()

    # ==================== Validation ====================
    def validate(self) -> Dict[str, Any]:
        """Validate configuration and return status"""
        issues = []

        if self.LLM_RETRIES < 1:
            issues.append("LLM_RETRIES must be at least 1")

        if not (1 <= self.DEFAULT_QUESTIONS_COUNT <= self.MAX_GENERATED_QUESTIONS):
            issues.append("DEFAULT_QUESTIONS_COUNT must be between 1 and MAX_GENERATED_QUESTIONS")

        if self.MINUTES_PER_QUESTION < 1:
            issues.append("MINUTES_PER_QUESTION must be at least 1")

        if self.COUNTDOWN_TICK_SECONDS <= 0:
            issues.append("COUNTDOWN_TICK_SECONDS must be positive")

        if self.DEDUP_POLICY not in ("normalized", "exact"):
            issues.append("DEDUP_POLICY must be 'normalized' or 'exact'")

        return {
            "valid": len(issues) == 0,
            "issues": issues,
            "config_loaded": True,
            "llm_key_in_env": bool(self.LLM_API_KEY),
            "news_key_in_env": bool(self.NEWS_API_KEY)
        }

# Global configuration instance
config = Config.from_env()

# Validate on import
validation_result = config.validate()
if not validation_result["valid"]:
    import logging
    logger = logging.getLogger(__name__)
    logger.warning(f"Configuration issues: {validation_result['issues']}")
