# exam_prep/core/ai_services.py
import logging
import time
from typing import Any, Callable, Dict, Optional
import groq
from groq import Groq
from .config import config
from .database import DatabaseManager, get_db_manager
from .exceptions import (
    ConfigError, GenerationFailed, UpstreamRateLimited,
    UpstreamPaymentRequired, ExamPrepError
)

logger = logging.getLogger(__name__)

def resolve_provider_key(db_manager: DatabaseManager, setting_key: str,
                         env_value: str = "") -> str:
    """Admin settings first, then the environment; ConfigError if neither has it"""
    value = db_manager.get_setting(setting_key)
    if value and value.strip():
        return value.strip()
    if env_value and env_value.strip():
        return env_value.strip()
    logger.error(f"❌ {setting_key} not found in admin settings or environment")
    raise ConfigError(f"{setting_key} not configured. Please add it in the admin panel.")

class AIService:
    """Chat-completion calls against the hosted language-model gateway"""

    def __init__(self, db_manager: DatabaseManager = None,
                 client_factory: Callable[[str], Any] = None):
        self._db_manager = db_manager
        self.client_factory = client_factory or self._default_client

    @property
    def db_manager(self) -> DatabaseManager:
        return self._db_manager or get_db_manager()

    @staticmethod
    def _default_client(api_key: str) -> Groq:
        # max_retries=0: retry policy is ours, see _call_llm_with_retries
        return Groq(api_key=api_key, timeout=config.LLM_TIMEOUT, max_retries=0)

    def resolve_api_key(self) -> str:
        return resolve_provider_key(self.db_manager, config.LLM_API_KEY_SETTING, config.LLM_API_KEY)

    def complete(self, system_prompt: str, user_prompt: str,
                 temperature: float = None, max_tokens: int = None) -> str:
        """Run one chat completion and return the text content"""
        api_key = self.resolve_api_key()
        client = self.client_factory(api_key)

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        return self._call_llm_with_retries(
            client,
            messages,
            temperature=config.LLM_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or config.LLM_MAX_TOKENS
        )

    def _call_llm_with_retries(self, client, messages, temperature: float,
                               max_tokens: int, retries: int = None) -> str:
        """Call LLM; only transient failures are retried"""
        if retries is None:
            retries = config.LLM_RETRIES

        last_error: Optional[ExamPrepError] = None

        for attempt in range(retries):
            try:
                logger.debug(f"LLM call attempt {attempt + 1}/{retries}")

                completion = client.chat.completions.create(
                    model=config.LLM_MODEL,
                    messages=messages,
                    temperature=temperature,
                    max_completion_tokens=max_tokens
                )

                if not completion.choices:
                    raise GenerationFailed("No content generated")

                content = completion.choices[0].message.content
                if not content or not content.strip():
                    raise GenerationFailed("No content generated")

                return content.strip()

            except (UpstreamRateLimited, UpstreamPaymentRequired):
                raise
            except GenerationFailed as e:
                last_error = e
            except groq.GroqError as e:
                classified = self._classify_error(e)
                if isinstance(classified, (UpstreamRateLimited, UpstreamPaymentRequired)):
                    logger.error(f"❌ LLM gateway refused request: {e}")
                    raise classified
                last_error = classified

            logger.warning(f"LLM call attempt {attempt + 1} failed: {last_error}")
            if attempt < retries - 1:
                time.sleep(2 ** attempt)

        raise last_error or GenerationFailed("LLM call was not attempted")

    @staticmethod
    def _classify_error(error: Exception) -> ExamPrepError:
        """Map gateway errors onto the application taxonomy"""
        if isinstance(error, groq.RateLimitError):
            return UpstreamRateLimited()

        status = getattr(error, "status_code", None)
        if status == 429:
            return UpstreamRateLimited()
        if status == 402:
            return UpstreamPaymentRequired()
        if status is not None:
            return GenerationFailed(f"AI API error: {status}")

        return GenerationFailed(f"AI API unavailable: {error}")

    def health_check(self) -> Dict[str, Any]:
        """Check AI service configuration (no gateway call)"""
        try:
            self.resolve_api_key()
            return {"status": "healthy", "model": config.LLM_MODEL, "key_configured": True}
        except ConfigError:
            return {"status": "degraded", "model": config.LLM_MODEL, "key_configured": False}
        except ExamPrepError as e:
            return {"status": "error", "message": str(e)}

# Singleton pattern for AI service
_ai_service = None

def get_ai_service() -> AIService:
    """Get AI service instance (singleton)"""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service

def close_ai_service():
    """Close AI service instance"""
    global _ai_service
    if _ai_service:
        _ai_service = None
