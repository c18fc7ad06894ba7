# exam_prep/services/generation_service.py
import logging
from typing import List, Dict, Any, Optional

from ..core.config import config
from ..core.database import DatabaseManager, get_db_manager
from ..core.ai_services import AIService, get_ai_service, resolve_provider_key
from ..core.news_client import NewsClient
from ..core.dedup import DedupPolicy, get_dedup_policy
from ..core.exceptions import GenerationFailed, NewsUnavailable
from ..core.parsing import parse_json_array, only_objects
from ..core.prompts import PromptTemplates, PromptFormatter
from ..core.utils import ValidationUtils, DateTimeUtils

logger = logging.getLogger(__name__)

QUESTION_FIELDS = ("question_text", "option_a", "option_b", "option_c", "option_d")

class GenerationService:
    """Stateless news and test generation; every call is one independent invocation"""

    def __init__(self, db_manager: DatabaseManager = None, ai_service: AIService = None,
                 news_client: NewsClient = None, dedup_policy: DedupPolicy = None):
        self._db_manager = db_manager
        self._ai_service = ai_service
        self.news_client = news_client or NewsClient()
        self.dedup_policy = dedup_policy or get_dedup_policy(config.DEDUP_POLICY)

    @property
    def db_manager(self) -> DatabaseManager:
        return self._db_manager or get_db_manager()

    @property
    def ai_service(self) -> AIService:
        return self._ai_service or get_ai_service()

    # ==================== News ====================

    def fetch_news(self, language: str = "english", category: str = None,
                   country: str = None) -> Dict[str, Any]:
        """Fetch headlines, summarize them for exam relevance and store new articles"""
        language = (language or config.DEFAULT_LANGUAGE).strip().lower()
        if not ValidationUtils.validate_language(language):
            raise ValueError(f"Unsupported language '{language}', expected one of {config.NEWS_LANGUAGES}")
        category = category or config.NEWS_DEFAULT_CATEGORY

        logger.info(f"📰 Fetching news: language={language}, category={category}")

        # Both keys are required before any external call
        news_key = resolve_provider_key(self.db_manager, config.NEWS_API_KEY_SETTING, config.NEWS_API_KEY)
        self.ai_service.resolve_api_key()

        try:
            headlines = self.news_client.fetch_headlines(news_key, country=country, category=category)
        except NewsUnavailable as e:
            logger.warning(f"⚠️ News provider unavailable, using generation fallback: {e}")
            headlines = []

        if headlines:
            source = "news_api"
            system_prompt, user_prompt = PromptTemplates.news_summary_prompt(
                PromptFormatter.format_headlines(headlines), language
            )
        else:
            source = "fallback"
            logger.info("🔄 No headlines available, generating articles without a source feed")
            system_prompt, user_prompt = PromptTemplates.news_fallback_prompt(language, category)

        response = self.ai_service.complete(system_prompt, user_prompt)
        parsed = parse_json_array(response)

        if not parsed.ok:
            logger.warning(f"⚠️ Could not parse generated articles, storing none: {parsed.error}")
            items = []
        else:
            items = only_objects(parsed.items)

        default_source = "NewsAPI" if source == "news_api" else "AI Generated"
        articles = [
            article for article in (
                self._normalize_article(item, category, language, default_source) for item in items
            ) if article
        ]

        stored = self._store_articles(articles)

        logger.info(f"✅ News run complete: {stored} stored of {len(articles)} generated ({source})")
        return {
            "success": True,
            "articlesCount": stored,
            "generated": len(articles),
            "source": source
        }

    @staticmethod
    def _normalize_article(item: Dict[str, Any], category: str, language: str,
                           default_source: str) -> Optional[Dict[str, Any]]:
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            return None

        return {
            "title": title.strip(),
            "description": item.get("description") or "",
            "content": item.get("content") or item.get("description") or "",
            "category": item.get("category") or category,
            "language": language,
            "source": item.get("source") or default_source,
            "image_url": item.get("image_url"),
            "published_date": DateTimeUtils.today_iso()
        }

    def _store_articles(self, articles: List[Dict[str, Any]]) -> int:
        """Upsert on the title key; colliding titles are dropped, never updated"""
        seen = set()
        stored = 0

        for article in articles:
            title_key = self.dedup_policy.key(article["title"])
            if not title_key or title_key in seen:
                logger.debug(f"Skipping duplicate article in batch: {article['title']}")
                continue
            seen.add(title_key)

            if self.db_manager.upsert_article(article, title_key):
                stored += 1
            else:
                logger.debug(f"Article already stored: {article['title']}")

        return stored

    # ==================== Tests ====================

    def generate_test(self, subject: str, difficulty: str = None, questions_count: int = None,
                      exam_type: str = None, language: str = None) -> Dict[str, Any]:
        """Generate a multiple-choice test and store it with its questions"""
        subject = ValidationUtils.sanitize_input(subject, max_length=200)
        if not subject:
            raise ValueError("Subject is required")

        difficulty = ValidationUtils.sanitize_input(difficulty, max_length=50) or config.DEFAULT_DIFFICULTY
        questions_count = config.DEFAULT_QUESTIONS_COUNT if questions_count is None else int(questions_count)
        if not 1 <= questions_count <= config.MAX_GENERATED_QUESTIONS:
            raise ValueError(f"questionsCount must be between 1 and {config.MAX_GENERATED_QUESTIONS}")

        language = (language or config.DEFAULT_LANGUAGE).strip().lower()
        if not ValidationUtils.validate_language(language):
            raise ValueError(f"Unsupported language '{language}', expected one of {config.NEWS_LANGUAGES}")
        exam_type = ValidationUtils.sanitize_input(exam_type, max_length=100) or None

        logger.info(f"🧠 Generating test: {subject}, {difficulty}, {questions_count} questions ({language})")

        system_prompt, user_prompt = PromptTemplates.test_generation_prompt(
            subject, difficulty, questions_count, exam_type, language
        )
        response = self.ai_service.complete(system_prompt, user_prompt)

        parsed = parse_json_array(response)
        if not parsed.ok:
            logger.error(f"❌ Failed to parse generated questions: {parsed.error}")
            raise GenerationFailed("Failed to parse generated questions")

        questions = []
        for index, item in enumerate(only_objects(parsed.items)):
            question = self._normalize_question(item)
            if question is None:
                logger.warning(f"⚠️ Discarding malformed generated question #{index + 1}")
                continue
            questions.append(question)

        if not questions:
            raise GenerationFailed("Invalid questions format")

        if len(questions) != questions_count:
            logger.warning(f"⚠️ Requested {questions_count} questions, got {len(questions)} usable")

        title = f"AI Generated {subject} Test - {difficulty}"
        test = self.db_manager.create_test_with_questions({
            "title": title,
            "subject": subject,
            "difficulty": difficulty,
            "exam_type": exam_type,
            "language": language,
            "duration_minutes": config.MINUTES_PER_QUESTION * len(questions),
            "origin": "ai"
        }, questions)

        logger.info(f"✅ Test generated: {test['id']} with {len(questions)} questions")
        return {
            "success": True,
            "testId": test["id"],
            "testTitle": title,
            "questionsCount": len(questions)
        }

    @staticmethod
    def _normalize_question(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Validated question fields, or None when anything required is missing"""
        question = dict(item)

        # Accept an "options" list in place of option_a..option_d
        options = item.get("options")
        if isinstance(options, list) and len(options) == len(config.ANSWER_OPTIONS):
            for letter, text in zip(config.ANSWER_OPTIONS, options):
                question.setdefault(f"option_{letter}", text)

        normalized = {}
        for field_name in QUESTION_FIELDS:
            value = question.get(field_name)
            if not isinstance(value, str) or not value.strip():
                return None
            normalized[field_name] = value.strip()

        correct = ValidationUtils.normalize_option(question.get("correct_answer"))
        if correct is None:
            return None
        normalized["correct_answer"] = correct

        explanation = question.get("explanation")
        normalized["explanation"] = explanation.strip() if isinstance(explanation, str) and explanation.strip() else None
        return normalized

# Singleton pattern for generation service
_generation_service = None

def get_generation_service() -> GenerationService:
    """Get generation service instance (singleton)"""
    global _generation_service
    if _generation_service is None:
        _generation_service = GenerationService()
    return _generation_service

def close_generation_service():
    """Close generation service instance"""
    global _generation_service
    if _generation_service:
        _generation_service.news_client.close()
        _generation_service = None
