# exam_prep/core/prompts.py
from typing import List, Dict, Any, Tuple
from .config import config

LANGUAGE_NAMES = {
    "english": "English",
    "hindi": "Hindi (Devanagari script)",
}

class PromptTemplates:
    """Centralized prompt template management"""

    ARTICLE_SHAPE = """{
  "title": "Headline",
  "description": "One or two sentence summary",
  "content": "Exam-oriented explanation in 3-5 sentences: background, key facts, why it matters",
  "category": "One of: national, international, economy, polity, science, environment, sports, awards, general"
}"""

    QUESTION_SHAPE = """{
  "question_text": "The question text",
  "option_a": "First option",
  "option_b": "Second option",
  "option_c": "Third option",
  "option_d": "Fourth option",
  "correct_answer": "a" (or "b", "c", "d"),
  "explanation": "Brief explanation of the correct answer"
}"""

    @staticmethod
    def _language_name(language: str) -> str:
        return LANGUAGE_NAMES.get(language, LANGUAGE_NAMES["english"])

    @staticmethod
    def news_summary_prompt(headlines: str, language: str) -> Tuple[str, str]:
        """Prompt pair for filtering and summarizing fetched headlines"""
        language_name = PromptTemplates._language_name(language)

        system = f"""You are a current-affairs editor for Indian competitive exam aspirants (UPSC, SSC, Banking, Railways, State PSC).
Select only items that are relevant for these exams and rewrite them for revision.
Write every field in {language_name}.
Return ONLY a valid JSON array. Each item must have exactly this structure:
{PromptTemplates.ARTICLE_SHAPE}"""

        user = f"""Here are today's raw headlines:

{headlines}

REQUIREMENTS:
- Drop celebrity gossip, entertainment and purely local crime stories
- Keep one item per distinct event, no duplicates
- Keep the facts from the source; do not invent numbers or names
- Return ONLY the JSON array, no other text."""

        return system, user

    @staticmethod
    def news_fallback_prompt(language: str, category: str, count: int = 10) -> Tuple[str, str]:
        """Prompt pair used when no headlines could be fetched"""
        language_name = PromptTemplates._language_name(language)

        system = f"""You are a current-affairs editor for Indian competitive exam aspirants (UPSC, SSC, Banking, Railways, State PSC).
Write every field in {language_name}.
Return ONLY a valid JSON array. Each item must have exactly this structure:
{PromptTemplates.ARTICLE_SHAPE}"""

        user = f"""Write {count} current-affairs items in the '{category}' area that are plausible for the recent weeks and useful for exam revision.
Cover government schemes, appointments, international relations, economy, science and environment where applicable.
Return ONLY the JSON array, no other text."""

        return system, user

    @staticmethod
    def test_generation_prompt(subject: str, difficulty: str, questions_count: int,
                               exam_type: str = None, language: str = None) -> Tuple[str, str]:
        """Prompt pair for generating a multiple-choice test"""
        language_name = PromptTemplates._language_name(language or config.DEFAULT_LANGUAGE)
        exams = exam_type or "UPSC, SSC, Banking, etc."

        system = f"""You are an expert test creator. Generate high-quality multiple-choice questions for competitive exams. Return ONLY a valid JSON array of questions. Each question must have exactly this structure:
{PromptTemplates.QUESTION_SHAPE}"""

        user = f"""Generate exactly {questions_count} multiple-choice questions for {subject} at {difficulty} difficulty level.
Focus on topics relevant to Indian competitive exams like {exams}.
Write the questions, options and explanations in {language_name}; keep correct_answer as a single letter a, b, c or d.
Each question must have exactly one correct option.
Return ONLY the JSON array, no other text."""

        return system, user

class PromptFormatter:
    """Utilities for formatting prompt inputs"""

    @staticmethod
    def format_headlines(items: List[Dict[str, Any]], max_chars: int = 600) -> str:
        """Compact raw news items into a numbered list"""
        lines = []
        for i, item in enumerate(items, 1):
            parts = [item.get("title") or ""]
            if item.get("description"):
                parts.append(item["description"])
            if item.get("content"):
                parts.append(item["content"])
            text = " | ".join(part.strip() for part in parts if part and part.strip())
            if len(text) > max_chars:
                text = text[:max_chars] + "..."
            source = item.get("source") or "unknown"
            lines.append(f"{i}. [{source}] {text}")
        return "\n".join(lines)
