from types import SimpleNamespace

import mongomock
import pytest

from exam_prep.core.config import config
from exam_prep.core.database import DatabaseManager, set_db_manager


class FakeAIService:
    """Stands in for AIService: canned completions, no gateway"""

    def __init__(self, responses=None, error=None, key_error=None):
        self.responses = list(responses or [])
        self.error = error
        self.key_error = key_error
        self.calls = []

    def resolve_api_key(self):
        if self.key_error:
            raise self.key_error
        return "test-llm-key"

    def complete(self, system_prompt, user_prompt, temperature=None, max_tokens=None):
        self.calls.append((system_prompt, user_prompt))
        if self.error:
            raise self.error
        return self.responses.pop(0) if self.responses else ""


class FakeNewsClient:
    def __init__(self, headlines=None, error=None):
        self.headlines = headlines or []
        self.error = error
        self.calls = []
        self.closed = False

    def fetch_headlines(self, api_key, country=None, category=None):
        self.calls.append({"api_key": api_key, "country": country, "category": category})
        if self.error:
            raise self.error
        return list(self.headlines)

    def close(self):
        self.closed = True


class FakeGroqClient:
    """Mimics client.chat.completions.create of the groq SDK"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))])


def make_questions(correct_answers, explanation=None):
    return [
        {
            "question_text": f"Question {i + 1}?",
            "option_a": "Alpha",
            "option_b": "Beta",
            "option_c": "Gamma",
            "option_d": "Delta",
            "correct_answer": answer,
            "explanation": explanation
        }
        for i, answer in enumerate(correct_answers)
    ]


@pytest.fixture
def db_manager():
    client = mongomock.MongoClient()
    manager = DatabaseManager(db=client["exam_prep_test"])
    set_db_manager(manager)
    yield manager
    set_db_manager(None)


@pytest.fixture
def seed_test(db_manager):
    """Create a mock test; returns its id"""
    def _seed(correct_answers=("a", "b", "c"), duration_minutes=10, title="Polity Basics",
              explanation=None):
        test = db_manager.create_test_with_questions(
            {"title": title, "subject": "Polity", "duration_minutes": duration_minutes},
            make_questions(list(correct_answers), explanation)
        )
        return test["id"]
    return _seed


@pytest.fixture
def seed_paper(db_manager):
    def _seed(correct_answers=("a", "b"), duration_minutes=120, paper_name="UPSC Prelims 2019"):
        paper = db_manager.create_paper_with_questions(
            {"paper_name": paper_name, "exam_type": "UPSC", "year": 2019,
             "duration_minutes": duration_minutes},
            make_questions(list(correct_answers))
        )
        return paper["id"]
    return _seed


@pytest.fixture
def no_env_keys(monkeypatch):
    monkeypatch.setattr(config, "LLM_API_KEY", "")
    monkeypatch.setattr(config, "NEWS_API_KEY", "")
