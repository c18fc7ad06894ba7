# exam_prep/services/result_service.py
import logging
from typing import List, Dict, Any, Optional
import markdown

from ..core.config import config
from ..core.database import DatabaseManager, get_db_manager
from ..core.exceptions import NotFound, Forbidden
from ..core.utils import TestKind, DateTimeUtils
from .scoring import summarize_review
from .pdf_service import get_pdf_service

logger = logging.getLogger(__name__)

class ResultService:
    """Read-only review of completed attempts"""

    def __init__(self, db_manager: DatabaseManager = None):
        self._db_manager = db_manager

    @property
    def db_manager(self) -> DatabaseManager:
        return self._db_manager or get_db_manager()

    def load_result(self, attempt_id: str, user_id: str) -> Dict[str, Any]:
        """Attempt stats, parent name, rank and the per-question review"""
        attempt = self.db_manager.get_attempt(attempt_id)
        if not attempt:
            raise NotFound("Result not found")
        if attempt["user_id"] != user_id:
            logger.warning(f"⚠️ User {user_id} requested attempt {attempt_id} of another user")
            raise Forbidden("This result belongs to another user")
        if attempt.get("completed_at") is None:
            raise NotFound("Result is not available until the test is submitted")

        kind = TestKind.of_record(attempt)
        source_id = attempt.get(kind.foreign_key) if kind else None
        name = self._source_name(kind, source_id)

        answers = self.db_manager.get_answers_with_questions(attempt_id)
        review = [self._review_item(index, answer) for index, answer in enumerate(answers)]
        summary = summarize_review(review)

        consistent = (
            summary["correct"] == attempt["correct_answers"]
            and summary["incorrect"] == attempt["incorrect_answers"]
            and summary["total"] == attempt["total_questions"]
        )
        if not consistent:
            logger.error(f"❌ Review of attempt {attempt_id} does not match stored stats: "
                         f"review={summary} stored=({attempt['correct_answers']}, "
                         f"{attempt['incorrect_answers']}, {attempt['total_questions']})")

        rank, participants = self._rank(kind, source_id, attempt["score"])

        return {
            "attempt_id": attempt["id"],
            "kind": kind.value if kind else None,
            "source_id": source_id,
            "name": name,
            "score": attempt["score"],
            "correct_answers": attempt["correct_answers"],
            "incorrect_answers": attempt["incorrect_answers"],
            "unanswered": attempt["total_questions"] - attempt["correct_answers"] - attempt["incorrect_answers"],
            "total_questions": attempt["total_questions"],
            "time_taken_minutes": attempt.get("time_taken_minutes"),
            "completed_at": DateTimeUtils.format_datetime(attempt["completed_at"], "%Y-%m-%dT%H:%M:%S"),
            "rank": rank,
            "participants": participants,
            "consistent": consistent,
            "review": review
        }

    def _source_name(self, kind: Optional[TestKind], source_id: Optional[str]) -> str:
        if kind is None:
            return TestKind.TEST.default_name
        source = self.db_manager.get_source(kind, source_id) if source_id else None
        if not source:
            return kind.default_name
        return source.get(kind.name_field) or kind.default_name

    def _rank(self, kind: Optional[TestKind], source_id: Optional[str], score: int):
        """1 + completed attempts on the same test/paper scoring strictly higher"""
        if kind is None or not source_id:
            return None, 0
        stats = self.db_manager.get_rank_stats(kind, source_id, score)
        return stats["higher"] + 1, stats["participants"]

    @staticmethod
    def _review_item(index: int, answer: Dict[str, Any]) -> Dict[str, Any]:
        question = answer.get("question")
        selected = answer.get("selected_answer")

        if selected is None:
            status = "unanswered"
        elif answer.get("is_correct"):
            status = "correct"
        else:
            status = "incorrect"

        # Question deleted after the attempt was submitted
        if not question:
            return {
                "number": index + 1,
                "question_id": answer["question_id"],
                "question_text": "This question is no longer available",
                "options": [],
                "selected_answer": selected,
                "correct_answer": None,
                "status": status,
                "explanation": None,
                "explanation_html": None
            }

        correct = question["correct_answer"]
        options = [
            {
                "label": letter,
                "text": question.get(f"option_{letter}"),
                "is_correct": letter == correct,
                "is_selected": letter == selected
            }
            for letter in config.ANSWER_OPTIONS
        ]

        explanation = question.get("explanation")
        return {
            "number": index + 1,
            "question_id": question["id"],
            "question_text": question["question_text"],
            "options": options,
            "selected_answer": selected,
            "correct_answer": correct,
            "status": status,
            "explanation": explanation,
            "explanation_html": markdown.markdown(explanation) if explanation else None
        }

    def list_history(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """A user's completed attempts, newest first, with test/paper names"""
        attempts = self.db_manager.list_completed_attempts(user_id, limit)
        names: Dict[Any, str] = {}
        history = []

        for attempt in attempts:
            kind = TestKind.of_record(attempt)
            source_id = attempt.get(kind.foreign_key) if kind else None
            if (kind, source_id) not in names:
                names[(kind, source_id)] = self._source_name(kind, source_id)

            history.append({
                "attempt_id": attempt["id"],
                "kind": kind.value if kind else None,
                "source_id": source_id,
                "name": names[(kind, source_id)],
                "score": attempt["score"],
                "correct_answers": attempt["correct_answers"],
                "total_questions": attempt["total_questions"],
                "time_taken_minutes": attempt.get("time_taken_minutes"),
                "completed_at": DateTimeUtils.format_datetime(attempt["completed_at"], "%Y-%m-%dT%H:%M:%S")
            })

        return history

    def export_result_pdf(self, attempt_id: str, user_id: str) -> bytes:
        result = self.load_result(attempt_id, user_id)
        return get_pdf_service().generate_result_pdf(result)

# Singleton pattern for result service
_result_service = None

def get_result_service() -> ResultService:
    """Get result service instance (singleton)"""
    global _result_service
    if _result_service is None:
        _result_service = ResultService()
    return _result_service
