# exam_prep/services/content_service.py
import csv
import io
import logging
from typing import List, Dict, Any, Optional

from ..core.config import config
from ..core.database import DatabaseManager, get_db_manager
from ..core.utils import TestKind, ValidationUtils

logger = logging.getLogger(__name__)

PROVIDER_KEYS = (config.LLM_API_KEY_SETTING, config.NEWS_API_KEY_SETTING)

class ContentService:
    """Catalogue listing and the admin operations that keep papers consistent"""

    def __init__(self, db_manager: DatabaseManager = None):
        self._db_manager = db_manager

    @property
    def db_manager(self) -> DatabaseManager:
        return self._db_manager or get_db_manager()

    @staticmethod
    def _catalogue_entry(kind: TestKind, record: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": record["id"],
            "kind": kind.value,
            "name": record.get(kind.name_field) or kind.default_name,
            "exam_type": record.get("exam_type"),
            "subject": record.get("subject"),
            "difficulty": record.get("difficulty"),
            "year": record.get("year"),
            "questions_count": record.get("questions_count", 0),
            "duration_minutes": record.get("duration_minutes", 0)
        }

    def list_tests(self) -> List[Dict[str, Any]]:
        tests = self.db_manager.list_sources(TestKind.TEST)
        return [self._catalogue_entry(TestKind.TEST, test) for test in tests]

    def list_papers(self, exam_type: str = None) -> List[Dict[str, Any]]:
        filters = {"exam_type": exam_type} if exam_type else None
        papers = self.db_manager.list_sources(TestKind.PAPER, filters)
        return [self._catalogue_entry(TestKind.PAPER, paper) for paper in papers]

    def import_paper_csv(self, csv_text: str, exam_type: str, paper_name: str, year: int,
                         duration_minutes: int = None) -> Dict[str, Any]:
        """
        Create a previous paper from CSV.

        Expected columns after a header row:
        question, option a, option b, option c, option d, correct answer, explanation
        """
        paper_name = ValidationUtils.sanitize_input(paper_name, max_length=200)
        exam_type = ValidationUtils.sanitize_input(exam_type, max_length=100)
        if not paper_name:
            raise ValueError("Paper name is required")
        if not exam_type:
            raise ValueError("Exam type is required")

        duration_minutes = config.IMPORTED_PAPER_DURATION_MINUTES if duration_minutes is None else int(duration_minutes)
        if duration_minutes < 1:
            raise ValueError("Duration must be at least one minute")

        questions = self._parse_questions_csv(csv_text or "")
        if not questions:
            raise ValueError("CSV contains no questions")

        paper = self.db_manager.create_paper_with_questions({
            "paper_name": paper_name,
            "exam_type": exam_type,
            "year": int(year),
            "duration_minutes": duration_minutes
        }, questions)

        logger.info(f"✅ Imported paper '{paper_name}' with {len(questions)} questions")
        return {
            "success": True,
            "paperId": paper["id"],
            "paperName": paper_name,
            "questionsCount": len(questions)
        }

    @staticmethod
    def _parse_questions_csv(csv_text: str) -> List[Dict[str, Any]]:
        reader = csv.reader(io.StringIO(csv_text.lstrip("\ufeff")))
        questions = []

        # Line 1 is the header
        next(reader, None)

        for row in reader:
            line = reader.line_num
            if not any(cell.strip() for cell in row):
                continue
            if len(row) < 6:
                raise ValueError(f"Line {line}: expected at least 6 columns, got {len(row)}")

            cells = [cell.strip() for cell in row]
            if not cells[0]:
                raise ValueError(f"Line {line}: question text is empty")
            if not all(cells[1:5]):
                raise ValueError(f"Line {line}: all four options are required")

            correct = ValidationUtils.normalize_option(cells[5])
            if correct is None:
                raise ValueError(f"Line {line}: correct answer must be a, b, c or d, got '{cells[5]}'")

            questions.append({
                "question_text": cells[0],
                "option_a": cells[1],
                "option_b": cells[2],
                "option_c": cells[3],
                "option_d": cells[4],
                "correct_answer": correct,
                "explanation": cells[6] if len(cells) > 6 and cells[6] else None
            })

        return questions

    def set_provider_key(self, key: str, value: Optional[str], updated_by: str = None) -> Dict[str, Any]:
        """Store a provider API key in admin settings; an empty value clears it"""
        if key not in PROVIDER_KEYS:
            raise ValueError(f"Unknown setting '{key}', expected one of {list(PROVIDER_KEYS)}")

        value = (value or "").strip() or None
        self.db_manager.set_setting(key, value, updated_by)

        logger.info(f"🔑 Setting {key} {'updated' if value else 'cleared'} by {updated_by}")
        return {"success": True, "key": key, "configured": value is not None}

# Singleton pattern for content service
_content_service = None

def get_content_service() -> ContentService:
    """Get content service instance (singleton)"""
    global _content_service
    if _content_service is None:
        _content_service = ContentService()
    return _content_service
