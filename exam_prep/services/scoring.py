# exam_prep/services/scoring.py
"""
Pure scoring functions shared by submission and result review.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class GradeReport:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    correct: int = 0
    incorrect: int = 0

    @property
    def answered(self) -> int:
        return self.correct + self.incorrect

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def unanswered(self) -> int:
        return self.total - self.answered


def grade_answers(attempt_id: str, questions: List[Dict[str, Any]],
                  answers: Dict[str, str]) -> GradeReport:
    """One UserAnswer row per question; unanswered ones count as neither"""
    report = GradeReport()

    for position, question in enumerate(questions):
        selected = answers.get(question["id"]) or None
        is_correct = selected is not None and selected == question["correct_answer"]

        if is_correct:
            report.correct += 1
        elif selected is not None:
            report.incorrect += 1

        report.rows.append({
            "attempt_id": attempt_id,
            "question_id": question["id"],
            "position": position,
            "selected_answer": selected,
            "is_correct": is_correct,
            "is_bookmarked": False
        })

    return report


def compute_score(correct: int, total: int) -> int:
    """Percentage rounded half up: round(2/3*100) == 67, round(1/8*100) == 13"""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def compute_time_taken(total_seconds: int, remaining_seconds: int) -> int:
    """Whole minutes elapsed on the clock"""
    elapsed = max(0, total_seconds - max(0, remaining_seconds))
    return elapsed // 60


def final_stats(report: GradeReport, total_seconds: int, remaining_seconds: int) -> Dict[str, int]:
    return {
        "correct_answers": report.correct,
        "incorrect_answers": report.incorrect,
        "score": compute_score(report.correct, report.total),
        "time_taken_minutes": compute_time_taken(total_seconds, remaining_seconds)
    }


def summarize_review(items: List[Dict[str, Any]]) -> Dict[str, int]:
    """Aggregate counts of a composed review"""
    correct = sum(1 for item in items if item["status"] == "correct")
    incorrect = sum(1 for item in items if item["status"] == "incorrect")
    return {
        "correct": correct,
        "incorrect": incorrect,
        "unanswered": len(items) - correct - incorrect,
        "total": len(items)
    }
