from exam_prep.services.scoring import (
    grade_answers, compute_score, compute_time_taken, final_stats, summarize_review
)

QUESTIONS = [
    {"id": "q1", "correct_answer": "a"},
    {"id": "q2", "correct_answer": "b"},
    {"id": "q3", "correct_answer": "c"},
]


class TestComputeScore:
    def test_rounds_half_up(self):
        assert compute_score(2, 3) == 67
        assert compute_score(1, 3) == 33
        assert compute_score(1, 8) == 13
        assert compute_score(1, 2) == 50

    def test_bounds(self):
        assert compute_score(0, 5) == 0
        assert compute_score(5, 5) == 100

    def test_zero_questions(self):
        assert compute_score(0, 0) == 0


class TestComputeTimeTaken:
    def test_floors_to_minutes(self):
        assert compute_time_taken(600, 600) == 0
        assert compute_time_taken(600, 541) == 0
        assert compute_time_taken(600, 479) == 2

    def test_expired_clock(self):
        assert compute_time_taken(600, 0) == 10
        assert compute_time_taken(600, -3) == 10


class TestGradeAnswers:
    def test_one_wrong(self):
        report = grade_answers("att-1", QUESTIONS, {"q1": "a", "q2": "b", "q3": "d"})

        assert report.correct == 2
        assert report.incorrect == 1
        assert report.unanswered == 0
        assert compute_score(report.correct, report.total) == 67

    def test_blanks_count_as_neither(self):
        report = grade_answers("att-1", QUESTIONS, {"q1": "a"})

        assert (report.correct, report.incorrect, report.unanswered) == (1, 0, 2)
        blank_rows = [row for row in report.rows if row["question_id"] != "q1"]
        assert all(row["selected_answer"] is None for row in blank_rows)
        assert all(row["is_correct"] is False for row in blank_rows)

    def test_one_row_per_question_in_order(self):
        report = grade_answers("att-1", QUESTIONS, {})

        assert [row["question_id"] for row in report.rows] == ["q1", "q2", "q3"]
        assert [row["position"] for row in report.rows] == [0, 1, 2]
        assert all(row["attempt_id"] == "att-1" for row in report.rows)

    def test_final_stats(self):
        report = grade_answers("att-1", QUESTIONS, {"q1": "a", "q2": "c"})
        stats = final_stats(report, total_seconds=600, remaining_seconds=300)

        assert stats == {
            "correct_answers": 1,
            "incorrect_answers": 1,
            "score": 33,
            "time_taken_minutes": 5
        }


class TestSummarizeReview:
    def test_counts(self):
        items = [{"status": "correct"}, {"status": "incorrect"}, {"status": "unanswered"},
                 {"status": "correct"}]
        assert summarize_review(items) == {"correct": 2, "incorrect": 1, "unanswered": 1, "total": 4}
