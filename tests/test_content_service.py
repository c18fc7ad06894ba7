import pytest

from exam_prep.core.config import config
from exam_prep.services.content_service import ContentService
from exam_prep.services.session_service import SessionEngine

CSV_TEXT = """question,option_a,option_b,option_c,option_d,correct_answer,explanation
"Who wrote the Preamble, as adopted?",Nehru,Ambedkar,Patel,Rajendra Prasad,A,Objectives Resolution
Largest planet?,Earth,Mars,Jupiter,Venus,c,

Fastest land animal?,Lion,Cheetah,Horse,Deer,b)
"""


class TestImportPaperCsv:
    def test_import_creates_paper_and_questions(self, db_manager):
        result = ContentService(db_manager).import_paper_csv(CSV_TEXT, "UPSC", "GS Paper I", 2019)

        assert result["questionsCount"] == 3
        paper = db_manager.previous_papers.find_one({"_id": result["paperId"]})
        assert paper["questions_count"] == 3
        assert paper["duration_minutes"] == config.IMPORTED_PAPER_DURATION_MINUTES
        assert paper["year"] == 2019

        questions = list(db_manager.questions.find({"paper_id": result["paperId"]}).sort("position", 1))
        assert [q["correct_answer"] for q in questions] == ["a", "c", "b"]
        assert questions[0]["question_text"] == "Who wrote the Preamble, as adopted?"
        assert questions[0]["explanation"] == "Objectives Resolution"
        assert questions[1]["explanation"] is None
        assert all(q["test_id"] is None for q in questions)

    def test_imported_paper_can_be_taken(self, db_manager):
        paper_id = ContentService(db_manager).import_paper_csv(CSV_TEXT, "UPSC", "GS Paper I", 2019,
                                                               duration_minutes=30)["paperId"]

        session = SessionEngine(db_manager).start("user-1", paper_id, "paper")

        assert len(session.questions) == 3
        assert session.total_seconds == 1800

    def test_bad_correct_answer_names_line(self, db_manager):
        text = "q,a,b,c,d,correct\nFine?,1,2,3,4,a\nBroken?,1,2,3,4,e\n"

        with pytest.raises(ValueError, match="Line 3"):
            ContentService(db_manager).import_paper_csv(text, "SSC", "CGL", 2020)
        assert db_manager.previous_papers.count_documents({}) == 0

    def test_missing_question_text(self, db_manager):
        text = "q,a,b,c,d,correct\n,1,2,3,4,a\n"
        with pytest.raises(ValueError, match="Line 2"):
            ContentService(db_manager).import_paper_csv(text, "SSC", "CGL", 2020)

    def test_short_row(self, db_manager):
        text = "q,a,b,c,d,correct\nOnly three,1,2\n"
        with pytest.raises(ValueError, match="columns"):
            ContentService(db_manager).import_paper_csv(text, "SSC", "CGL", 2020)

    def test_header_only(self, db_manager):
        with pytest.raises(ValueError, match="no questions"):
            ContentService(db_manager).import_paper_csv("q,a,b,c,d,correct\n", "SSC", "CGL", 2020)


class TestCatalogue:
    def test_list_tests_and_papers(self, db_manager, seed_test, seed_paper):
        seed_test(title="Economy Drill")
        seed_paper()
        db_manager.create_paper_with_questions(
            {"paper_name": "CGL 2021", "exam_type": "SSC", "year": 2021, "duration_minutes": 60}, []
        )
        service = ContentService(db_manager)

        tests = service.list_tests()
        assert [(t["name"], t["questions_count"], t["duration_minutes"]) for t in tests] == [
            ("Economy Drill", 3, 10)
        ]
        assert len(service.list_papers()) == 2
        assert [p["name"] for p in service.list_papers("SSC")] == ["CGL 2021"]


class TestProviderKeys:
    def test_set_and_clear(self, db_manager):
        service = ContentService(db_manager)

        assert service.set_provider_key("NEWS_API_KEY", " abc ", updated_by="admin-1")["configured"] is True
        assert db_manager.get_setting("NEWS_API_KEY") == "abc"

        assert service.set_provider_key("NEWS_API_KEY", "")["configured"] is False
        assert db_manager.get_setting("NEWS_API_KEY") is None

    def test_unknown_key(self, db_manager):
        with pytest.raises(ValueError):
            ContentService(db_manager).set_provider_key("STRIPE_KEY", "x")
