# exam_prep/core/database.py
import logging
from typing import List, Dict, Any, Optional
import pymongo
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError, DuplicateKeyError
from .config import config
from .exceptions import StorageError, AttemptAlreadyFinalized
from .utils import TestKind, DateTimeUtils, generate_id

logger = logging.getLogger(__name__)

class DatabaseManager:
    """Content store over MongoDB: papers/tests, questions, attempts, answers, articles, settings"""

    def __init__(self, db=None):
        """Initialize database connection, or bind an already opened database"""
        logger.info("🔄 Initializing Database Manager")

        self.mongo_client = None
        self.db = db

        if self.db is None:
            self._init_mongodb()

        self.mock_tests = self.db[config.MOCK_TESTS_COLLECTION]
        self.previous_papers = self.db[config.PREVIOUS_PAPERS_COLLECTION]
        self.questions = self.db[config.QUESTIONS_COLLECTION]
        self.test_attempts = self.db[config.TEST_ATTEMPTS_COLLECTION]
        self.user_answers = self.db[config.USER_ANSWERS_COLLECTION]
        self.articles = self.db[config.ARTICLES_COLLECTION]
        self.admin_settings = self.db[config.ADMIN_SETTINGS_COLLECTION]

        self._create_indexes()

    def _init_mongodb(self):
        """Initialize MongoDB connection"""
        try:
            self.mongo_client = pymongo.MongoClient(
                config.MONGO_URI,
                serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS,
                maxPoolSize=10,
                minPoolSize=1,
                maxIdleTimeMS=30000,
                waitQueueTimeoutMS=5000
            )

            # Test connection
            self.mongo_client.admin.command('ping')
            self.db = self.mongo_client[config.MONGO_DB_NAME]

            logger.info(f"✅ MongoDB connection established: {config.MONGO_DB_NAME}")

        except PyMongoError as e:
            logger.error(f"❌ MongoDB connection failed: {e}")
            raise StorageError(f"MongoDB connection failure: {e}")

    def _create_indexes(self):
        """Create indexes for lookups and uniqueness"""
        try:
            self.questions.create_index("test_id")
            self.questions.create_index("paper_id")
            self.user_answers.create_index("attempt_id")
            self.test_attempts.create_index([("user_id", pymongo.ASCENDING), ("completed_at", pymongo.DESCENDING)])
            self.test_attempts.create_index([("test_id", pymongo.ASCENDING), ("score", pymongo.DESCENDING)])
            self.test_attempts.create_index([("paper_id", pymongo.ASCENDING), ("score", pymongo.DESCENDING)])
            self.articles.create_index("title_key", unique=True)
            self.admin_settings.create_index("key", unique=True)
            logger.info("✅ Database indexes created")
        except PyMongoError as idx_error:
            logger.warning(f"⚠️ Index creation failed: {idx_error}")

    @staticmethod
    def _to_public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Expose _id as id"""
        if not doc:
            return doc
        record = dict(doc)
        if "_id" in record:
            record["id"] = record.pop("_id")
        return record

    def _source_collection(self, kind: TestKind):
        return self.previous_papers if kind is TestKind.PAPER else self.mock_tests

    # ==================== Papers / Tests / Questions ====================

    def get_source(self, kind: TestKind, source_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a mock test or previous paper by id"""
        try:
            doc = self._source_collection(kind).find_one({"_id": source_id})
            return self._to_public(doc)
        except PyMongoError as e:
            logger.error(f"❌ Failed to fetch {kind.value} {source_id}: {e}")
            raise StorageError(f"{kind.value.capitalize()} retrieval failed: {e}")

    def get_questions(self, kind: TestKind, source_id: str) -> List[Dict[str, Any]]:
        """Fetch the full question set of a test or paper, in authoring order"""
        try:
            cursor = self.questions.find({kind.foreign_key: source_id}).sort("position", pymongo.ASCENDING)
            return [self._to_public(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error(f"❌ Failed to fetch questions for {kind.value} {source_id}: {e}")
            raise StorageError(f"Question retrieval failed: {e}")

    def list_sources(self, kind: TestKind, filters: Dict[str, Any] = None,
                     limit: int = 100) -> List[Dict[str, Any]]:
        """List mock tests or previous papers, newest first"""
        try:
            cursor = self._source_collection(kind).find(filters or {}).sort(
                "created_at", pymongo.DESCENDING
            ).limit(limit)
            return [self._to_public(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error(f"❌ Failed to list {kind.value}s: {e}")
            raise StorageError(f"{kind.value.capitalize()} listing failed: {e}")

    def _prepare_questions(self, kind: TestKind, source_id: str,
                           questions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rows = []
        for position, question in enumerate(questions):
            rows.append({
                "_id": generate_id(),
                "test_id": source_id if kind is TestKind.TEST else None,
                "paper_id": source_id if kind is TestKind.PAPER else None,
                "position": position,
                "question_text": question["question_text"],
                "option_a": question["option_a"],
                "option_b": question["option_b"],
                "option_c": question["option_c"],
                "option_d": question["option_d"],
                "correct_answer": question["correct_answer"],
                "explanation": question.get("explanation"),
                "created_at": DateTimeUtils.utcnow()
            })
        return rows

    def _create_source_with_questions(self, kind: TestKind, source_doc: Dict[str, Any],
                                      questions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create a test/paper and its questions; undo both on any failure"""
        source_id = generate_id()
        document = dict(source_doc)
        document.update({
            "_id": source_id,
            "questions_count": len(questions),
            "created_at": DateTimeUtils.utcnow()
        })
        rows = self._prepare_questions(kind, source_id, questions)
        collection = self._source_collection(kind)

        try:
            collection.insert_one(document)
            if rows:
                self.questions.insert_many(rows)
        except PyMongoError as e:
            logger.error(f"❌ Failed to create {kind.value} with questions, compensating: {e}")
            self._compensate_source(kind, source_id)
            raise StorageError(f"Failed to save {kind.value} and its questions: {e}")

        logger.info(f"✅ Created {kind.value} {source_id} with {len(rows)} questions")
        return self._to_public(document)

    def _compensate_source(self, kind: TestKind, source_id: str):
        try:
            self.questions.delete_many({kind.foreign_key: source_id})
            self._source_collection(kind).delete_one({"_id": source_id})
            logger.info(f"🧹 Rolled back partial {kind.value} {source_id}")
        except PyMongoError as e:
            logger.error(f"❌ Compensation failed for {kind.value} {source_id}: {e}")

    def create_test_with_questions(self, test_doc: Dict[str, Any],
                                   questions: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._create_source_with_questions(TestKind.TEST, test_doc, questions)

    def create_paper_with_questions(self, paper_doc: Dict[str, Any],
                                    questions: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._create_source_with_questions(TestKind.PAPER, paper_doc, questions)

    # ==================== Attempts ====================

    def create_attempt(self, user_id: str, kind: TestKind, source_id: str,
                       total_questions: int) -> Dict[str, Any]:
        """Open an attempt with placeholder stats"""
        document = {
            "_id": generate_id(),
            "user_id": user_id,
            "test_id": source_id if kind is TestKind.TEST else None,
            "paper_id": source_id if kind is TestKind.PAPER else None,
            "total_questions": total_questions,
            "score": 0,
            "correct_answers": 0,
            "incorrect_answers": 0,
            "time_taken_minutes": None,
            "completed_at": None,
            "created_at": DateTimeUtils.utcnow()
        }
        try:
            self.test_attempts.insert_one(document)
        except PyMongoError as e:
            logger.error(f"❌ Failed to create attempt: {e}")
            raise StorageError(f"Attempt creation failed: {e}")

        logger.info(f"✅ Attempt created: {document['_id']} ({kind.value} {source_id})")
        return self._to_public(document)

    def get_attempt(self, attempt_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._to_public(self.test_attempts.find_one({"_id": attempt_id}))
        except PyMongoError as e:
            logger.error(f"❌ Failed to fetch attempt {attempt_id}: {e}")
            raise StorageError(f"Attempt retrieval failed: {e}")

    def finalize_attempt(self, attempt_id: str, answer_rows: List[Dict[str, Any]],
                         stats: Dict[str, Any]) -> Dict[str, Any]:
        """
        Persist the graded answers, then set the final stats on the attempt.

        The attempt update only applies while completed_at is still null and
        stamps this writer's finalize_token on the attempt and its rows. When
        the update reply is lost the attempt is re-read: if it carries our
        token the write went through and the rows stay. Rows of any writer
        whose token did not win are removed.
        """
        token = generate_id()
        rows = [dict(row, _id=generate_id(), finalize_token=token) for row in answer_rows]
        row_ids = [row["_id"] for row in rows]

        try:
            if rows:
                self.user_answers.insert_many(rows)
        except PyMongoError as e:
            logger.error(f"❌ Answer insert failed for attempt {attempt_id}: {e}")
            self._compensate_answers(attempt_id, row_ids)
            raise StorageError(f"Failed to save answers: {e}")

        update = dict(stats)
        update["completed_at"] = DateTimeUtils.utcnow()
        update["finalize_token"] = token

        try:
            updated = self.test_attempts.find_one_and_update(
                {"_id": attempt_id, "completed_at": None},
                {"$set": update},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"❌ Attempt update failed for {attempt_id}: {e}")
            updated = self._recover_lost_update(attempt_id, token, row_ids)
            if updated is None:
                raise StorageError(f"Failed to update attempt: {e}")

        if updated is None:
            stored = self.get_attempt(attempt_id) or {}
            self._remove_stale_answers(attempt_id, stored.get("finalize_token"), row_ids)
            logger.warning(f"⚠️ Attempt {attempt_id} was already finalized")
            raise AttemptAlreadyFinalized()

        self._remove_stale_answers(attempt_id, token)
        logger.info(f"✅ Attempt finalized: {attempt_id} score={update.get('score')}")
        return self._to_public(updated)

    def _recover_lost_update(self, attempt_id: str, token: str,
                             row_ids: List[str]) -> Optional[Dict[str, Any]]:
        """Stored attempt if our update was applied despite the error, else None"""
        try:
            stored = self.test_attempts.find_one({"_id": attempt_id})
        except PyMongoError as e:
            # Outcome unknown: rows stay and the next finalize removes them if they lost
            logger.error(f"❌ Could not re-read attempt {attempt_id}: {e}")
            return None

        if stored and stored.get("finalize_token") == token:
            logger.warning(f"⚠️ Attempt {attempt_id} update applied despite error, keeping answers")
            return stored

        self._compensate_answers(attempt_id, row_ids)
        return None

    def _remove_stale_answers(self, attempt_id: str, winning_token: Optional[str],
                              row_ids: List[str] = None):
        """Drop answer rows not written by the finalize that completed the attempt"""
        if winning_token is None:
            self._compensate_answers(attempt_id, row_ids or [])
            return

        try:
            removed = self.user_answers.delete_many(
                {"attempt_id": attempt_id, "finalize_token": {"$ne": winning_token}}
            ).deleted_count
        except PyMongoError as e:
            logger.error(f"❌ Stale answer cleanup failed for attempt {attempt_id}: {e}")
            return

        if removed:
            logger.info(f"🧹 Removed {removed} stale answers for attempt {attempt_id}")

    def _compensate_answers(self, attempt_id: str, row_ids: List[str]):
        if not row_ids:
            return
        try:
            self.user_answers.delete_many({"_id": {"$in": row_ids}})
        except PyMongoError as e:
            logger.error(f"❌ Answer compensation failed for attempt {attempt_id}: {e}")

    def get_answers_with_questions(self, attempt_id: str) -> List[Dict[str, Any]]:
        """Fetch the attempt's answers joined with their questions"""
        try:
            answers = list(self.user_answers.find({"attempt_id": attempt_id}).sort(
                "position", pymongo.ASCENDING
            ))
            question_ids = [answer["question_id"] for answer in answers]
            questions = {
                doc["_id"]: self._to_public(doc)
                for doc in self.questions.find({"_id": {"$in": question_ids}})
            }
        except PyMongoError as e:
            logger.error(f"❌ Failed to fetch answers for attempt {attempt_id}: {e}")
            raise StorageError(f"Answer retrieval failed: {e}")

        joined = []
        for answer in answers:
            record = self._to_public(answer)
            record["question"] = questions.get(answer["question_id"])
            joined.append(record)
        return joined

    def list_completed_attempts(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        """A user's completed attempts, newest first"""
        try:
            cursor = self.test_attempts.find(
                {"user_id": user_id, "completed_at": {"$ne": None}}
            ).sort("completed_at", pymongo.DESCENDING).limit(limit)
            return [self._to_public(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error(f"❌ Failed to list attempts for {user_id}: {e}")
            raise StorageError(f"Attempt history retrieval failed: {e}")

    def get_rank_stats(self, kind: TestKind, source_id: str, score: int) -> Dict[str, int]:
        """Count completed attempts on the same test/paper, and those scoring higher"""
        base = {kind.foreign_key: source_id, "completed_at": {"$ne": None}}
        try:
            participants = self.test_attempts.count_documents(base)
            higher = self.test_attempts.count_documents(dict(base, score={"$gt": score}))
        except PyMongoError as e:
            logger.error(f"❌ Rank query failed for {kind.value} {source_id}: {e}")
            raise StorageError(f"Rank retrieval failed: {e}")
        return {"participants": participants, "higher": higher}

    # ==================== Articles ====================

    def upsert_article(self, article: Dict[str, Any], title_key: str) -> bool:
        """Insert the article unless one with the same title key exists; True if stored"""
        document = dict(article)
        document.update({
            "_id": generate_id(),
            "title_key": title_key,
            "created_at": DateTimeUtils.utcnow()
        })
        # The unique title_key index turns a colliding insert into a no-op
        try:
            self.articles.insert_one(document)
        except DuplicateKeyError:
            return False
        except PyMongoError as e:
            logger.error(f"❌ Article insert failed: {e}")
            raise StorageError(f"Article storage failed: {e}")

        return True

    def count_articles(self) -> int:
        return self.articles.count_documents({})

    # ==================== Admin Settings ====================

    def get_setting(self, key: str) -> Optional[str]:
        try:
            doc = self.admin_settings.find_one({"key": key})
        except PyMongoError as e:
            logger.error(f"❌ Failed to read setting {key}: {e}")
            raise StorageError(f"Settings retrieval failed: {e}")
        return doc.get("value") if doc else None

    def set_setting(self, key: str, value: Optional[str], updated_by: str = None):
        try:
            self.admin_settings.update_one(
                {"key": key},
                {
                    "$set": {"value": value, "updated_by": updated_by, "updated_at": DateTimeUtils.utcnow()},
                    "$setOnInsert": {"created_at": DateTimeUtils.utcnow()}
                },
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"❌ Failed to write setting {key}: {e}")
            raise StorageError(f"Settings update failed: {e}")

    # ==================== Health ====================

    def validate_connection(self) -> Dict[str, Any]:
        """Validate database connection"""
        status = {
            "mongodb": False,
            "collections_accessible": False,
            "overall": False
        }

        try:
            if self.mongo_client is not None:
                self.mongo_client.admin.command('ping')
            status["mongodb"] = True

            self.mock_tests.find_one({}, {"_id": 1})
            status["collections_accessible"] = True

        except PyMongoError as e:
            logger.error(f"❌ MongoDB validation failed: {e}")

        status["overall"] = status["mongodb"] and status["collections_accessible"]
        return status

    def close(self):
        """Close database connections"""
        if self.mongo_client:
            self.mongo_client.close()
            logger.info("✅ Database connections closed")

# Singleton pattern for database manager
_db_manager = None

def get_db_manager() -> DatabaseManager:
    """Get database manager instance (singleton)"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager

def set_db_manager(manager: Optional[DatabaseManager]):
    """Replace the shared database manager"""
    global _db_manager
    _db_manager = manager

def close_db_manager():
    """Close database manager instance"""
    global _db_manager
    if _db_manager:
        _db_manager.close()
        _db_manager = None
