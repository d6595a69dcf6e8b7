import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from src.domain.repositories import (
    IAttemptRepository,
    IQuestionRepository,
    IQuizRepository,
    IUserRepository,
)
from src.domain.models.db_models import Attempt, AttemptAnswer, AttemptStatus, Question, Quiz, User
from qz_utils.logger_utils import logger


def _contains(text: str) -> dict:
    """Case-insensitive substring match on user input."""
    return {"$regex": re.escape(text), "$options": "i"}


def _parse(model, data: dict, label: str):
    try:
        return model(**data)
    except ValidationError as exc:
        logger.error(
            f"{label}.parse_error",
            extra={"doc_id": data.get("_id"), "error": str(exc)},
            exc_info=True,
        )
        return None


class MongoUserRepository(IUserRepository):
    """MongoDB implementation of the user repository."""

    def __init__(self, db: Database):
        self.db = db
        self.collection = self.db.users

    def get_by_id(self, user_id: str) -> Optional[User]:
        data = self.collection.find_one({"_id": user_id})
        return _parse(User, data, "MongoUserRepository.get_by_id") if data else None

    def get_by_email(self, email: str) -> Optional[User]:
        data = self.collection.find_one({"email": email.lower()})
        return _parse(User, data, "MongoUserRepository.get_by_email") if data else None

    def create(self, user: User) -> bool:
        try:
            self.collection.insert_one(user.to_dict())
        except DuplicateKeyError:
            logger.warning("MongoUserRepository.create.duplicate", extra={"email": user.email})
            return False
        logger.info(f"Created user with ID: {user.id}")
        return True

    def update_fields(self, user_id: str, fields: dict) -> bool:
        result = self.collection.update_one({"_id": user_id}, {"$set": fields})
        return result.matched_count > 0

    def list(self, search: str = "", skip: int = 0, limit: int = 50) -> Tuple[List[User], int]:
        query = {}
        if search:
            query["$or"] = [{"name": _contains(search)}, {"email": _contains(search)}]
        cursor = self.collection.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
        users = [User(**data) for data in cursor]
        return users, self.collection.count_documents(query)

    def count(self, since: Optional[datetime] = None, role: Optional[str] = None) -> int:
        query = {"lastLoginAt": {"$gte": since}} if since else {}
        if role:
            query["role"] = role
        return self.collection.count_documents(query)

    def delete(self, user_id: str) -> bool:
        result = self.collection.delete_one({"_id": user_id})
        if result.deleted_count:
            logger.info(f"Deleted user with ID: {user_id}")
        return result.deleted_count > 0


class MongoQuizRepository(IQuizRepository):
    """MongoDB implementation of the quiz repository."""

    def __init__(self, db: Database):
        self.db = db
        self.collection = self.db.quizzes

    def get_by_id(self, quiz_id: str) -> Optional[Quiz]:
        data = self.collection.find_one({"_id": quiz_id})
        if not data:
            logger.warning("MongoQuizRepository.get_by_id.missing", extra={"quiz_id": quiz_id})
            return None
        return _parse(Quiz, data, "MongoQuizRepository.get_by_id")

    def list(self, active_only: bool, category: Optional[str] = None,
             difficulty: Optional[str] = None, search: Optional[str] = None) -> List[Quiz]:
        query = {}
        if active_only:
            query["isActive"] = True
        if category:
            query["category"] = category
        if difficulty:
            query["difficulty"] = difficulty
        if search:
            query["title"] = _contains(search)
        return [Quiz(**data) for data in self.collection.find(query).sort("createdAt", DESCENDING)]

    def create(self, quiz: Quiz) -> None:
        self.collection.insert_one(quiz.to_dict())
        logger.info(f"Created quiz '{quiz.title}' with ID: {quiz.id}")

    def update_fields(self, quiz_id: str, fields: dict) -> Optional[Quiz]:
        fields = dict(fields, updatedAt=datetime.now(timezone.utc))
        data = self.collection.find_one_and_update(
            {"_id": quiz_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return Quiz(**data) if data else None

    def delete(self, quiz_id: str) -> bool:
        return self.collection.delete_one({"_id": quiz_id}).deleted_count > 0

    def increment_attempt_count(self, quiz_id: str, amount: int = 1) -> None:
        self.collection.update_one({"_id": quiz_id}, {"$inc": {"totalAttempts": amount}})

    def increment_question_count(self, quiz_id: str, amount: int) -> None:
        self.collection.update_one({"_id": quiz_id}, {"$inc": {"totalQuestions": amount}})

    def count(self) -> int:
        return self.collection.count_documents({})


class MongoQuestionRepository(IQuestionRepository):
    """MongoDB implementation of the question repository."""

    def __init__(self, db: Database):
        self.db = db
        self.collection = self.db.questions

    def get_by_id(self, question_id: str) -> Optional[Question]:
        data = self.collection.find_one({"_id": question_id})
        return _parse(Question, data, "MongoQuestionRepository.get_by_id") if data else None

    def list_by_quiz(self, quiz_id: str) -> List[Question]:
        cursor = self.collection.find({"quizId": quiz_id}).sort(
            [("order", ASCENDING), ("createdAt", ASCENDING)]
        )
        return [Question(**data) for data in cursor]

    def create_many(self, questions: Iterable[Question]) -> None:
        docs = [question.to_dict() for question in questions]
        if docs:
            self.collection.insert_many(docs)
            logger.info(f"Inserted {len(docs)} question(s) for quiz {docs[0]['quizId']}")

    def replace(self, question: Question) -> bool:
        result = self.collection.replace_one({"_id": question.id}, question.to_dict())
        return result.matched_count > 0

    def delete(self, question_id: str) -> bool:
        return self.collection.delete_one({"_id": question_id}).deleted_count > 0

    def delete_by_quiz(self, quiz_id: str) -> int:
        return self.collection.delete_many({"quizId": quiz_id}).deleted_count


class MongoAttemptRepository(IAttemptRepository):
    """MongoDB implementation of the attempt repository."""

    def __init__(self, db: Database):
        self.db = db
        self.collection = self.db.attempts

    def get_by_id(self, attempt_id: str) -> Optional[Attempt]:
        data = self.collection.find_one({"_id": attempt_id})
        if not data:
            logger.warning("MongoAttemptRepository.get_by_id.missing", extra={"attempt_id": attempt_id})
            return None
        return _parse(Attempt, data, "MongoAttemptRepository.get_by_id")

    def find_in_progress(self, user_id: str, quiz_id: str) -> Optional[Attempt]:
        data = self.collection.find_one({
            "userId": user_id,
            "quizId": quiz_id,
            "status": AttemptStatus.IN_PROGRESS.value,
        })
        return Attempt(**data) if data else None

    def create(self, attempt: Attempt) -> bool:
        try:
            self.collection.insert_one(attempt.to_dict())
        except DuplicateKeyError:
            # one_in_progress_attempt index: another request started this quiz first
            logger.info(
                "MongoAttemptRepository.create.duplicate_in_progress",
                extra={"user_id": attempt.user_id, "quiz_id": attempt.quiz_id},
            )
            return False
        return True

    def _conditional_update(self, attempt_id: str, expected_version: int, set_doc: dict) -> bool:
        set_doc["updatedAt"] = datetime.now(timezone.utc)
        result = self.collection.update_one(
            {
                "_id": attempt_id,
                "version": expected_version,
                "status": AttemptStatus.IN_PROGRESS.value,
            },
            {"$set": set_doc, "$inc": {"version": 1}},
        )
        return result.matched_count == 1

    def save_answers(self, attempt_id: str, expected_version: int,
                     answers: List[AttemptAnswer], score: int) -> bool:
        return self._conditional_update(
            attempt_id,
            expected_version,
            {"answers": [answer.to_dict() for answer in answers], "score": score},
        )

    def mark_completed(self, attempt_id: str, expected_version: int, fields: dict) -> bool:
        set_doc = dict(fields, status=AttemptStatus.COMPLETED.value)
        return self._conditional_update(attempt_id, expected_version, set_doc)

    def list_by_user(self, user_id: str, quiz_id: Optional[str] = None,
                     status: Optional[str] = None) -> List[Attempt]:
        query = {"userId": user_id}
        if quiz_id:
            query["quizId"] = quiz_id
        if status:
            query["status"] = status
        return [Attempt(**data) for data in self.collection.find(query).sort("startedAt", DESCENDING)]

    def list_by_quiz(self, quiz_id: str) -> List[Attempt]:
        return [Attempt(**data) for data in self.collection.find({"quizId": quiz_id})]

    def list(self, skip: int = 0, limit: int = 20) -> Tuple[List[Attempt], int]:
        cursor = self.collection.find({}).sort("startedAt", DESCENDING).skip(skip).limit(limit)
        return [Attempt(**data) for data in cursor], self.collection.count_documents({})

    def delete(self, attempt_id: str) -> bool:
        return self.collection.delete_one({"_id": attempt_id}).deleted_count > 0

    def count(self, user_id: Optional[str] = None) -> int:
        return self.collection.count_documents({"userId": user_id} if user_id else {})
