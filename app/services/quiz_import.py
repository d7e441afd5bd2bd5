"""
Bulk question import from a CSV upload into the content store.

Expected layout, one question per row (headers are case-insensitive)::

    text,option1,option2,option3,option4,correctOption
    "Max accumulator voltage?","400 V","600 V","800 V","1000 V","600 V"

Up to six options are read; ``option_1`` and ``option 1`` spellings are
accepted too, as are ``question`` for the text and ``correct`` for the
answer. An optional ``category`` column (common, EV, CV) restricts a
question to one vehicle class.
"""

import csv
import io
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.content.sanity import ContentStatus
from app.core.clock import as_utc, isoformat
from app.core.errors import ContentWriteFailure, ValidationFailure
from app.services.quiz_config import QuizConfigLoader

logger = logging.getLogger(__name__)

MAX_OPTIONS = 6
DEFAULT_TITLE = "Formula IHU Registration Quiz"
DEFAULT_INSTRUCTIONS = (
    "Please read all questions carefully. You have one attempt. "
    "Your progress will be saved automatically."
)

TEXT_COLUMNS = ("text", "question", "question text")
CORRECT_COLUMNS = ("correctoption", "correct option", "correct")
CATEGORIES = {"common": "common", "ev": "EV", "cv": "CV"}


def _first(row: Dict[str, str], names) -> str:
    for name in names:
        value = (row.get(name) or "").strip()
        if value:
            return value
    return ""


def _options(row: Dict[str, str]) -> List[str]:
    options = []
    for i in range(1, MAX_OPTIONS + 1):
        value = _first(row, (f"option{i}", f"option_{i}", f"option {i}"))
        if value:
            options.append(value)
    return options


def _question_from_row(row: Dict[str, str], line: int, errors: Dict[str, str]) -> Optional[Dict[str, Any]]:
    label = f"Row {line}"
    text = _first(row, TEXT_COLUMNS)
    options = _options(row)
    correct = _first(row, CORRECT_COLUMNS)

    if not text:
        errors[label] = "Missing question text"
    elif len(options) < 2:
        errors[label] = "Need at least 2 options"
    elif not correct:
        errors[label] = "Missing correct option"
    elif correct not in options:
        errors[label] = f'Correct option "{correct}" not found in options'
    else:
        question = {
            "_key": uuid.uuid4().hex[:12],
            "text": text,
            "options": options,
            "correctOption": correct,
        }
        category = (row.get("category") or "").strip()
        if category:
            if category.lower() not in CATEGORIES:
                errors[label] = f'Unknown category "{category}"'
                return None
            question["category"] = CATEGORIES[category.lower()]
        return question
    return None


def parse_questions_csv(data: bytes) -> List[Dict[str, Any]]:
    """Content-store question objects; raises ValidationFailure listing every bad row."""
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationFailure({"file": "File must be UTF-8 encoded CSV"}, "CSV parsing errors")

    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames is None:
        raise ValidationFailure({"file": "CSV file is empty"}, "CSV file is empty")
    reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]

    questions: List[Dict[str, Any]] = []
    errors: Dict[str, str] = {}
    index = 0
    try:
        for row in reader:
            if not any((value or "").strip() for key, value in row.items() if key is not None):
                continue
            # header is line 1
            line = index + 2
            index += 1
            if None in row:
                errors[f"Row {line}"] = f"Expected {len(reader.fieldnames)} fields, found more"
                continue
            question = _question_from_row(row, line, errors)
            if question is not None:
                questions.append(question)
    except csv.Error as e:
        raise ValidationFailure({"file": str(e)}, "CSV parsing errors")

    if errors:
        raise ValidationFailure(errors, "Failed to import quiz")
    if not questions:
        raise ValidationFailure({"file": "CSV file is empty"}, "CSV file is empty")
    return questions


def parse_start_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailure(
            {"scheduledStartTime": "Expected an ISO 8601 timestamp"},
            "Invalid scheduled start time",
        )
    return isoformat(as_utc(parsed))


class QuizImporter:
    def __init__(self, loader: QuizConfigLoader):
        self.content = loader.content
        self.cache = loader.cache

    @property
    def configured(self) -> bool:
        return self.content.configured

    def import_questions(
        self,
        questions: List[Dict[str, Any]],
        quiz_id: Optional[str] = None,
        title: str = DEFAULT_TITLE,
        is_active: bool = False,
        scheduled_start_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        count = len(questions)
        if quiz_id:
            result = self.content.set_fields(quiz_id, {"questions": questions})
            message = f"Successfully imported {count} questions"
        else:
            result = self.content.create_document({
                "_type": "registrationQuiz",
                "title": title or DEFAULT_TITLE,
                "isActive": is_active,
                "scheduledStartTime": scheduled_start_time,
                "questions": questions,
                "instructions": DEFAULT_INSTRUCTIONS,
            })
            message = f"Successfully created quiz with {count} questions"

        if result.status == ContentStatus.NOT_CONFIGURED:
            raise ContentWriteFailure("Sanity client not configured")
        if not result.ok:
            logger.error("Quiz import failed: %s", result.error)
            raise ContentWriteFailure()

        written_id = (result.value[0] or {}).get("id") or quiz_id
        # the next config read must see the new questions
        self.cache.invalidate()
        logger.info("Imported %d questions into quiz %s", count, written_id)
        return {
            "success": True,
            "message": message,
            "quizId": written_id,
            "questionsCount": count,
        }
