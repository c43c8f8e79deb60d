from __future__ import annotations

import math
from typing import Any, Mapping, TypedDict

from cancelflow.logger import logging
from cancelflow.schemas.survey import (
    MULTI_VALUE_QUESTION_TYPES,
    RATING_MAX,
    RATING_MIN,
    Question,
    QuestionOption,
)


class AnswerError(TypedDict):
    question_id: str
    message: str


class SurveyCollection(TypedDict):
    answers: dict[str, str | list[str]]
    errors: list[AnswerError]
    ignored: list[str]


def _first_present(row: Mapping[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return default


def _parse_options(raw: Any) -> tuple[QuestionOption, ...] | None:
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)):
        raise ValueError("'options' must be a list of {value, label} objects")

    options: list[QuestionOption] = []
    for idx, item in enumerate(raw):
        if isinstance(item, QuestionOption):
            options.append(item)
        elif isinstance(item, Mapping):
            options.append(QuestionOption(value=item.get("value"), label=item.get("label")))
        else:
            raise ValueError(f"'options[{idx}]' must be a {{value, label}} object")
    return tuple(options) or None


def question_from_row(row: Any) -> Question:
    """Build a ``Question`` from a stored row or return it unchanged."""
    if isinstance(row, Question):
        return row
    if not isinstance(row, Mapping):
        raise ValueError("question rows must be objects")

    return Question(
        id=str(row.get("id") or ""),
        text=_first_present(row, ("text", "question_text"), ""),
        type=_first_present(row, ("type", "question_type"), "text"),
        options=_parse_options(row.get("options")),
        required=_first_present(row, ("required", "is_mandatory"), False),
        order=_first_present(row, ("order", "order_index"), 0),
        active=_first_present(row, ("active", "is_active"), True),
    )


def load_questions(rows: Any) -> list[Question]:
    """Convert stored question rows, skipping (and logging) malformed ones."""
    if not isinstance(rows, (list, tuple)):
        raise ValueError("'questions' must be a list")

    questions: list[Question] = []
    for idx, row in enumerate(rows):
        try:
            questions.append(question_from_row(row))
        except ValueError as exc:
            logging.warning(f"Skipping malformed cancellation question at position {idx}: {exc}")
    return questions


def active_questions(questions: list[Question]) -> list[Question]:
    """Return active questions in display order (stable for equal ``order``)."""
    return sorted((question for question in questions if question.active), key=lambda question: question.order)


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    if isinstance(raw, (list, tuple)):
        return all(_is_blank(item) for item in raw)
    return False


def _scalar_text(raw: Any) -> str:
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise ValueError("must be a text value")
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()


def _coerce_number(raw: Any) -> str:
    text = _scalar_text(raw)
    try:
        number = float(text)
    except ValueError as exc:
        raise ValueError("must be a number") from exc
    if math.isnan(number) or math.isinf(number):
        raise ValueError("must be a finite number")
    return text


def _coerce_rating(raw: Any) -> str:
    number = float(_coerce_number(raw))
    if not number.is_integer() or not RATING_MIN <= number <= RATING_MAX:
        raise ValueError(f"must be a whole rating between {RATING_MIN} and {RATING_MAX}")
    return str(int(number))


def _coerce_choice(question: Question, raw: Any) -> str:
    if isinstance(raw, (list, tuple)):
        values = [item for item in raw if not _is_blank(item)]
        if len(values) != 1:
            raise ValueError("accepts exactly one option")
        raw = values[0]
    value = _scalar_text(raw)
    if value not in question.option_values:
        raise ValueError(f"must be one of: {', '.join(question.option_values)}")
    return value


def _coerce_multi_choice(question: Question, raw: Any) -> list[str]:
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    values: list[str] = []
    for item in items:
        if _is_blank(item):
            continue
        value = _scalar_text(item)
        if value not in question.option_values:
            raise ValueError(f"'{value}' is not one of: {', '.join(question.option_values)}")
        if value not in values:
            values.append(value)
    return values


def coerce_answer(question: Question, raw: Any) -> str | list[str]:
    """Validate one raw answer against its question and normalise it.

    Raises ``ValueError`` with a short message when the answer does not fit
    the question type.
    """
    if question.type in MULTI_VALUE_QUESTION_TYPES:
        return _coerce_multi_choice(question, raw)
    if question.type in ("select", "radio"):
        return _coerce_choice(question, raw)
    if question.type == "number":
        return _coerce_number(raw)
    if question.type == "rating":
        return _coerce_rating(raw)
    return _scalar_text(raw)


def collect_answers(questions: Any, raw_answers: Any) -> SurveyCollection:
    """Turn a subscriber's raw survey submission into an answer set.

    Only active questions are collected; answers to unknown or inactive
    questions are reported in ``ignored``. Required questions left blank
    and answers that do not fit their question produce ``errors``.
    """
    if not isinstance(raw_answers, Mapping):
        raise ValueError("'answers' must be a mapping of question id to answer")

    survey = active_questions(load_questions(questions))
    answers: dict[str, str | list[str]] = {}
    errors: list[AnswerError] = []

    for question in survey:
        raw = raw_answers.get(question.id)
        if _is_blank(raw):
            if question.required:
                errors.append({"question_id": question.id, "message": "An answer is required"})
            continue
        try:
            answers[question.id] = coerce_answer(question, raw)
        except ValueError as exc:
            errors.append({"question_id": question.id, "message": f"Answer {exc}"})

    known_ids = {question.id for question in survey}
    ignored = sorted(str(key) for key in raw_answers if key not in known_ids)
    if ignored:
        logging.info(f"Ignoring answers for unknown or inactive questions: {', '.join(ignored)}")

    return {"answers": answers, "errors": errors, "ignored": ignored}


__all__ = [
    "AnswerError",
    "SurveyCollection",
    "active_questions",
    "coerce_answer",
    "collect_answers",
    "load_questions",
    "question_from_row",
]
