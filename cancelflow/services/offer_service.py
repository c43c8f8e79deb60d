from __future__ import annotations

import math
from typing import Any, Mapping, TypedDict

from cancelflow.logger import logging
from cancelflow.matching import coerce_condition, offer_label
from cancelflow.schemas.offers import (
    KIND_CONDITIONAL,
    OPERATOR_EQUALS,
    OPERATOR_GREATER_THAN,
    OfferCondition,
    OfferTerms,
    RetentionOffer,
)
from cancelflow.schemas.survey import NUMERIC_QUESTION_TYPES, Question, QuestionOption, has_options
from cancelflow.services.survey_service import _first_present, question_from_row

ISSUE_MALFORMED = "malformed_offer"
ISSUE_DANGLING_QUESTION = "dangling_question"
ISSUE_INACTIVE_QUESTION = "inactive_question"
ISSUE_UNKNOWN_ANSWER_VALUE = "unknown_answer_value"
ISSUE_NON_NUMERIC_QUESTION = "non_numeric_question"
ISSUE_NON_NUMERIC_THRESHOLD = "non_numeric_threshold"


class OfferIssue(TypedDict):
    offer_id: str
    code: str
    message: str


def _require_non_empty_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field_name}' must be a non-empty string")
    return value.strip()


def _parse_optional_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"'{field_name}' must be an integer") from exc
    raise ValueError(f"'{field_name}' must be an integer")


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_question_form(form: Mapping[str, Any], *, question_id: str, order: int = 0) -> Question:
    """Build a question from the editor form.

    Choice options arrive one per line and are given the values
    ``option_0``, ``option_1``, ... in the order entered.
    """
    if not isinstance(form, Mapping):
        raise ValueError("'form' must be an object")

    question_type = str(form.get("question_type") or "text").strip().lower()
    options = None
    if has_options(question_type):
        lines = [line.strip() for line in str(form.get("options") or "").splitlines() if line.strip()]
        options = tuple(QuestionOption(value=f"option_{idx}", label=label) for idx, label in enumerate(lines))

    return Question(
        id=question_id,
        text=_require_non_empty_str(form.get("question_text"), "question_text"),
        type=question_type,
        options=options,
        required=bool(form.get("is_mandatory", False)),
        order=order,
    )


def parse_offer_form(form: Mapping[str, Any], *, offer_id: str) -> RetentionOffer:
    """Build a retention offer from the editor form.

    Condition answer values arrive comma separated. Integer fields accept
    blank strings as "not set".
    """
    if not isinstance(form, Mapping):
        raise ValueError("'form' must be an object")

    kind = str(form.get("offer_type") or "unconditional").strip().lower()
    condition = None
    if kind == KIND_CONDITIONAL and _optional_text(form.get("condition_question_id")):
        raw_values = str(form.get("condition_answer_values") or "")
        condition = OfferCondition(
            question_id=str(form.get("condition_question_id")),
            operator=str(form.get("condition_operator") or OPERATOR_EQUALS),
            answer_values=tuple(value.strip() for value in raw_values.split(",")),
        )

    return RetentionOffer(
        id=offer_id,
        kind=kind,
        title=_require_non_empty_str(form.get("title"), "title"),
        description=_optional_text(form.get("description")),
        terms=OfferTerms(
            discount_percent=_parse_optional_int(form.get("discount_percent"), "discount_percent"),
            discount_months=_parse_optional_int(form.get("discount_months"), "discount_months"),
            free_months=_parse_optional_int(form.get("free_months"), "free_months"),
        ),
        condition=condition,
        priority=_parse_optional_int(form.get("priority"), "priority") or 0,
    )


def offer_from_row(row: Any) -> RetentionOffer:
    """Build a ``RetentionOffer`` from a stored row or return it unchanged."""
    if isinstance(row, RetentionOffer):
        return row
    if not isinstance(row, Mapping):
        raise ValueError("offer rows must be objects")

    terms_source = row.get("terms") if isinstance(row.get("terms"), Mapping) else row
    kind = str(_first_present(row, ("kind", "offer_type"), "")).strip().lower()
    condition = None
    if kind == KIND_CONDITIONAL:
        condition = coerce_condition(_first_present(row, ("condition", "condition_rules")))

    return RetentionOffer(
        id=str(row.get("id") or ""),
        kind=kind,
        title=row.get("title"),
        description=_optional_text(row.get("description")),
        terms=OfferTerms(
            discount_percent=_parse_optional_int(terms_source.get("discount_percent"), "discount_percent"),
            discount_months=_parse_optional_int(terms_source.get("discount_months"), "discount_months"),
            free_months=_parse_optional_int(terms_source.get("free_months"), "free_months"),
        ),
        condition=condition,
        priority=_parse_optional_int(row.get("priority"), "priority") or 0,
        active=_first_present(row, ("active", "is_active"), True),
    )


def _is_number(value: str) -> bool:
    try:
        number = float(value)
    except ValueError:
        return False
    return not (math.isnan(number) or math.isinf(number))


def _condition_issues(offer: RetentionOffer, questions: Mapping[str, Question]) -> list[OfferIssue]:
    condition = offer.condition
    if condition is None:
        return []

    question = questions.get(condition.question_id)
    if question is None:
        return [
            {
                "offer_id": offer.id,
                "code": ISSUE_DANGLING_QUESTION,
                "message": f"Condition references question '{condition.question_id}', which no longer exists",
            }
        ]

    issues: list[OfferIssue] = []
    if not question.active:
        issues.append(
            {
                "offer_id": offer.id,
                "code": ISSUE_INACTIVE_QUESTION,
                "message": f"Condition references inactive question '{question.id}'; the offer can never match",
            }
        )

    if condition.operator == OPERATOR_GREATER_THAN:
        if question.type not in NUMERIC_QUESTION_TYPES:
            issues.append(
                {
                    "offer_id": offer.id,
                    "code": ISSUE_NON_NUMERIC_QUESTION,
                    "message": f"'greater_than' is used on '{question.type}' question '{question.id}'",
                }
            )
        bad_thresholds = [value for value in condition.answer_values if not _is_number(value)]
        if bad_thresholds:
            issues.append(
                {
                    "offer_id": offer.id,
                    "code": ISSUE_NON_NUMERIC_THRESHOLD,
                    "message": f"Non-numeric thresholds are ignored: {', '.join(bad_thresholds)}",
                }
            )
    elif condition.operator == OPERATOR_EQUALS and question.options:
        unknown = [value for value in condition.answer_values if value not in question.option_values]
        if unknown:
            issues.append(
                {
                    "offer_id": offer.id,
                    "code": ISSUE_UNKNOWN_ANSWER_VALUE,
                    "message": f"Answer values are not options of question '{question.id}': {', '.join(unknown)}",
                }
            )
    return issues


def audit_offers(offers: Any, questions: Any) -> list[OfferIssue]:
    """Flag stored offers that can never be shown, or only by accident.

    Intended for the creator's editor; the matching engine itself already
    treats every problem reported here as "not matching".
    """
    if not isinstance(offers, (list, tuple)):
        raise ValueError("'offers' must be a list")
    if not isinstance(questions, (list, tuple)):
        raise ValueError("'questions' must be a list")

    questions_by_id: dict[str, Question] = {}
    for idx, row in enumerate(questions):
        try:
            question = question_from_row(row)
        except ValueError as exc:
            logging.warning(f"Skipping malformed cancellation question at position {idx}: {exc}")
            continue
        questions_by_id[question.id] = question

    issues: list[OfferIssue] = []
    for row in offers:
        try:
            offer = offer_from_row(row)
        except ValueError as exc:
            issues.append({"offer_id": offer_label(row), "code": ISSUE_MALFORMED, "message": str(exc)})
            continue
        issues.extend(_condition_issues(offer, questions_by_id))

    if issues:
        logging.warning(f"Retention offer audit found {len(issues)} issue(s)")
    return issues


def _months(count: int) -> str:
    return f"{count} month" if count == 1 else f"{count} months"


def describe_terms(terms: OfferTerms) -> str:
    parts: list[str] = []
    if terms.discount_percent:
        text = f"{terms.discount_percent}% off"
        if terms.discount_months:
            text += f" for {_months(terms.discount_months)}"
        parts.append(text)
    elif terms.discount_months:
        parts.append(f"discounted for {_months(terms.discount_months)}")
    if terms.free_months:
        parts.append(f"{terms.free_months} free month(s)")
    return ", ".join(parts)


def offer_to_dict(offer: Any) -> dict[str, Any]:
    """Presentation payload for one offer."""
    offer = offer_from_row(offer)
    condition = None
    if offer.condition is not None:
        condition = {
            "question_id": offer.condition.question_id,
            "operator": offer.condition.operator,
            "answer_values": list(offer.condition.answer_values),
        }

    return {
        "id": offer.id,
        "kind": offer.kind,
        "title": offer.title,
        "description": offer.description,
        "priority": offer.priority,
        "terms": {
            "discount_percent": offer.terms.discount_percent,
            "discount_months": offer.terms.discount_months,
            "free_months": offer.terms.free_months,
        },
        "terms_summary": describe_terms(offer.terms),
        "condition": condition,
    }


__all__ = [
    "ISSUE_DANGLING_QUESTION",
    "ISSUE_INACTIVE_QUESTION",
    "ISSUE_MALFORMED",
    "ISSUE_NON_NUMERIC_QUESTION",
    "ISSUE_NON_NUMERIC_THRESHOLD",
    "ISSUE_UNKNOWN_ANSWER_VALUE",
    "OfferIssue",
    "audit_offers",
    "describe_terms",
    "offer_from_row",
    "offer_to_dict",
    "parse_offer_form",
    "parse_question_form",
]
