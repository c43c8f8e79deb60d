"""Retention offer matching engine.

Selects which retention offers a departing subscriber sees, given the
creator's offers and the subscriber's exit-survey answers.

Everything here is pure and deterministic. Domain-data problems (a
malformed offer row, an unanswered or deleted question, a non-numeric
answer) only ever exclude the offer concerned; the remaining offers are
still evaluated. Only caller mistakes, such as passing ``None`` instead of
a list of offers, raise.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from cancelflow.logger import logging
from cancelflow.schemas.offers import (
    KIND_CONDITIONAL,
    KIND_UNCONDITIONAL,
    OPERATOR_CONTAINS,
    OPERATOR_EQUALS,
    OPERATOR_GREATER_THAN,
    OfferCondition,
)

REASON_INACTIVE = "inactive"
REASON_UNCONDITIONAL = "unconditional"
REASON_CONDITION_MET = "condition_met"
REASON_CONDITION_NOT_MET = "condition_not_met"
REASON_UNANSWERED = "unanswered"
REASON_MALFORMED = "malformed"

_KIND_KEYS = ("kind", "offer_type")
_CONDITION_KEYS = ("condition", "condition_rules")
_ACTIVE_KEYS = ("active", "is_active")
_QUESTION_ID_KEYS = ("question_id", "questionId")
_ANSWER_VALUES_KEYS = ("answer_values", "answerValues")


def _read(source: Any, keys: Sequence[str], default: Any = None) -> Any:
    if isinstance(source, Mapping):
        for key in keys:
            if key in source:
                return source[key]
        return default
    for key in keys:
        if hasattr(source, key):
            return getattr(source, key)
    return default


def _scalar_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (str, int)):
        text = str(value)
        return text if text != "" else None
    return None


def _parse_number(value: str) -> float | None:
    try:
        number = float(value.strip())
    except (AttributeError, TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def normalize_answer(answer: Any) -> list[str]:
    """Normalise a raw answer to an ordered list of strings.

    Scalars become one-element lists, sequences keep their order, and
    ``None``/empty values are dropped. Unsupported shapes yield ``[]``.
    """
    if isinstance(answer, (list, tuple)):
        values = []
        for item in answer:
            text = _scalar_text(item)
            if text is not None:
                values.append(text)
        return values

    text = _scalar_text(answer)
    return [] if text is None else [text]


def coerce_condition(raw: Any) -> OfferCondition:
    """Build an ``OfferCondition`` from an object or a stored row.

    Raises ``ValueError`` when the condition is missing or malformed.
    """
    if isinstance(raw, OfferCondition):
        return raw
    if raw is None:
        raise ValueError("'condition' is required for conditional offers")
    if not isinstance(raw, Mapping):
        raise ValueError("'condition' must be an object")

    answer_values = _read(raw, _ANSWER_VALUES_KEYS)
    if isinstance(answer_values, (list, tuple)):
        answer_values = tuple(
            str(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else value
            for value in answer_values
        )
    return OfferCondition(
        question_id=_read(raw, _QUESTION_ID_KEYS),
        operator=raw.get("operator"),
        answer_values=answer_values,
    )


def _matches_equals(answer: list[str], expected: Sequence[str]) -> bool:
    return any(value in expected for value in answer)


def _matches_contains(answer: list[str], expected: Sequence[str]) -> bool:
    return any(needle in element for element in answer for needle in expected)


def _matches_greater_than(answer: list[str], thresholds: Sequence[str]) -> bool:
    if len(answer) != 1:
        return False
    numeric_answer = _parse_number(answer[0])
    if numeric_answer is None:
        return False
    for threshold in thresholds:
        numeric_threshold = _parse_number(threshold)
        if numeric_threshold is not None and numeric_answer > numeric_threshold:
            return True
    return False


_MATCHERS = {
    OPERATOR_EQUALS: _matches_equals,
    OPERATOR_CONTAINS: _matches_contains,
    OPERATOR_GREATER_THAN: _matches_greater_than,
}


def _require_answers(answers: Any) -> Mapping[str, Any]:
    if answers is None or not isinstance(answers, Mapping):
        raise ValueError("'answers' must be a mapping of question id to answer")
    return answers


def evaluate_condition(condition: Any, answers: Mapping[str, Any]) -> bool:
    """Return True when the subscriber's answer satisfies ``condition``.

    A missing answer, a non-numeric value under ``greater_than`` or a
    malformed condition all evaluate to False.
    """
    _require_answers(answers)
    try:
        parsed = coerce_condition(condition)
    except ValueError as exc:
        logging.warning(f"Ignoring malformed offer condition: {exc}")
        return False

    answer = normalize_answer(answers.get(parsed.question_id))
    if not answer:
        return False
    return _MATCHERS[parsed.operator](answer, parsed.answer_values)


def offer_label(offer: Any) -> str:
    offer_id = _read(offer, ("id",))
    return str(offer_id) if offer_id not in (None, "") else "<unknown>"


def is_active(offer: Any) -> bool:
    active = _read(offer, _ACTIVE_KEYS, True)
    return active is True


def offer_priority(offer: Any) -> int:
    """Read an offer's priority; missing priorities default to 0.

    Raises ``ValueError`` for values that are not whole numbers.
    """
    raw = _read(offer, ("priority",))
    if raw is None:
        return 0
    if isinstance(raw, bool):
        raise ValueError("'priority' must be an integer")
    if isinstance(raw, float) and not raw.is_integer():
        raise ValueError("'priority' must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("'priority' must be an integer") from exc


def _evaluate_offer(offer: Any, answers: Mapping[str, Any]) -> str:
    if not is_active(offer):
        return REASON_INACTIVE

    kind = _read(offer, _KIND_KEYS)
    kind = kind.strip().lower() if isinstance(kind, str) else kind
    if kind == KIND_UNCONDITIONAL:
        return REASON_UNCONDITIONAL
    if kind != KIND_CONDITIONAL:
        raise ValueError(f"unsupported offer kind {kind!r}")

    condition = coerce_condition(_read(offer, _CONDITION_KEYS))
    answer = normalize_answer(answers.get(condition.question_id))
    if not answer:
        return REASON_UNANSWERED
    if _MATCHERS[condition.operator](answer, condition.answer_values):
        return REASON_CONDITION_MET
    return REASON_CONDITION_NOT_MET


def _require_offers(offers: Any) -> Sequence[Any]:
    if offers is None or isinstance(offers, (str, bytes, Mapping)) or not isinstance(offers, Sequence):
        raise ValueError("'offers' must be a list of offers")
    return offers


def explain_offers(offers: Sequence[Any], answers: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Evaluate every offer and report why it was included or excluded.

    Entries keep input order. ``priority`` is ``None`` for malformed offers.
    """
    offers = _require_offers(offers)
    answers = _require_answers(answers)

    decisions: list[dict[str, Any]] = []
    for position, offer in enumerate(offers):
        label = offer_label(offer)
        try:
            priority = offer_priority(offer)
            reason = _evaluate_offer(offer, answers)
        except Exception as exc:
            logging.warning(f"Excluding malformed retention offer {label}: {exc}")
            decisions.append(
                {
                    "position": position,
                    "offer_id": label,
                    "included": False,
                    "reason": REASON_MALFORMED,
                    "priority": None,
                    "message": str(exc),
                }
            )
            continue

        decisions.append(
            {
                "position": position,
                "offer_id": label,
                "included": reason in (REASON_UNCONDITIONAL, REASON_CONDITION_MET),
                "reason": reason,
                "priority": priority,
                "message": None,
            }
        )
    return decisions


def select_offers(offers: Sequence[Any], answers: Mapping[str, Any]) -> list[Any]:
    """Select the retention offers to present, highest priority first.

    Inactive offers are dropped, unconditional offers are always kept and
    conditional offers are kept when their condition holds. Equal
    priorities keep their input order. The caller's offer objects are
    returned unchanged.
    """
    decisions = explain_offers(offers, answers)

    ranked: list[tuple[int, int, Any]] = []
    for decision in decisions:
        if not decision["included"]:
            continue
        position = decision["position"]
        ranked.append((-decision["priority"], position, offers[position]))

    ranked.sort(key=lambda item: (item[0], item[1]))
    selected = [item[2] for item in ranked]
    logging.debug(f"Selected {len(selected)} of {len(decisions)} retention offers")
    return selected


__all__ = [
    "REASON_CONDITION_MET",
    "REASON_CONDITION_NOT_MET",
    "REASON_INACTIVE",
    "REASON_MALFORMED",
    "REASON_UNANSWERED",
    "REASON_UNCONDITIONAL",
    "coerce_condition",
    "evaluate_condition",
    "explain_offers",
    "is_active",
    "normalize_answer",
    "offer_label",
    "offer_priority",
    "select_offers",
]
