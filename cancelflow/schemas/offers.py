from __future__ import annotations

from dataclasses import dataclass


OFFER_KINDS = ("unconditional", "conditional")
KIND_UNCONDITIONAL = "unconditional"
KIND_CONDITIONAL = "conditional"

OPERATOR_EQUALS = "equals"
OPERATOR_CONTAINS = "contains"
OPERATOR_GREATER_THAN = "greater_than"
OPERATORS = (OPERATOR_EQUALS, OPERATOR_CONTAINS, OPERATOR_GREATER_THAN)


def _require_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field_name}' must be a non-empty string")
    return value.strip()


def _optional_int(value: int | None, field_name: str, minimum: int, maximum: int | None = None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{field_name}' must be an integer when provided")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValueError(f"'{field_name}' must be {bounds}")
    return value


@dataclass(frozen=True, slots=True)
class OfferTerms:
    discount_percent: int | None = None
    discount_months: int | None = None
    free_months: int | None = None

    def __post_init__(self) -> None:
        _optional_int(self.discount_percent, "discount_percent", 0, 100)
        _optional_int(self.discount_months, "discount_months", 1)
        _optional_int(self.free_months, "free_months", 0)
        if self.discount_percent is None and self.discount_months is None and self.free_months is None:
            raise ValueError("'terms' must set at least one of: discount_percent, discount_months, free_months")


@dataclass(frozen=True, slots=True)
class OfferCondition:
    question_id: str
    operator: str
    answer_values: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "question_id", _require_non_empty_str(self.question_id, "question_id"))
        operator = _require_non_empty_str(self.operator, "operator").lower()
        if operator not in OPERATORS:
            raise ValueError(f"'operator' must be one of: {', '.join(OPERATORS)}")
        object.__setattr__(self, "operator", operator)

        if isinstance(self.answer_values, str) or not self.answer_values:
            raise ValueError("'answer_values' must be a non-empty list of strings")
        values = tuple(
            _require_non_empty_str(value, f"answer_values[{idx}]")
            for idx, value in enumerate(self.answer_values)
        )
        object.__setattr__(self, "answer_values", values)


@dataclass(slots=True)
class RetentionOffer:
    """Incentive shown to a departing subscriber.

    A conditional offer carries exactly one ``OfferCondition``; an
    unconditional offer carries none.
    """

    id: str
    kind: str
    title: str
    terms: OfferTerms
    description: str | None = None
    condition: OfferCondition | None = None
    priority: int = 0
    active: bool = True

    def __post_init__(self) -> None:
        self.id = _require_non_empty_str(self.id, "id")
        self.kind = _require_non_empty_str(self.kind, "kind").lower()
        if self.kind not in OFFER_KINDS:
            raise ValueError("'kind' must be one of: unconditional, conditional")
        self.title = _require_non_empty_str(self.title, "title")
        if not isinstance(self.terms, OfferTerms):
            raise ValueError("'terms' must be an OfferTerms object")
        if self.description is not None:
            if not isinstance(self.description, str):
                raise ValueError("'description' must be a string when provided")
            self.description = self.description.strip() or None

        if self.kind == KIND_CONDITIONAL:
            if not isinstance(self.condition, OfferCondition):
                raise ValueError("'condition' is required for conditional offers")
        elif self.condition is not None:
            raise ValueError("'condition' must be omitted for unconditional offers")

        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValueError("'priority' must be an integer")
        if not isinstance(self.active, bool):
            raise ValueError("'active' must be a boolean")


__all__ = [
    "KIND_CONDITIONAL",
    "KIND_UNCONDITIONAL",
    "OFFER_KINDS",
    "OPERATORS",
    "OPERATOR_CONTAINS",
    "OPERATOR_EQUALS",
    "OPERATOR_GREATER_THAN",
    "OfferCondition",
    "OfferTerms",
    "RetentionOffer",
]
