from .offers import (
    KIND_CONDITIONAL,
    KIND_UNCONDITIONAL,
    OFFER_KINDS,
    OPERATOR_CONTAINS,
    OPERATOR_EQUALS,
    OPERATOR_GREATER_THAN,
    OPERATORS,
    OfferCondition,
    OfferTerms,
    RetentionOffer,
)
from .survey import (
    MULTI_VALUE_QUESTION_TYPES,
    NUMERIC_QUESTION_TYPES,
    OPTION_QUESTION_TYPES,
    QUESTION_TYPES,
    Question,
    QuestionOption,
    has_options,
)

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
    "MULTI_VALUE_QUESTION_TYPES",
    "NUMERIC_QUESTION_TYPES",
    "OPTION_QUESTION_TYPES",
    "QUESTION_TYPES",
    "Question",
    "QuestionOption",
    "has_options",
]
