# Shared services package for API/business logic extraction.

from .offer_service import (
    audit_offers,
    describe_terms,
    offer_from_row,
    offer_to_dict,
    parse_offer_form,
    parse_question_form,
)
from .survey_service import active_questions, coerce_answer, collect_answers, load_questions, question_from_row

__all__ = [
    "active_questions",
    "audit_offers",
    "coerce_answer",
    "collect_answers",
    "describe_terms",
    "load_questions",
    "offer_from_row",
    "offer_to_dict",
    "parse_offer_form",
    "parse_question_form",
    "question_from_row",
]
