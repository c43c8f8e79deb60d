from __future__ import annotations

from typing import Any, Mapping, TypedDict

from cancelflow.logger import logging
from cancelflow.matching import offer_label, select_offers
from cancelflow.services.offer_service import audit_offers, offer_from_row, offer_to_dict
from cancelflow.services.survey_service import collect_answers


DEFAULT_MAX_OFFERS = 3


class CancellationSummary(TypedDict):
    questions: int
    active_offers: int
    matched: int
    presented: int
    issues: int


class CancellationReport(TypedDict):
    status: str
    creator_id: str | None
    offers: list[dict[str, Any]]
    answers: dict[str, Any]
    summary: CancellationSummary
    errors: list[Any]


def _new_report(
    *,
    status: str,
    creator_id: str | None,
    offers: list[dict[str, Any]],
    answers: dict[str, Any],
    questions: int,
    active_offers: int,
    matched: int,
    issues: int,
    errors: list[Any],
) -> CancellationReport:
    return {
        "status": status,
        "creator_id": creator_id,
        "offers": offers,
        "answers": answers,
        "summary": {
            "questions": questions,
            "active_offers": active_offers,
            "matched": matched,
            "presented": len(offers),
            "issues": issues,
        },
        "errors": errors,
    }


def _error_report(creator_id: str | None, errors: list[Any], **counts: int) -> CancellationReport:
    return _new_report(
        status="error",
        creator_id=creator_id,
        offers=[],
        answers={},
        questions=counts.get("questions", 0),
        active_offers=counts.get("active_offers", 0),
        matched=0,
        issues=0,
        errors=errors,
    )


def _require_config(config: Any) -> Mapping[str, Any]:
    if config is None:
        return {}
    if not isinstance(config, Mapping):
        raise ValueError("'config' must be a mapping")
    return config


def _resolve_max_offers(cfg: Mapping[str, Any]) -> int | None:
    raw = cfg.get("max_offers", DEFAULT_MAX_OFFERS)
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("'max_offers' must be an integer") from exc
    if value < 0:
        raise ValueError("'max_offers' must be >= 0")
    return value


def _optional_creator_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _inline_rows(request: Mapping[str, Any], field_name: str) -> list | None:
    rows = request.get(field_name)
    if rows is not None and not isinstance(rows, list):
        raise ValueError(f"'{field_name}' must be a list when provided inline")
    return rows


def _require_store(cfg: Mapping[str, Any], creator_id: str | None) -> Any:
    store = cfg.get("store")
    if store is None:
        raise ValueError("a 'store' is required when questions and offers are not provided inline")
    if creator_id is None:
        raise ValueError("'creator_id' must be a non-empty string")
    return store


def run_cancellation_flow(request: Any, config: Any = None) -> CancellationReport:
    """Run one cancellation attempt: collect answers, then pick retention offers.

    ``request`` carries ``creator_id`` and the subscriber's raw ``answers``,
    and optionally inline ``questions``/``offers`` rows that bypass the
    store. Survey problems stop the flow with ``needs_input``; offer
    problems only exclude the offers concerned and mark the report
    ``partial``.
    """
    if not isinstance(request, Mapping):
        return _error_report(None, [{"stage": "request", "message": "'request' must be a mapping"}])

    creator_id = _optional_creator_id(request.get("creator_id"))
    raw_answers = request.get("answers")
    if raw_answers is None:
        raw_answers = {}
    if not isinstance(raw_answers, Mapping):
        return _error_report(creator_id, [{"stage": "request", "message": "'answers' must be an object"}])

    try:
        cfg = _require_config(config)
        max_offers = _resolve_max_offers(cfg)
    except ValueError as exc:
        return _error_report(creator_id, [{"stage": "config", "message": str(exc)}])

    try:
        question_rows = _inline_rows(request, "questions")
        offer_rows = _inline_rows(request, "offers")
        store = None
        if question_rows is None or offer_rows is None:
            store = _require_store(cfg, creator_id)
    except ValueError as exc:
        return _error_report(creator_id, [{"stage": "request", "message": str(exc)}])

    try:
        if question_rows is None:
            question_rows = list(store.fetch_questions(creator_id))
        if offer_rows is None:
            offer_rows = list(store.fetch_offers(creator_id))
    except Exception as exc:
        logging.error(f"Failed to load cancellation settings for creator {creator_id}: {exc}")
        return _error_report(creator_id, [{"stage": "fetch", "message": str(exc)}])

    collection = collect_answers(question_rows, raw_answers)
    if collection["errors"]:
        return _new_report(
            status="needs_input",
            creator_id=creator_id,
            offers=[],
            answers=collection["answers"],
            questions=len(question_rows),
            active_offers=0,
            matched=0,
            issues=0,
            errors=[{"stage": "survey", **error} for error in collection["errors"]],
        )

    issues = audit_offers(offer_rows, question_rows)
    errors: list[Any] = [{"stage": "audit", **issue} for issue in issues]

    offers = []
    for row in offer_rows:
        try:
            offers.append(offer_from_row(row))
        except ValueError:
            # already reported by the audit
            continue
    active_offers = [offer for offer in offers if offer.active]

    matched = select_offers(active_offers, collection["answers"])
    presented = matched if max_offers is None else matched[:max_offers]
    logging.info(
        f"Cancellation flow for creator {creator_id}: {len(matched)} of {len(active_offers)} "
        f"active offers matched, presenting {[offer_label(offer) for offer in presented]}"
    )

    return _new_report(
        status="partial" if errors else "ok",
        creator_id=creator_id,
        offers=[offer_to_dict(offer) for offer in presented],
        answers=collection["answers"],
        questions=len(question_rows),
        active_offers=len(active_offers),
        matched=len(matched),
        issues=len(issues),
        errors=errors,
    )


__all__ = [
    "DEFAULT_MAX_OFFERS",
    "CancellationReport",
    "CancellationSummary",
    "run_cancellation_flow",
]
