from __future__ import annotations

from cancelflow.pipeline import run_cancellation_flow


QUESTIONS = [
    {
        "id": "reason",
        "question_text": "Why are you cancelling?",
        "question_type": "select",
        "options": [
            {"value": "too_expensive", "label": "Too expensive"},
            {"value": "missing_feature", "label": "Missing a feature"},
        ],
        "is_mandatory": True,
        "order_index": 0,
        "is_active": True,
    },
    {
        "id": "usage",
        "question_text": "How many hours a week do you use it?",
        "question_type": "number",
        "is_mandatory": False,
        "order_index": 1,
        "is_active": True,
    },
]

OFFERS = [
    {
        "id": "stay",
        "offer_type": "unconditional",
        "title": "One month on us",
        "free_months": 1,
        "priority": 1,
        "is_active": True,
    },
    {
        "id": "price",
        "offer_type": "conditional",
        "title": "Half price",
        "discount_percent": 50,
        "discount_months": 2,
        "condition_rules": {"question_id": "reason", "operator": "equals", "answer_values": ["too_expensive"]},
        "priority": 10,
        "is_active": True,
    },
    {
        "id": "power-user",
        "offer_type": "conditional",
        "title": "Pro discount",
        "discount_percent": 25,
        "condition_rules": {"question_id": "usage", "operator": "greater_than", "answer_values": ["20"]},
        "priority": 5,
        "is_active": True,
    },
    {
        "id": "paused",
        "offer_type": "unconditional",
        "title": "Paused offer",
        "free_months": 3,
        "priority": 100,
        "is_active": False,
    },
]


class StubStore:
    def __init__(self, questions=None, offers=None, error=None):
        self.questions = questions or []
        self.offers = offers or []
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def fetch_questions(self, creator_id):
        self.calls.append(("questions", creator_id))
        if self.error:
            raise self.error
        return list(self.questions)

    def fetch_offers(self, creator_id):
        self.calls.append(("offers", creator_id))
        return list(self.offers)


def test_flow_presents_matched_offers_by_priority():
    store = StubStore(QUESTIONS, OFFERS)

    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {"reason": "too_expensive", "usage": "35"}},
        {"store": store},
    )

    assert report["status"] == "ok"
    assert [offer["id"] for offer in report["offers"]] == ["price", "power-user", "stay"]
    assert report["offers"][0]["terms_summary"] == "50% off for 2 months"
    assert report["summary"] == {
        "questions": 2,
        "active_offers": 3,
        "matched": 3,
        "presented": 3,
        "issues": 0,
    }
    assert store.calls == [("questions", "creator-1"), ("offers", "creator-1")]


def test_flow_caps_presented_offers():
    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {"reason": "too_expensive", "usage": "35"}},
        {"store": StubStore(QUESTIONS, OFFERS), "max_offers": 1},
    )

    assert [offer["id"] for offer in report["offers"]] == ["price"]
    assert report["summary"]["matched"] == 3
    assert report["summary"]["presented"] == 1


def test_flow_with_inline_rows_needs_no_store():
    report = run_cancellation_flow(
        {"questions": QUESTIONS, "offers": OFFERS, "answers": {"reason": "missing_feature"}},
    )

    assert report["status"] == "ok"
    assert [offer["id"] for offer in report["offers"]] == ["stay"]


def test_flow_stops_for_missing_required_answer():
    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {"usage": "4"}},
        {"store": StubStore(QUESTIONS, OFFERS)},
    )

    assert report["status"] == "needs_input"
    assert report["offers"] == []
    assert report["errors"] == [{"stage": "survey", "question_id": "reason", "message": "An answer is required"}]


def test_flow_marks_partial_when_offers_need_attention():
    offers = OFFERS + [
        {
            "id": "orphan",
            "offer_type": "conditional",
            "title": "Orphaned",
            "free_months": 1,
            "condition_rules": {"question_id": "deleted", "operator": "equals", "answer_values": ["x"]},
            "priority": 50,
            "is_active": True,
        },
        {"id": "no-terms", "offer_type": "unconditional", "title": "Nothing", "priority": 60, "is_active": True},
    ]

    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {"reason": "missing_feature"}},
        {"store": StubStore(QUESTIONS, offers)},
    )

    assert report["status"] == "partial"
    assert [offer["id"] for offer in report["offers"]] == ["stay"]
    assert {error["offer_id"] for error in report["errors"]} == {"orphan", "no-terms"}
    assert all(error["stage"] == "audit" for error in report["errors"])


def test_flow_with_no_applicable_offers_is_ok():
    offers = [offer for offer in OFFERS if offer["offer_type"] == "conditional"]

    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {"reason": "missing_feature", "usage": "1"}},
        {"store": StubStore(QUESTIONS, offers)},
    )

    assert report["status"] == "ok"
    assert report["offers"] == []


def test_flow_reports_fetch_failures():
    report = run_cancellation_flow(
        {"creator_id": "creator-1", "answers": {}},
        {"store": StubStore(error=RuntimeError("connection refused"))},
    )

    assert report["status"] == "error"
    assert report["errors"] == [{"stage": "fetch", "message": "connection refused"}]


def test_flow_rejects_bad_requests():
    not_a_mapping = run_cancellation_flow(["creator-1"], {})
    no_store = run_cancellation_flow({"creator_id": "creator-1", "answers": {}}, {})
    bad_answers = run_cancellation_flow({"creator_id": "creator-1", "answers": "too_expensive"}, {})

    assert not_a_mapping["status"] == "error"
    assert no_store["errors"][0]["stage"] == "request"
    assert bad_answers["errors"][0]["stage"] == "request"
