import application


QUESTIONS = [
    {
        "id": "reason",
        "question_text": "Why are you cancelling?",
        "question_type": "radio",
        "options": [
            {"value": "too_expensive", "label": "Too expensive"},
            {"value": "other", "label": "Other"},
        ],
        "is_mandatory": True,
        "order_index": 0,
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
]


class StubStore:
    def __init__(self):
        self.recorded = []

    def fetch_questions(self, creator_id):  # noqa: ARG002
        return list(QUESTIONS)

    def fetch_offers(self, creator_id, include_inactive=False):  # noqa: ARG002
        return list(OFFERS)

    def fetch_responses(self, creator_id):  # noqa: ARG002
        return [
            {"offer_shown_id": "price", "offer_accepted": True, "cancelled": False},
            {"offer_shown_id": "price", "offer_accepted": False, "cancelled": True},
        ]

    def record_response(self, **kwargs):  # noqa: ANN003
        self.recorded.append(kwargs)
        return dict(kwargs, id="resp-1")


def test_health():
    response = application.app.test_client().get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_cancellation_offers_from_store(monkeypatch):
    monkeypatch.setattr(application, "build_store", StubStore)
    client = application.app.test_client()

    response = client.post(
        "/api/cancellation/offers",
        json={"creator_id": "creator-1", "answers": {"reason": "too_expensive"}},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert [offer["id"] for offer in body["offers"]] == ["price", "stay"]
    assert set(body) == {"status", "creator_id", "offers", "answers", "summary", "errors", "timestamp"}


def test_cancellation_offers_inline_rows_skip_store(monkeypatch):
    def fail_build_store():
        raise AssertionError("store should not be built for inline rows")

    monkeypatch.setattr(application, "build_store", fail_build_store)
    client = application.app.test_client()

    response = client.post(
        "/api/cancellation/offers",
        json={"questions": QUESTIONS, "offers": OFFERS, "answers": {"reason": "other"}, "max_offers": 5},
    )

    assert response.status_code == 200
    assert [offer["id"] for offer in response.get_json()["offers"]] == ["stay"]


def test_cancellation_offers_missing_required_answer(monkeypatch):
    monkeypatch.setattr(application, "build_store", StubStore)
    client = application.app.test_client()

    response = client.post("/api/cancellation/offers", json={"creator_id": "creator-1", "answers": {}})

    assert response.status_code == 400
    assert response.get_json()["status"] == "needs_input"


def test_cancellation_offers_store_failure_is_bad_gateway(monkeypatch):
    class BrokenStore(StubStore):
        def fetch_questions(self, creator_id):  # noqa: ARG002
            raise RuntimeError("upstream unavailable")

    monkeypatch.setattr(application, "build_store", BrokenStore)
    client = application.app.test_client()

    response = client.post("/api/cancellation/offers", json={"creator_id": "creator-1", "answers": {}})

    assert response.status_code == 502
    assert response.get_json()["errors"][0]["stage"] == "fetch"


def test_cancellation_offers_rejects_non_json_body():
    client = application.app.test_client()

    response = client.post("/api/cancellation/offers", data="nope", content_type="text/plain")

    assert response.status_code == 400


def test_record_cancellation_response(monkeypatch):
    store = StubStore()
    monkeypatch.setattr(application, "build_store", lambda: store)
    client = application.app.test_client()

    response = client.post(
        "/api/cancellation/responses",
        json={
            "subscription_id": "sub-1",
            "subscriber_id": "user-1",
            "creator_id": "creator-1",
            "offer_shown_id": "price",
            "offer_accepted": True,
        },
    )

    assert response.status_code == 201
    assert response.get_json()["response"]["id"] == "resp-1"
    assert store.recorded[0]["offer_accepted"] is True
    assert store.recorded[0]["cancelled"] is False


def test_validate_offer_reports_errors_and_issues():
    client = application.app.test_client()

    invalid = client.post("/api/admin/offers/validate", json={"offer": {"title": "Free", "discount_percent": "120"}})
    valid = client.post(
        "/api/admin/offers/validate",
        json={
            "offer_id": "o-9",
            "offer": {
                "offer_type": "conditional",
                "title": "Half price",
                "discount_percent": "50",
                "condition_question_id": "reason",
                "condition_answer_values": "cheaper",
            },
            "questions": QUESTIONS,
        },
    )

    assert invalid.status_code == 400
    assert invalid.get_json()["valid"] is False
    body = valid.get_json()
    assert valid.status_code == 200
    assert body["valid"] is True
    assert body["offer"]["id"] == "o-9"
    assert [issue["code"] for issue in body["issues"]] == ["unknown_answer_value"]


def test_audit_stored_offers(monkeypatch):
    monkeypatch.setattr(application, "build_store", StubStore)
    client = application.app.test_client()

    response = client.post("/api/admin/offers/audit", json={"creator_id": "creator-1"})

    assert response.status_code == 200
    assert response.get_json()["issues"] == []


def test_creator_retention_metrics(monkeypatch):
    monkeypatch.setattr(application, "build_store", StubStore)
    client = application.app.test_client()

    response = client.get("/api/creators/creator-1/retention-metrics")

    assert response.status_code == 200
    body = response.get_json()
    assert body["attempts"] == 2
    assert body["retention_rate"] == 0.5
    assert body["offers"] == [{"offer_id": "price", "shown": 2, "accepted": 1, "acceptance_rate": 0.5}]


def test_record_response_rejects_string_flags(monkeypatch):
    store = StubStore()
    monkeypatch.setattr(application, "build_store", lambda: store)
    client = application.app.test_client()

    response = client.post(
        "/api/cancellation/responses",
        json={
            "subscription_id": "sub-1",
            "subscriber_id": "user-1",
            "creator_id": "creator-1",
            "offer_accepted": "false",
            "cancelled": True,
        },
    )

    assert response.status_code == 400
    assert "'offer_accepted' must be a boolean" in response.get_json()["errors"][0]["message"]
    assert store.recorded == []


def test_retention_metrics_non_json_store_reply_is_bad_gateway(monkeypatch):
    from cancelflow.exception import CustomException

    class GarbledStore(StubStore):
        def fetch_responses(self, creator_id):  # noqa: ARG002
            raise CustomException("Supabase GET creator_cancellation_responses returned a non-JSON body")

    monkeypatch.setattr(application, "build_store", GarbledStore)
    client = application.app.test_client()

    response = client.get("/api/creators/creator-1/retention-metrics")

    assert response.status_code == 502
