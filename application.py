import os
from datetime import datetime, timezone

from flask import Flask, jsonify, request

from cancelflow.adapters.supabase_store import SupabaseCancellationStore
from cancelflow.logger import logging
from cancelflow.metrics import offer_acceptance_summary, retention_rate
from cancelflow.pipeline import DEFAULT_MAX_OFFERS, run_cancellation_flow
from cancelflow.services import audit_offers, offer_to_dict, parse_offer_form


application = Flask(__name__)
app = application

application.config["MAX_OFFERS"] = int(os.getenv("CANCELFLOW_MAX_OFFERS", str(DEFAULT_MAX_OFFERS)))


def build_store():
    return SupabaseCancellationStore()


def _timestamp_now():
    return datetime.now(timezone.utc).isoformat()


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None
    return payload


def _json_flag(payload, field_name):
    value = payload.get(field_name, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a boolean")
    return value


def _bad_request(message):
    return jsonify({"status": "error", "errors": [{"stage": "request", "message": message}]}), 400


def _report_status_code(report):
    if report["status"] == "error":
        stages = {error.get("stage") for error in report["errors"] if isinstance(error, dict)}
        return 502 if "fetch" in stages else 400
    if report["status"] == "needs_input":
        return 400
    return 200


@app.route("/health")
def health():
    return jsonify({"status": "ok", "timestamp": _timestamp_now()})


## Offers to present for one cancellation attempt
@app.route("/api/cancellation/offers", methods=["POST"])
def cancellation_offers():
    payload = _json_body()
    if payload is None:
        return _bad_request("Request body must be a JSON object")

    config = {"max_offers": payload.get("max_offers", app.config["MAX_OFFERS"])}
    if payload.get("questions") is None or payload.get("offers") is None:
        config["store"] = build_store()

    report = run_cancellation_flow(payload, config)
    body = dict(report)
    body["timestamp"] = _timestamp_now()
    return jsonify(body), _report_status_code(report)


## Subscriber decision: accepted an offer or went ahead with cancelling
@app.route("/api/cancellation/responses", methods=["POST"])
def cancellation_responses():
    payload = _json_body()
    if payload is None:
        return _bad_request("Request body must be a JSON object")

    try:
        row = build_store().record_response(
            subscription_id=payload.get("subscription_id"),
            subscriber_id=payload.get("subscriber_id"),
            creator_id=payload.get("creator_id"),
            responses=payload.get("responses"),
            offer_shown_id=payload.get("offer_shown_id"),
            offer_accepted=_json_flag(payload, "offer_accepted"),
            cancelled=_json_flag(payload, "cancelled"),
        )
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logging.error(f"Failed to record cancellation response: {exc}")
        return jsonify({"status": "error", "errors": [{"stage": "store", "message": str(exc)}]}), 502

    return jsonify({"status": "ok", "response": row}), 201


## Editor: validate one offer form before saving it
@app.route("/api/admin/offers/validate", methods=["POST"])
def validate_offer():
    payload = _json_body()
    if payload is None:
        return _bad_request("Request body must be a JSON object")

    form = payload.get("offer")
    if not isinstance(form, dict):
        return _bad_request("'offer' must be an object")

    try:
        offer = parse_offer_form(form, offer_id=str(payload.get("offer_id") or "draft"))
    except ValueError as exc:
        return jsonify({"valid": False, "offer": None, "errors": [str(exc)], "issues": []}), 400

    issues = []
    questions = payload.get("questions")
    if isinstance(questions, list):
        issues = audit_offers([offer], questions)

    return jsonify({"valid": True, "offer": offer_to_dict(offer), "errors": [], "issues": issues})


## Editor: list stored offers that can never match
@app.route("/api/admin/offers/audit", methods=["POST"])
def audit_stored_offers():
    payload = _json_body()
    if payload is None:
        return _bad_request("Request body must be a JSON object")

    offers = payload.get("offers")
    questions = payload.get("questions")
    try:
        if offers is None or questions is None:
            store = build_store()
            creator_id = payload.get("creator_id")
            if offers is None:
                offers = store.fetch_offers(creator_id, include_inactive=True)
            if questions is None:
                questions = store.fetch_questions(creator_id)
        issues = audit_offers(offers, questions)
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logging.error(f"Offer audit failed: {exc}")
        return jsonify({"status": "error", "errors": [{"stage": "fetch", "message": str(exc)}]}), 502

    return jsonify({"status": "ok", "issues": issues})


## Creator dashboard: how often offers keep subscribers
@app.route("/api/creators/<creator_id>/retention-metrics")
def creator_retention_metrics(creator_id):
    try:
        responses = build_store().fetch_responses(creator_id)
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logging.error(f"Failed to load cancellation responses for creator {creator_id}: {exc}")
        return jsonify({"status": "error", "errors": [{"stage": "fetch", "message": str(exc)}]}), 502

    return jsonify(
        {
            "status": "ok",
            "creator_id": creator_id,
            "attempts": len(responses),
            "retention_rate": retention_rate(responses),
            "offers": offer_acceptance_summary(responses),
        }
    )


if __name__=="__main__":
    app.run(host="0.0.0.0", port=5001, debug=True)
