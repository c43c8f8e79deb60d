from __future__ import annotations

import os
import sys
from typing import Any

import requests

from cancelflow.exception import CustomException
from cancelflow.logger import logging


QUESTIONS_TABLE = "creator_cancellation_questions"
OFFERS_TABLE = "creator_retention_offers"
RESPONSES_TABLE = "creator_cancellation_responses"

# Equal priorities must come back in a reproducible order.
OFFERS_ORDER = "priority.desc,created_at.asc,id.asc"
QUESTIONS_ORDER = "order_index.asc,created_at.asc,id.asc"


def _require_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field_name}' must be a non-empty string")
    return value.strip()


class SupabaseCancellationStore:
    """PostgREST client for a creator's cancellation questions, offers and responses."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        service_key: str | None = None,
        timeout: float = 15,
    ) -> None:
        self.base_url = (base_url if base_url is not None else os.getenv("SUPABASE_URL", "")).strip().rstrip("/")
        self.service_key = (
            service_key if service_key is not None else os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        ).strip()
        self.timeout = timeout

    def fetch_questions(self, creator_id: str, *, include_inactive: bool = True) -> list[dict[str, Any]]:
        params = self._creator_params(creator_id, order=QUESTIONS_ORDER, include_inactive=include_inactive)
        rows = self._request("GET", QUESTIONS_TABLE, params=params)
        logging.info(f"Fetched {len(rows)} cancellation questions for creator {creator_id}")
        return rows

    def fetch_offers(self, creator_id: str, *, include_inactive: bool = False) -> list[dict[str, Any]]:
        params = self._creator_params(creator_id, order=OFFERS_ORDER, include_inactive=include_inactive)
        rows = self._request("GET", OFFERS_TABLE, params=params)
        logging.info(f"Fetched {len(rows)} retention offers for creator {creator_id}")
        return rows

    def fetch_responses(self, creator_id: str) -> list[dict[str, Any]]:
        params = {
            "select": "id,offer_shown_id,offer_accepted,cancelled,created_at",
            "creator_id": f"eq.{_require_non_empty_str(creator_id, 'creator_id')}",
            "order": "created_at.asc,id.asc",
        }
        return self._request("GET", RESPONSES_TABLE, params=params)

    def record_response(
        self,
        *,
        subscription_id: str,
        subscriber_id: str,
        creator_id: str,
        responses: dict[str, Any] | None = None,
        offer_shown_id: str | None = None,
        offer_accepted: bool = False,
        cancelled: bool = False,
    ) -> dict[str, Any]:
        payload = self._build_response_payload(
            subscription_id=subscription_id,
            subscriber_id=subscriber_id,
            creator_id=creator_id,
            responses=responses,
            offer_shown_id=offer_shown_id,
            offer_accepted=offer_accepted,
            cancelled=cancelled,
        )
        rows = self._request("POST", RESPONSES_TABLE, json_body=payload, prefer="return=representation")
        logging.info(
            f"Recorded cancellation response for subscription {payload['subscription_id']} "
            f"(offer_accepted={offer_accepted}, cancelled={cancelled})"
        )
        return rows[0] if rows else payload

    def _creator_params(self, creator_id: str, *, order: str, include_inactive: bool) -> dict[str, str]:
        params = {
            "select": "*",
            "creator_id": f"eq.{_require_non_empty_str(creator_id, 'creator_id')}",
            "order": order,
        }
        if not include_inactive:
            params["is_active"] = "eq.true"
        return params

    def _build_response_payload(
        self,
        *,
        subscription_id: str,
        subscriber_id: str,
        creator_id: str,
        responses: dict[str, Any] | None,
        offer_shown_id: str | None,
        offer_accepted: bool,
        cancelled: bool,
    ) -> dict[str, Any]:
        if responses is not None and not isinstance(responses, dict):
            raise ValueError("'responses' must be a dictionary when provided")
        if offer_accepted and cancelled:
            raise ValueError("a cancellation response cannot both accept an offer and cancel")
        if offer_accepted and not offer_shown_id:
            raise ValueError("'offer_shown_id' is required when an offer was accepted")

        return {
            "subscription_id": _require_non_empty_str(subscription_id, "subscription_id"),
            "subscriber_id": _require_non_empty_str(subscriber_id, "subscriber_id"),
            "creator_id": _require_non_empty_str(creator_id, "creator_id"),
            "responses": dict(responses or {}),
            "offer_shown_id": offer_shown_id or None,
            "offer_accepted": bool(offer_accepted),
            "cancelled": bool(cancelled),
        }

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        if not self.service_key:
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY is required")
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        if not self.base_url:
            raise ValueError("SUPABASE_URL is required")
        headers = self._headers(prefer)

        try:
            response = requests.request(
                method,
                f"{self.base_url}/rest/v1/{table}",
                headers=headers,
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CustomException(e, sys)

        if response.status_code >= 400:
            raise CustomException(f"Supabase {method} {table} failed ({response.status_code}): {response.text}")

        if not response.text:
            return []
        try:
            body = response.json()
        except ValueError as e:
            raise CustomException(f"Supabase {method} {table} returned a non-JSON body: {e}")
        if isinstance(body, dict):
            return [body]
        if not isinstance(body, list):
            raise CustomException(f"Supabase {method} {table} returned an unexpected payload")
        return [row for row in body if isinstance(row, dict)]


__all__ = [
    "OFFERS_TABLE",
    "QUESTIONS_TABLE",
    "RESPONSES_TABLE",
    "SupabaseCancellationStore",
]
