from typing import Any, Mapping

import numpy as np
import pandas as pd

from cancelflow.exception import CustomException


_RESPONSE_DEFAULTS = {
    "offer_shown_id": None,
    "offer_accepted": False,
    "cancelled": False,
}


def _responses_frame(responses: Any) -> pd.DataFrame:
    if isinstance(responses, pd.DataFrame):
        df = responses.copy()
    elif isinstance(responses, list):
        df = pd.DataFrame([row for row in responses if isinstance(row, Mapping)])
    else:
        raise ValueError("'responses' must be a list of objects or a DataFrame")

    for column, default in _RESPONSE_DEFAULTS.items():
        if column not in df.columns:
            df[column] = default

    df["offer_shown_id"] = df["offer_shown_id"].replace("", np.nan)
    df["offer_accepted"] = df["offer_accepted"].fillna(False).astype(bool)
    df["cancelled"] = df["cancelled"].fillna(False).astype(bool)
    return df


def offer_acceptance_summary(responses):
    """Per-offer take rate over recorded cancellation responses.

    Rows without ``offer_shown_id`` are attempts where no offer was shown
    and are left out. Sorted by times shown, then offer id.
    """
    df = _responses_frame(responses)
    try:
        shown = df[df["offer_shown_id"].notna()]
        if shown.empty:
            return []

        grouped = shown.groupby(shown["offer_shown_id"].astype(str)).agg(
            shown=("offer_accepted", "size"),
            accepted=("offer_accepted", "sum"),
        )
        grouped["acceptance_rate"] = grouped["accepted"] / grouped["shown"]
        grouped = grouped.reset_index().rename(columns={"offer_shown_id": "offer_id"})
        grouped = grouped.sort_values(["shown", "offer_id"], ascending=[False, True], kind="mergesort")

        return [
            {
                "offer_id": str(row.offer_id),
                "shown": int(row.shown),
                "accepted": int(row.accepted),
                "acceptance_rate": round(float(row.acceptance_rate), 4),
            }
            for row in grouped.itertuples(index=False)
        ]
    except Exception as e:
        raise CustomException(e, None)


def retention_rate(responses):
    """Share of cancellation attempts that did not end in a cancellation."""
    df = _responses_frame(responses)
    if df.empty:
        return 0.0
    try:
        return float(1.0 - np.mean(df["cancelled"].to_numpy(dtype=float)))
    except Exception as e:
        raise CustomException(e, None)


__all__ = ["offer_acceptance_summary", "retention_rate"]
