from .cancellation_pipeline import (
    DEFAULT_MAX_OFFERS,
    CancellationReport,
    CancellationSummary,
    run_cancellation_flow,
)

__all__ = [
    "DEFAULT_MAX_OFFERS",
    "CancellationReport",
    "CancellationSummary",
    "run_cancellation_flow",
]
