"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware, mask_path, mask_payload
from .metrics import (
    INVITATION_DELIVERY_COUNTER,
    MEMBER_REGISTRATION_COUNTER,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    VOTE_OUTCOME_COUNTER,
    PrometheusMiddleware,
    metrics_router,
)
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    traced_operation,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "INVITATION_DELIVERY_COUNTER",
    "MEMBER_REGISTRATION_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "VOTE_OUTCOME_COUNTER",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mask_path",
    "mask_payload",
    "metrics_router",
    "traced_operation",
]
