"""Request audit trail with credential masking, appended to daily S3 objects."""
from __future__ import annotations

import json
import logging
import random
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError  # type: ignore[import-untyped]
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from anonvote.core.config import Settings

_CREDENTIAL_KEYS = {"token", "admin_token", "presented_token", "commitment", "nullifier"}
_CONTACT_KEYS = {"contact", "contacts", "email", "wallet_address"}
_BALLOT_CHOICE_KEYS = {"option_index", "points"}
_TOKEN_PATH = re.compile(r"(/invitations/)[^/]+")


def _mask_credential(value: Any) -> str:
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}***"
    return "***"


def _mask_contact(value: Any) -> Any:
    if isinstance(value, list):
        return [_mask_contact(item) for item in value]
    if not isinstance(value, str):
        return "***"
    if "@" in value:
        name, _, domain = value.partition("@")
        return f"{name[:1]}***@{domain}" if domain else "***@***"
    return f"{value[:6]}***" if len(value) > 10 else "***"


def mask_payload(value: Any) -> Any:
    """Recursively hide credentials, contact details and ballot choices in a decoded JSON body."""
    if isinstance(value, list):
        return [mask_payload(item) for item in value]
    if not isinstance(value, dict):
        return value
    masked: dict[str, Any] = {}
    for key, item in value.items():
        lowered = str(key).lower()
        if lowered in _CREDENTIAL_KEYS:
            masked[key] = _mask_credential(item)
        elif lowered in _CONTACT_KEYS:
            masked[key] = _mask_contact(item)
        elif lowered in _BALLOT_CHOICE_KEYS:
            masked[key] = "***"
        else:
            masked[key] = mask_payload(item)
    return masked


def mask_path(path: str) -> str:
    return _TOKEN_PATH.sub(r"\1***", path)


@dataclass(slots=True)
class AuditLogRecord:
    """Structured log entry emitted by the middleware."""

    timestamp: str
    request_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    event_id: str | None
    ip_address: str | None
    body: Any

    def to_json(self) -> str:
        payload = asdict(self)
        payload["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(payload, default=str)


class AuditMiddleware(BaseHTTPMiddleware):
    """Starlette middleware recording one audit record per request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        settings: Settings,
        logger: logging.Logger | None = None,
        s3_client_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings
        self._logger = logger or logging.getLogger("audit")
        self._s3_client_factory = s3_client_factory or self._default_client_factory
        self._s3_client: Any | None = None
        self._bucket_ready = False

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_bytes = await request.body()
        self._replay_body(request, body_bytes)

        masked_body = None
        if body_bytes:
            try:
                masked_body = mask_payload(json.loads(body_bytes))
            except json.JSONDecodeError:
                masked_body = "<binary>"

        response = await call_next(request)

        path_params = request.scope.get("path_params") or {}
        record = AuditLogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=request_id,
            method=request.method,
            path=mask_path(request.url.path),
            status=response.status_code,
            duration_ms=(time.perf_counter() - start) * 1000,
            event_id=path_params.get("event_id"),
            ip_address=request.client.host if request.client else None,
            body=masked_body,
        )

        self._logger.info(record.to_json())
        self._persist_to_s3(record)

        response.headers["X-Request-ID"] = request_id
        return response

    def _default_client_factory(self) -> Any:
        return boto3.client(
            "s3",
            region_name=self._settings.aws_region,
            endpoint_url=self._settings.s3_endpoint_url,
        )

    def _get_s3_client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_client_factory()
        return self._s3_client

    def _ensure_bucket(self, client: Any) -> bool:
        if self._bucket_ready:
            return True
        bucket = self._settings.audit_log_bucket
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            create_params: dict[str, Any] = {"Bucket": bucket}
            if self._settings.aws_region != "us-east-1" and self._settings.s3_endpoint_url is None:
                create_params["CreateBucketConfiguration"] = {"LocationConstraint": self._settings.aws_region}
            try:
                client.create_bucket(**create_params)
            except ClientError as exc:  # pragma: no cover - configuration issues
                self._logger.error("failed to create audit bucket", extra={"error": str(exc)})
                return False
        self._bucket_ready = True
        return True

    def _sampled(self) -> bool:
        rate = self._settings.audit_log_sample_rate
        if rate <= 0:
            return False
        return rate >= 1 or random.random() <= rate

    def _persist_to_s3(self, record: AuditLogRecord) -> None:
        if not self._sampled():
            return

        bucket = self._settings.audit_log_bucket
        try:
            client = self._get_s3_client()
            if not self._ensure_bucket(client):
                return
            key = self._daily_key()
            try:
                existing = client.get_object(Bucket=bucket, Key=key)["Body"].read()
            except client.exceptions.NoSuchKey:  # type: ignore[attr-defined]
                existing = b""
            client.put_object(
                Bucket=bucket,
                Key=key,
                Body=existing + record.to_json().encode("utf-8") + b"\n",
                ContentType="application/json",
            )
        except Exception as exc:  # pragma: no cover - S3 connectivity issues
            self._logger.error("failed to persist audit record", extra={"error": str(exc)})

    def _daily_key(self) -> str:
        now = datetime.now(timezone.utc)
        return f"{self._settings.audit_log_prefix.rstrip('/')}/{now:%Y/%m/%d}/audit.log"

    @staticmethod
    def _replay_body(request: Request, body: bytes) -> None:
        consumed = False

        async def receive() -> dict[str, Any]:
            nonlocal consumed
            if consumed:
                return {"type": "http.request", "body": b"", "more_body": False}
            consumed = True
            return {"type": "http.request", "body": body, "more_body": False}

        request._receive = receive  # type: ignore[attr-defined]


__all__ = ["AuditLogRecord", "AuditMiddleware", "mask_path", "mask_payload"]
