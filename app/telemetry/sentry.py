"""
Sentry integration for error tracking.

Provides:
- Automatic exception capture with stacktrace
- FastAPI request context
- SQLAlchemy query errors
- ERROR log lines from the avatar pipeline and trigger as events

Security:
- Credential headers are scrubbed before sending
- API keys in query strings (Gemini passes ``key=``) are redacted
- Request bodies (player photos) are NOT captured
- PII is disabled by default
"""

import logging
import os
import re
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_sentry_initialized = False

SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-goog-api-key",
    "x-forwarded-for",
)

_SENSITIVE_QUERY = re.compile(
    r"(?i)(key|api_key|token|secret|password|x-amz-signature|x-amz-credential)=([^&]*)"
)


def _redact_query(value: str) -> str:
    return _SENSITIVE_QUERY.sub(r"\1=[REDACTED]", value)


def scrub_sensitive_data(event: dict, hint: dict) -> Optional[dict]:
    """
    Scrub sensitive data from Sentry events before sending.

    Removes credential headers, API keys and presigned URL signatures from
    query strings and breadcrumb URLs, and the request body.
    """
    try:
        request = event.get("request") or {}

        headers = request.get("headers") or {}
        for name in list(headers.keys()):
            if name.lower() in SENSITIVE_HEADERS:
                headers[name] = "[REDACTED]"
        request["headers"] = headers

        query_string = request.get("query_string")
        if isinstance(query_string, str) and query_string:
            request["query_string"] = _redact_query(query_string)

        if "data" in request:
            request["data"] = "[SCRUBBED]"

        event["request"] = request

        # httpx breadcrumbs carry the full Gemini URL
        breadcrumbs = event.get("breadcrumbs") or {}
        for crumb in breadcrumbs.get("values", []):
            data = crumb.get("data") or {}
            url = data.get("url")
            if isinstance(url, str):
                data["url"] = _redact_query(url)

    except Exception as e:
        # Never fail scrubbing
        logger.warning(f"Sentry scrubbing error (continuing): {e}")

    return event


def init_sentry() -> bool:
    """
    Initialize Sentry SDK if SENTRY_DSN is configured.

    Returns True if Sentry was initialized, False otherwise.

    Environment variables:
    - SENTRY_DSN: Required. Sentry DSN from project settings.
    - SENTRY_TRACES_SAMPLE_RATE: Optional. Default 0.05 (5%).
    - SENTRY_ENABLED: Optional. Set to 'false' to disable even with DSN.
    - SENTRY_ENVIRONMENT: Used as Sentry environment tag.
    - SENTRY_RELEASE: Used as release version.
    """
    global _sentry_initialized

    if _sentry_initialized:
        logger.debug("Sentry already initialized, skipping")
        return True

    if os.getenv("SENTRY_ENABLED", "true").lower() == "false":
        logger.info("Sentry disabled via SENTRY_ENABLED=false")
        return False

    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        logger.info("Sentry not configured (SENTRY_DSN not set)")
        return False

    environment = os.getenv("SENTRY_ENVIRONMENT", "development")
    release = os.getenv("SENTRY_RELEASE", "unknown")
    traces_sample_rate = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05"))

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=traces_sample_rate,
        profiles_sample_rate=0.0,
        send_default_pii=False,
        before_send=scrub_sensitive_data,
        ignore_errors=[KeyboardInterrupt, SystemExit],
    )

    _sentry_initialized = True
    logger.info(
        f"Sentry initialized: env={environment}, release={release[:8]}, "
        f"traces_sample_rate={traces_sample_rate}"
    )
    return True

