"""
Monitoring and observability utilities with Sentry and Prometheus integration
"""

import os
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from prometheus_client import Counter, Histogram

# Prometheus metrics
REQUEST_COUNT = Counter(
    'comments_requests_total',
    'Total number of requests',
    ['method', 'endpoint', 'status_code']
)

REQUEST_DURATION = Histogram(
    'comments_request_duration_seconds',
    'Request duration in seconds',
    ['method', 'endpoint']
)

RATE_LIMIT_REJECTIONS = Counter(
    'comments_rate_limit_rejections_total',
    'Requests rejected by the rate limiter',
    ['bucket']
)

SECURITY_REJECTIONS = Counter(
    'comments_security_rejections_total',
    'Inputs rejected as probable injection attempts',
    ['field']
)

MODERATION_TRANSITIONS = Counter(
    'comments_moderation_transitions_total',
    'Per-comment moderation outcomes',
    ['action', 'outcome']
)

COMMENT_WRITES = Counter(
    'comments_writes_total',
    'Comment create, update, delete and sync outcomes',
    ['operation', 'outcome']
)

SEARCH_DURATION = Histogram(
    'comments_search_duration_seconds',
    'Search pipeline duration in seconds',
    ['search_type']
)

SEARCH_CACHE_HITS = Counter(
    'comments_search_cache_total',
    'Search result cache lookups',
    ['result']
)


def init_sentry(config) -> bool:
    """Initialize Sentry for error tracking when a DSN is configured"""
    if not config.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        environment=config.environment,
        release=os.getenv("APP_VERSION", "unknown"),
        send_default_pii=False,
    )
    return True


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track request metrics"""
    REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=status_code).inc()
    REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)


def track_rate_limit_rejection(bucket: str):
    RATE_LIMIT_REJECTIONS.labels(bucket=bucket).inc()


def track_security_rejection(field: str):
    SECURITY_REJECTIONS.labels(field=field).inc()


def track_moderation_outcome(action: str, outcome: str):
    MODERATION_TRANSITIONS.labels(action=action, outcome=outcome).inc()


def track_comment_write(operation: str, outcome: str, count: int = 1):
    if count:
        COMMENT_WRITES.labels(operation=operation, outcome=outcome).inc(count)


def track_search(search_type: str, duration: float, cached: bool):
    SEARCH_DURATION.labels(search_type=search_type).observe(duration)
    SEARCH_CACHE_HITS.labels(result="hit" if cached else "miss").inc()
