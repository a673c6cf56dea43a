"""Utility modules for Team Tasks."""

from .datetime_utils import (
    get_local_tz,
    get_local_now,
    get_local_today,
    parse_day_key,
    format_day_key,
    js_weekday,
    is_past_day,
)

from .retry import (
    RetryExhausted,
    backoff_delay,
    retry_with_backoff,
    REALTIME_RETRY,
)

from .audit_logger import (
    AuditAction,
    AuditLevel,
    log_audit_event,
)
