"""Prometheus metrics for notification delivery.

Usage:
    from notify_service.features.notifications.metrics import notification_delivery_total

    notification_delivery_total.labels(channel="line", status="sent").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Lifecycle
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of notifications persisted",
    labelnames=["kind"],
)

notification_blocked_total = Counter(
    "notification_blocked_total",
    "Notifications rejected by the preference gate before persistence",
    labelnames=["reason"],
)
"""
Labels:
    reason: system_disabled | tenant_disabled | user_disabled | kind_disabled
"""

# =============================================================================
# Delivery
# =============================================================================

notification_delivery_total = Counter(
    "notification_delivery_total",
    "Channel send attempts by outcome",
    labelnames=["channel", "status"],
)

notification_delivery_duration_seconds = Histogram(
    "notification_delivery_duration_seconds",
    "Time spent in one adapter send",
    labelnames=["channel"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
)

notification_rate_limited_total = Counter(
    "notification_rate_limited_total",
    "Sends deferred by the in-process rate limiter",
    labelnames=["channel"],
)

# =============================================================================
# Reminders
# =============================================================================

reminder_processed_total = Counter(
    "reminder_processed_total",
    "Reservation reminders handled by the sweep",
    labelnames=["status"],
)
