# src/newsbeacon/infrastructure/monitoring/metrics.py
"""Prometheus counters shared by the worker and the bot processes."""

from prometheus_client import Counter

ALERTS_PUBLISHED = Counter(
    "nb_alerts_published_total", "Alert messages published to the queue", ["timing"]
)
SCHEDULE_TASKS_PUBLISHED = Counter(
    "nb_schedule_tasks_published_total", "Schedule digests published to the queue"
)
MESSAGES_ACKED = Counter(
    "nb_messages_acked_total", "Queue messages acknowledged", ["queue"]
)
MESSAGES_REQUEUED = Counter(
    "nb_messages_requeued_total", "Queue messages put back for another attempt", ["queue"]
)
DESTINATIONS_SKIPPED = Counter(
    "nb_destinations_skipped_total", "Deliveries dropped because the destination is gone or muted"
)
EVENTS_INGESTED = Counter(
    "nb_events_ingested_total", "Calendar items upserted", ["outcome"]
)
SCAN_FAILURES = Counter(
    "nb_scan_failures_total", "Scanner ticks dropped because of an error"
)
