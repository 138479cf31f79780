# File: src/newsbeacon/application/services/__init__.py

from .dedup import SentAlertRegistry
from .alert_service import AlertMatch, AlertMatcher, AlertScanner
from .delivery_service import DeliveryService
from .ingestion_service import IngestionService, IngestionReport
from .retention_service import RetentionService
from .schedule_service import ScheduleDispatcher
from .subscription_service import ScheduleChange, SubscriptionService

__all__ = [
    "SentAlertRegistry",
    "AlertMatch",
    "AlertMatcher",
    "AlertScanner",
    "DeliveryService",
    "IngestionService",
    "IngestionReport",
    "RetentionService",
    "ScheduleDispatcher",
    "ScheduleChange",
    "SubscriptionService",
]
