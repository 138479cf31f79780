from .messages import (
    AlertMessage,
    DeliveryResult,
    NewsPayload,
    ScheduleTask,
    decode_alert_message,
    decode_schedule_task,
    encode_message,
)
from .broker import MessageBroker

__all__ = [
    "AlertMessage",
    "DeliveryResult",
    "NewsPayload",
    "ScheduleTask",
    "decode_alert_message",
    "decode_schedule_task",
    "encode_message",
    "MessageBroker",
]
