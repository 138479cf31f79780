# src/newsbeacon/errors.py
"""Exception hierarchy shared by the services and infrastructure adapters."""


class NewsBeaconError(Exception):
    """Base class for all application errors."""


class SubscriptionNotFound(NewsBeaconError):
    def __init__(self, kind: str, subscription_id: int):
        super().__init__(f"{kind} with id {subscription_id} not found")
        self.kind = kind
        self.subscription_id = subscription_id


class InvalidSubscription(NewsBeaconError):
    """Raised when subscription data cannot be turned into a valid entity."""


class BrokerNotConnected(NewsBeaconError):
    """Raised when publishing or consuming before `MessageBroker.connect()`."""


class MessageDecodeError(NewsBeaconError):
    """Raised when a queue message body is not a valid payload."""


class CalendarFetchError(NewsBeaconError):
    """Raised when the news calendar cannot be downloaded."""
