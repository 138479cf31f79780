# File: src/newsbeacon/boot.py
# Builds the object graph for the worker and the bot. Every collaborator is
# created here once and passed explicitly; nothing else constructs services.

import logging
from typing import Any, Dict, Optional

import discord

from newsbeacon.config import Settings, get_settings
from newsbeacon.application.services import (
    AlertMatcher,
    AlertScanner,
    DeliveryService,
    IngestionService,
    RetentionService,
    ScheduleDispatcher,
    SentAlertRegistry,
    SubscriptionService,
)
from newsbeacon.infrastructure.db.base import create_db_engine
from newsbeacon.infrastructure.db.uow import create_session_factory
from newsbeacon.infrastructure.messaging.broker import MessageBroker
from newsbeacon.infrastructure.news.forexfactory import ForexFactoryClient
from newsbeacon.infrastructure.notify.discord_client import DiscordCapabilityOracle, DiscordSender

log = logging.getLogger(__name__)


def build_services(
    settings: Optional[Settings] = None,
    discord_client: Optional[discord.Client] = None,
    redis_client: Any = None,
) -> Dict[str, Any]:
    """Build and wire all application services and dependencies."""
    settings = settings or get_settings()
    log.info("Building application services (env=%s)...", settings.ENV)
    services: Dict[str, Any] = {"settings": settings}

    try:
        engine = create_db_engine(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)
        services["engine"] = engine
        services["session_factory"] = session_factory

        broker = MessageBroker.from_settings(settings, client=redis_client)
        services["broker"] = broker

        # --- Real-time alerts ---
        alert_registry = SentAlertRegistry(max_entries=settings.DEDUP_MAX_ENTRIES)
        matcher = AlertMatcher(session_factory, alert_registry)
        services["alert_registry"] = alert_registry
        services["alert_matcher"] = matcher
        services["alert_scanner"] = AlertScanner(session_factory, matcher, broker)

        # --- Schedules ---
        schedule_registry = SentAlertRegistry(max_entries=settings.DEDUP_MAX_ENTRIES)
        services["schedule_dispatcher"] = ScheduleDispatcher(session_factory, broker, schedule_registry)

        # --- Calendar housekeeping ---
        calendar_client = ForexFactoryClient(url=settings.FF_CALENDAR_URL)
        services["calendar_client"] = calendar_client
        services["ingestion_service"] = IngestionService(
            session_factory, calendar_client, source_name=settings.NEWS_SOURCE_NAME
        )
        services["retention_service"] = RetentionService(session_factory, retention_days=settings.RETENTION_DAYS)

        services["subscription_service"] = SubscriptionService(session_factory)

        # --- Delivery (bot process only) ---
        if discord_client is not None:
            services["delivery_service"] = DeliveryService(
                DiscordCapabilityOracle(discord_client), DiscordSender()
            )

        log.info("All services built and wired successfully.")
        return services

    except Exception as e:
        log.critical(f"Service building failed: {e}", exc_info=True)
        raise
