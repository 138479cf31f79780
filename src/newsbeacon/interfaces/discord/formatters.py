# File: src/newsbeacon/interfaces/discord/formatters.py
"""
Embed rendering for alert and schedule messages.

A news list is split into pages of at most 25 fields (Discord's per-embed
field limit). Every page carries the same title, colour and footer; pages get
a "(Page i/n)" suffix when there is more than one.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

import discord

from newsbeacon.domain.entities import AlertTiming, TimeDisplay
from newsbeacon.infrastructure.messaging.messages import NewsPayload

MAX_FIELDS_PER_EMBED = 25
FOOTER_TEXT = "Powered by ForexFactory"
EMPTY_DESCRIPTION = "No news found for the specified criteria."

DIGEST_COLOR = 0x02EBF7
ALERT_STYLES = {
    AlertTiming.FIVE_MINUTES_BEFORE: ("🔔 NEWS IN 5 MINUTES", 0xFF6600),
    AlertTiming.ON_NEWS_DROP: ("🚨 NEWS DROPPING RIGHT NOW", 0xFF1744),
}

IMPACT_EMOJIS = {
    "HIGH": "🔴",
    "MEDIUM": "🟠",
    "LOW": "🟡",
    "HOLIDAY": "⚪",
}

COUNTRY_FLAGS = {
    "USD": "🇺🇸",
    "EUR": "🇪🇺",
    "GBP": "🇬🇧",
    "JPY": "🇯🇵",
    "CHF": "🇨🇭",
    "AUD": "🇦🇺",
    "CAD": "🇨🇦",
    "CNY": "🇨🇳",
    "NZD": "🇳🇿",
}


def role_mention(role_id: Optional[str]) -> Optional[str]:
    return f"<@&{role_id}>" if role_id else None


def _format_when(when: datetime, time_display: Optional[TimeDisplay], tz_name: str) -> tuple[str, str]:
    """(date line, time line) for one event."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    if time_display is TimeDisplay.FIXED:
        local = when.astimezone(ZoneInfo(tz_name))
        hour12 = local.hour % 12 or 12
        period = "PM" if local.hour >= 12 else "AM"
        return f"{local:%b} {local.day}", f"{hour12}:{local.minute:02d} {period}"
    # Discord renders these in each reader's own timezone
    epoch = int(when.timestamp())
    style = "R" if time_display is TimeDisplay.RELATIVE else "t"
    return f"<t:{epoch}:D>", f"<t:{epoch}:{style}>"


def _field_for(item: NewsPayload, time_display: Optional[TimeDisplay], tz_name: str) -> tuple[str, str]:
    flag = COUNTRY_FLAGS.get(item.country, "")
    impact = IMPACT_EMOJIS.get(item.impact.upper(), "⚪")
    date_line, time_line = _format_when(item.date, time_display, tz_name)
    name = f"{flag} {item.country} - {item.title}".strip()[:256]
    value = (
        f"📅 {date_line}\n"
        f"🕒 {time_line}\n"
        f"{impact} {item.impact} impact\n"
        f"```Forecast: {item.forecast or 'N/A'}\nPrevious: {item.previous or 'N/A'}```"
    )
    return name, value


def build_news_embeds(
    news: Sequence[NewsPayload],
    title: str,
    color: int,
    time_display: Optional[TimeDisplay] = None,
    tz_name: str = "UTC",
) -> List[discord.Embed]:
    """
    Renders `news` into one or more embeds. `time_display=None` renders
    timestamps as Discord time markup (used for real-time alerts).
    """
    if not news:
        embed = discord.Embed(title=title, color=color, description=EMPTY_DESCRIPTION)
        embed.set_footer(text=FOOTER_TEXT)
        return [embed]

    total_pages = -(-len(news) // MAX_FIELDS_PER_EMBED)
    embeds = []
    for page in range(total_pages):
        suffix = f" (Page {page + 1}/{total_pages})" if total_pages > 1 else ""
        embed = discord.Embed(title=f"{title}{suffix}", color=color)
        embed.set_footer(text=FOOTER_TEXT)
        chunk = news[page * MAX_FIELDS_PER_EMBED:(page + 1) * MAX_FIELDS_PER_EMBED]
        for item in chunk:
            name, value = _field_for(item, time_display, tz_name)
            embed.add_field(name=name, value=value, inline=True)
        embeds.append(embed)
    return embeds


def build_alert_embeds(news: Sequence[NewsPayload], timing: AlertTiming) -> List[discord.Embed]:
    title, color = ALERT_STYLES[timing]
    return build_news_embeds(news, title, color)


def build_digest_embeds(
    news: Sequence[NewsPayload],
    market: str,
    time_display: TimeDisplay = TimeDisplay.FIXED,
    tz_name: str = "UTC",
) -> List[discord.Embed]:
    return build_news_embeds(news, f"{market} News Update", DIGEST_COLOR, time_display, tz_name)
