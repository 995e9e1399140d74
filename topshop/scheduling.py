"""Publish-date handling for Shopify articles and pages.

Shopify's REST API schedules content through ``published_at`` combined with
``published=false``. Merchants enter a wall-clock date and time in the shop's
own timezone, so everything here converts to aware UTC datetimes before a
payload is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

SCHEDULE_FIX_WINDOW = timedelta(hours=1)
PAST_SCHEDULE_OFFSET = timedelta(hours=1)
MIN_ARTICLE_LEAD_TIME = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: str | None) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("shop_timezone_unknown", extra={"timezone": name})
        return timezone.utc


def create_datetime_in_timezone(date_value: str, time_value: str, timezone_name: str | None) -> datetime:
    """Interpret ``YYYY-MM-DD`` and ``HH:MM`` in ``timezone_name`` and return UTC."""
    publish_date = date.fromisoformat(date_value.strip())
    publish_time = time.fromisoformat(time_value.strip())
    local = datetime.combine(publish_date, publish_time, tzinfo=resolve_timezone(timezone_name))
    return local.astimezone(timezone.utc)


def resolve_scheduled_instant(
    date_value: str | None,
    time_value: str | None,
    timezone_name: str | None,
    *,
    now: datetime,
) -> datetime:
    now = ensure_utc(now)
    try:
        instant = create_datetime_in_timezone(date_value or "", time_value or "", timezone_name)
    except ValueError:
        logger.warning(
            "scheduled_date_unparseable",
            extra={"scheduled_publish_date": date_value, "scheduled_publish_time": time_value},
        )
        return now + PAST_SCHEDULE_OFFSET
    return move_past_instant_forward(instant, now=now)


def move_past_instant_forward(instant: datetime, *, now: datetime) -> datetime:
    instant = ensure_utc(instant)
    now = ensure_utc(now)
    if instant <= now:
        logger.info("scheduled_date_in_past_moved_forward", extra={"requested": instant.isoformat()})
        return now + PAST_SCHEDULE_OFFSET
    return instant


def is_scheduled(status: str | None, date_value: str | None, time_value: str | None) -> bool:
    return status == "scheduled" and bool(date_value) and bool(time_value)


@dataclass(frozen=True)
class Publication:
    published: bool
    published_at: datetime | None
    scheduled: bool

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"published": self.published}
        if self.published_at is not None:
            payload["published_at"] = format_shopify_timestamp(self.published_at)
        return payload


def article_publication(
    *,
    status: str | None,
    scheduled_publish_date: str | None,
    scheduled_publish_time: str | None,
    timezone_name: str | None,
    now: datetime,
    clamp_to_tomorrow: bool,
) -> Publication:
    now = ensure_utc(now)
    if is_scheduled(status, scheduled_publish_date, scheduled_publish_time):
        instant = resolve_scheduled_instant(
            scheduled_publish_date,
            scheduled_publish_time,
            timezone_name,
            now=now,
        )
        if clamp_to_tomorrow:
            earliest = now + MIN_ARTICLE_LEAD_TIME
            if instant <= earliest:
                instant = earliest
        return Publication(published=False, published_at=instant, scheduled=True)
    if status == "published":
        return Publication(published=True, published_at=now, scheduled=False)
    return Publication(published=False, published_at=None, scheduled=False)


def page_publication(*, published: bool, publish_at: datetime | None, now: datetime) -> Publication:
    now = ensure_utc(now)
    if published:
        return Publication(published=True, published_at=now, scheduled=False)
    if publish_at is not None:
        instant = move_past_instant_forward(publish_at, now=now)
        return Publication(published=False, published_at=instant, scheduled=True)
    return Publication(published=False, published_at=None, scheduled=False)


def needs_schedule_fix(*, sent: datetime | None, returned: datetime | None, now: datetime) -> bool:
    """True when Shopify published immediately instead of honouring ``sent``."""
    if sent is None or returned is None:
        return False
    sent = ensure_utc(sent)
    returned = ensure_utc(returned)
    if abs(returned - sent) <= SCHEDULE_FIX_WINDOW:
        return False
    return abs(returned - ensure_utc(now)) < SCHEDULE_FIX_WINDOW


def format_shopify_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_shopify_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError:
        return None
