from __future__ import annotations

from datetime import datetime, timedelta, timezone

from topshop.scheduling import (
    article_publication,
    create_datetime_in_timezone,
    format_shopify_timestamp,
    is_scheduled,
    needs_schedule_fix,
    page_publication,
    parse_shopify_timestamp,
    resolve_scheduled_instant,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_create_datetime_in_timezone_converts_to_utc():
    result = create_datetime_in_timezone("2025-07-01", "09:30", "America/New_York")

    assert result == datetime(2025, 7, 1, 13, 30, tzinfo=timezone.utc)


def test_create_datetime_in_timezone_unknown_zone_falls_back_to_utc():
    result = create_datetime_in_timezone("2025-07-01", "09:30", "Mars/Olympus")

    assert result == datetime(2025, 7, 1, 9, 30, tzinfo=timezone.utc)


def test_resolve_scheduled_instant_moves_past_dates_forward():
    result = resolve_scheduled_instant("2020-01-01", "10:00", None, now=NOW)

    assert result == NOW + timedelta(hours=1)


def test_resolve_scheduled_instant_handles_garbage():
    assert resolve_scheduled_instant("not-a-date", "xx", None, now=NOW) == NOW + timedelta(hours=1)


def test_is_scheduled_requires_date_and_time():
    assert is_scheduled("scheduled", "2025-04-01", "10:00")
    assert not is_scheduled("scheduled", "2025-04-01", None)
    assert not is_scheduled("published", "2025-04-01", "10:00")


def test_article_publication_for_future_schedule():
    publication = article_publication(
        status="scheduled",
        scheduled_publish_date="2025-04-01",
        scheduled_publish_time="10:00",
        timezone_name="UTC",
        now=NOW,
        clamp_to_tomorrow=True,
    )

    assert publication.scheduled
    assert publication.as_payload() == {"published": False, "published_at": "2025-04-01T10:00:00Z"}


def test_article_publication_clamps_to_tomorrow():
    publication = article_publication(
        status="scheduled",
        scheduled_publish_date="2025-03-10",
        scheduled_publish_time="15:00",
        timezone_name=None,
        now=NOW,
        clamp_to_tomorrow=True,
    )

    assert publication.published_at == NOW + timedelta(days=1)


def test_article_publication_without_clamp_keeps_same_day():
    publication = article_publication(
        status="scheduled",
        scheduled_publish_date="2025-03-10",
        scheduled_publish_time="15:00",
        timezone_name=None,
        now=NOW,
        clamp_to_tomorrow=False,
    )

    assert publication.published_at == datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)


def test_article_publication_published_and_draft():
    published = article_publication(
        status="published",
        scheduled_publish_date=None,
        scheduled_publish_time=None,
        timezone_name=None,
        now=NOW,
        clamp_to_tomorrow=True,
    )
    draft = article_publication(
        status="draft",
        scheduled_publish_date=None,
        scheduled_publish_time=None,
        timezone_name=None,
        now=NOW,
        clamp_to_tomorrow=True,
    )

    assert published.as_payload() == {"published": True, "published_at": "2025-03-10T12:00:00Z"}
    assert draft.as_payload() == {"published": False}


def test_page_publication():
    later = NOW + timedelta(days=3)

    assert page_publication(published=False, publish_at=later, now=NOW).scheduled
    assert page_publication(published=True, publish_at=later, now=NOW).published
    assert page_publication(published=False, publish_at=None, now=NOW).published_at is None


def test_page_publication_moves_past_instant_forward():
    publication = page_publication(published=False, publish_at=datetime(2020, 1, 1, 10, 0), now=NOW)

    assert publication.scheduled
    assert publication.published_at == NOW + timedelta(hours=1)


def test_needs_schedule_fix_detects_immediate_publish():
    sent = NOW + timedelta(days=2)

    assert needs_schedule_fix(sent=sent, returned=NOW + timedelta(minutes=1), now=NOW)
    assert not needs_schedule_fix(sent=sent, returned=sent, now=NOW)
    assert not needs_schedule_fix(sent=sent, returned=None, now=NOW)


def test_timestamp_round_trip_formats():
    assert format_shopify_timestamp(NOW) == "2025-03-10T12:00:00Z"
    assert parse_shopify_timestamp("2025-03-10T08:00:00-04:00") == NOW
    assert parse_shopify_timestamp("") is None
    assert parse_shopify_timestamp(None) is None
