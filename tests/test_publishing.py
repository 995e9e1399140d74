from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from topshop.models import utcnow
from topshop.repositories import ConnectionRepository, PostsRepository, StoresRepository, SyncActivitiesRepository
from topshop.scheduling import ensure_utc
from topshop.services.pexels import PexelsService
from topshop.services.publishing import PublishingService
from topshop.services.shopify_api import ShopifyApiClient, ShopifyApiError

SHOP = "my-shop.myshopify.com"


class FakeShopify:
    """Records article and page calls made through a real client instance."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []
        self.client = ShopifyApiClient()
        for name in (
            "create_article",
            "update_article",
            "delete_article",
            "create_page",
            "update_page",
            "delete_page",
        ):
            setattr(self.client, name, self._recorder(name))

        async def get_shop_info(*, shop_domain: str, access_token: str):
            return {"name": "My Shop", "iana_timezone": "America/New_York"}

        self.client.get_shop_info = get_shop_info  # type: ignore[method-assign]

    def _recorder(self, name: str):
        async def record(**kwargs):
            self.calls.append((name, kwargs))
            if self.fail:
                raise ShopifyApiError(message="Shopify API call failed (500): boom", upstream_status=500)
            return {"id": 555}

        return record


def _publisher(db_session, fake: FakeShopify) -> PublishingService:
    return PublishingService(db_session, shopify_api=fake.client, pexels=PexelsService())


def _connect(db_session, blog_id: str | None = "42") -> None:
    ConnectionRepository(db_session).upsert(
        store_name=SHOP,
        access_token="token",
        default_blog_id=blog_id,
        is_connected=True,
    )


def _activities(db_session) -> list[tuple[str, str]]:
    return [(a.activity, a.status) for a in SyncActivitiesRepository(db_session).list(limit=50)]


def test_publish_post_creates_article_and_records_activity(db_session):
    _connect(db_session)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(title="Hello", content="<p>hi</p>", status="published")

    updated = asyncio.run(_publisher(db_session, fake).publish_post(post))

    assert updated.shopify_post_id == "555"
    assert updated.shopify_blog_id == "42"
    assert updated.published_date is not None
    name, kwargs = fake.calls[0]
    assert name == "create_article"
    assert kwargs["blog_id"] == "42"
    assert kwargs["shop_timezone"] == "America/New_York"
    assert _activities(db_session) == [('Published "Hello"', "success")]


def test_publish_scheduled_post_records_schedule(db_session):
    _connect(db_session)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(
        title="Soon",
        status="scheduled",
        scheduled_publish_date="2030-01-01",
        scheduled_publish_time="09:00",
    )

    asyncio.run(_publisher(db_session, fake).publish_post(post))

    activity = SyncActivitiesRepository(db_session).list()[0]
    assert activity.activity == 'Scheduled "Soon"'
    assert activity.details == "Successfully scheduled for publication on 2030-01-01 at 09:00"


def test_publish_failure_is_recorded_not_raised(db_session):
    _connect(db_session)
    fake = FakeShopify(fail=True)
    post = PostsRepository(db_session).create(title="Broken", status="published")

    updated = asyncio.run(_publisher(db_session, fake).publish_post(post))

    assert updated.shopify_post_id is None
    assert _activities(db_session) == [('Failed publishing "Broken"', "failed")]


def test_publish_skips_drafts_and_missing_connection(db_session):
    fake = FakeShopify()
    posts = PostsRepository(db_session)
    publisher = _publisher(db_session, fake)

    asyncio.run(publisher.publish_post(posts.create(title="Draft")))
    asyncio.run(publisher.publish_post(posts.create(title="No shop", status="published")))

    assert fake.calls == []
    assert _activities(db_session) == []


def test_publish_page_uses_page_endpoint(db_session):
    _connect(db_session, blog_id=None)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(title="About us", status="published", content_type="page")

    updated = asyncio.run(_publisher(db_session, fake).publish_post(post))

    assert fake.calls[0][0] == "create_page"
    assert fake.calls[0][1]["published"] is True
    assert updated.shopify_post_id == "555"
    assert updated.shopify_blog_id is None


def test_store_target_wins_over_legacy_connection(db_session):
    _connect(db_session)
    store = StoresRepository(db_session).create(
        shop_name="other.myshopify.com",
        access_token="store-token",
        default_blog_id="7",
    )
    fake = FakeShopify()
    post = PostsRepository(db_session).create(title="Store post", status="published", store_id=store.id)

    asyncio.run(_publisher(db_session, fake).publish_post(post))

    kwargs = fake.calls[0][1]
    assert kwargs["shop_domain"] == "other.myshopify.com"
    assert kwargs["blog_id"] == "7"
    assert SyncActivitiesRepository(db_session).list()[0].store_id == store.id


def test_update_remote_post(db_session):
    _connect(db_session)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(
        title="Edited",
        status="published",
        shopify_post_id="555",
        shopify_blog_id="42",
    )

    asyncio.run(_publisher(db_session, fake).update_remote_post(post, previous_status="published"))

    assert fake.calls[0][0] == "update_article"
    assert fake.calls[0][1]["article_id"] == "555"
    assert _activities(db_session) == [('Updated "Edited" on Shopify', "success")]


def test_update_remote_post_publishes_newly_published_post(db_session):
    _connect(db_session)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(title="Promoted", status="published")

    updated = asyncio.run(_publisher(db_session, fake).update_remote_post(post, previous_status="draft"))

    assert fake.calls[0][0] == "create_article"
    assert updated.shopify_post_id == "555"


def test_delete_remote_post_failure_recorded(db_session):
    _connect(db_session)
    fake = FakeShopify(fail=True)
    post = PostsRepository(db_session).create(title="Gone", status="published", shopify_post_id="555")

    asyncio.run(_publisher(db_session, fake).delete_remote_post(post))

    assert fake.calls[0][0] == "delete_article"
    assert _activities(db_session) == [('Failed to delete "Gone" from Shopify', "failed")]


def test_resolve_body_swaps_proxy_urls(db_session):
    pexels = PexelsService()

    async def resolve_image_url(image_id: str):
        return {"11": "https://images.pexels.com/11/large.jpeg"}.get(image_id)

    pexels.resolve_image_url = resolve_image_url  # type: ignore[method-assign]
    publisher = PublishingService(db_session, shopify_api=ShopifyApiClient(), pexels=pexels)

    body = asyncio.run(publisher.resolve_body('<img src="/api/proxy/image/11"><img src="/api/proxy/image/12">'))

    assert body == '<img src="https://images.pexels.com/11/large.jpeg"><img src="/api/proxy/image/12">'


def test_sync_posts_updates_last_synced(db_session):
    _connect(db_session)
    fake = FakeShopify()
    posts = PostsRepository(db_session)
    posts.create(title="One", status="published")
    posts.create(title="Two", status="published", shopify_post_id="9")
    publisher = _publisher(db_session, fake)

    to_sync = publisher.posts_to_sync(None)
    synced = asyncio.run(publisher.sync_posts(to_sync, publisher.legacy_target()))

    assert [post.title for post in to_sync] == ["One"]
    assert synced == 1
    assert ConnectionRepository(db_session).get().last_synced is not None


def test_scheduled_page_keeps_future_date(db_session):
    _connect(db_session, blog_id=None)
    fake = FakeShopify()
    when = datetime(2030, 6, 1, 14, 0, tzinfo=timezone.utc)
    post = PostsRepository(db_session).create(
        title="Launch page",
        status="scheduled",
        content_type="page",
        scheduled_date=when,
        scheduled_publish_date="2030-06-01",
        scheduled_publish_time="10:00",
    )

    asyncio.run(_publisher(db_session, fake).publish_post(post))

    name, kwargs = fake.calls[0]
    assert name == "create_page"
    assert kwargs["published"] is False
    assert ensure_utc(kwargs["publish_at"]) == when


def test_scheduled_page_in_the_past_is_moved_forward(db_session):
    _connect(db_session, blog_id=None)
    fake = FakeShopify()
    post = PostsRepository(db_session).create(
        title="Late page",
        status="scheduled",
        content_type="page",
        scheduled_date=datetime(2020, 1, 1, 10, 0, tzinfo=timezone.utc),
        scheduled_publish_date="2020-01-01",
        scheduled_publish_time="10:00",
    )

    asyncio.run(_publisher(db_session, fake).publish_post(post))

    publish_at = ensure_utc(fake.calls[0][1]["publish_at"])
    assert utcnow() < publish_at <= utcnow() + timedelta(hours=1)


def test_update_scheduled_page_sends_publish_at(db_session):
    _connect(db_session, blog_id=None)
    fake = FakeShopify()
    when = datetime(2030, 6, 1, 14, 0, tzinfo=timezone.utc)
    post = PostsRepository(db_session).create(
        title="Edited page",
        status="scheduled",
        content_type="page",
        scheduled_date=when,
        scheduled_publish_date="2030-06-01",
        scheduled_publish_time="10:00",
        shopify_post_id="555",
    )

    asyncio.run(_publisher(db_session, fake).update_remote_post(post, previous_status="scheduled"))

    name, kwargs = fake.calls[0]
    assert name == "update_page"
    assert kwargs["published"] is False
    assert ensure_utc(kwargs["publish_at"]) == when
