"""Push local blog posts and pages to Shopify.

Every remote write is paired with a ``SyncActivity`` row. Shopify failures are
recorded and logged but never raised, so the local change that triggered the
write still succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from topshop.content_html import proxy_image_ids, replace_proxy_image_urls
from topshop.models import BlogPost, utcnow
from topshop.repositories import (
    ConnectionRepository,
    PostsRepository,
    StoresRepository,
    SyncActivitiesRepository,
)
from topshop.scheduling import create_datetime_in_timezone, move_past_instant_forward, resolve_scheduled_instant
from topshop.services.pexels import PexelsService
from topshop.services.shopify_api import ArticleDraft, ShopifyApiClient, ShopifyApiError

logger = logging.getLogger(__name__)

REMOTE_STATUSES = ("published", "scheduled")


@dataclass(frozen=True)
class ShopTarget:
    shop_domain: str
    access_token: str
    blog_id: str | None
    store_id: int | None


class PublishingService:
    def __init__(self, session: Session, *, shopify_api: ShopifyApiClient, pexels: PexelsService) -> None:
        self.session = session
        self._shopify_api = shopify_api
        self._pexels = pexels
        self._posts = PostsRepository(session)
        self._stores = StoresRepository(session)
        self._connections = ConnectionRepository(session)
        self._activities = SyncActivitiesRepository(session)

    def legacy_target(self) -> ShopTarget | None:
        connection = self._connections.get()
        if connection is None or not connection.is_connected:
            return None
        return ShopTarget(
            shop_domain=connection.store_name,
            access_token=connection.access_token,
            blog_id=connection.default_blog_id,
            store_id=None,
        )

    def resolve_target(self, *, store_id: int | None, blog_id: str | None = None) -> ShopTarget | None:
        """The post's own store when connected, otherwise the legacy connection."""
        if store_id is not None:
            store = self._stores.get(store_id)
            if store is not None and store.is_connected:
                return ShopTarget(
                    shop_domain=store.shop_name,
                    access_token=store.access_token,
                    blog_id=blog_id or store.default_blog_id,
                    store_id=store.id,
                )
        legacy = self.legacy_target()
        if legacy is None:
            return None
        if blog_id:
            return ShopTarget(legacy.shop_domain, legacy.access_token, blog_id, legacy.store_id)
        return legacy

    async def shop_timezone(self, target: ShopTarget) -> str | None:
        try:
            shop = await self._shopify_api.get_shop_info(
                shop_domain=target.shop_domain,
                access_token=target.access_token,
            )
        except ShopifyApiError as exc:
            logger.warning("shop_timezone_lookup_failed", extra={"shop_domain": target.shop_domain, "error": str(exc)})
            return None
        return shop.get("iana_timezone") or None

    async def compute_scheduled_date(
        self,
        *,
        store_id: int | None,
        scheduled_publish_date: str,
        scheduled_publish_time: str,
    ) -> datetime | None:
        target = self.resolve_target(store_id=store_id)
        timezone_name = await self.shop_timezone(target) if target else None
        try:
            return create_datetime_in_timezone(scheduled_publish_date, scheduled_publish_time, timezone_name)
        except ValueError:
            logger.warning(
                "scheduled_date_unparseable",
                extra={"scheduled_publish_date": scheduled_publish_date, "scheduled_publish_time": scheduled_publish_time},
            )
            return None

    async def resolve_body(self, content: str) -> str:
        image_ids = proxy_image_ids(content)
        if not image_ids:
            return content
        resolved: dict[str, str] = {}
        for image_id in image_ids:
            url = await self._pexels.resolve_image_url(image_id)
            if url:
                resolved[image_id] = url
        return replace_proxy_image_urls(content, resolved)

    async def _draft(self, post: BlogPost) -> ArticleDraft:
        return ArticleDraft(
            title=post.title,
            body_html=await self.resolve_body(post.content or ""),
            status=post.status,
            tags=post.tags or "",
            summary=post.summary or "",
            author=post.author,
            featured_image=post.featured_image,
            scheduled_publish_date=post.scheduled_publish_date,
            scheduled_publish_time=post.scheduled_publish_time,
        )

    def _record(self, *, activity: str, status: str, details: str, target: ShopTarget | None) -> None:
        self._activities.create(
            activity=activity,
            status=status,
            details=details,
            store_id=target.store_id if target else None,
        )

    @staticmethod
    def _page_publish_at(post: BlogPost, timezone_name: str | None) -> datetime | None:
        if post.status != "scheduled":
            return None
        now = utcnow()
        if post.scheduled_date is not None:
            return move_past_instant_forward(post.scheduled_date, now=now)
        return resolve_scheduled_instant(
            post.scheduled_publish_date,
            post.scheduled_publish_time,
            timezone_name,
            now=now,
        )

    async def _create_remote(self, post: BlogPost, target: ShopTarget, timezone_name: str | None) -> str:
        if post.content_type == "page":
            page = await self._shopify_api.create_page(
                shop_domain=target.shop_domain,
                access_token=target.access_token,
                title=post.title,
                body_html=await self.resolve_body(post.content or ""),
                published=post.status == "published",
                publish_at=self._page_publish_at(post, timezone_name),
                featured_image=post.featured_image,
            )
            return str(page.get("id"))

        article = await self._shopify_api.create_article(
            shop_domain=target.shop_domain,
            access_token=target.access_token,
            blog_id=target.blog_id or "",
            draft=await self._draft(post),
            shop_timezone=timezone_name,
        )
        return str(article.get("id"))

    async def publish_post(self, post: BlogPost) -> BlogPost:
        if post.status not in REMOTE_STATUSES:
            return post
        target = self.resolve_target(store_id=post.store_id, blog_id=post.shopify_blog_id)
        if target is None or (post.content_type != "page" and not target.blog_id):
            logger.info("publish_skipped_no_connection", extra={"post_id": post.id})
            return post

        scheduled = post.status == "scheduled"
        try:
            timezone_name = await self.shop_timezone(target)
            remote_id = await self._create_remote(post, target, timezone_name)
        except ShopifyApiError as exc:
            logger.warning("publish_post_failed", extra={"post_id": post.id, "error": str(exc)})
            action = "scheduling" if scheduled else "publishing"
            self._record(activity=f'Failed {action} "{post.title}"', status="failed", details=str(exc), target=target)
            return post

        fields: dict = {"shopify_post_id": remote_id}
        if post.content_type != "page":
            fields["shopify_blog_id"] = target.blog_id
        if not scheduled and post.published_date is None:
            fields["published_date"] = utcnow()
        updated = self._posts.update(post.id, **fields) or post

        if scheduled:
            self._record(
                activity=f'Scheduled "{post.title}"',
                status="success",
                details=(
                    "Successfully scheduled for publication on "
                    f"{post.scheduled_publish_date} at {post.scheduled_publish_time}"
                ),
                target=target,
            )
        else:
            self._record(
                activity=f'Published "{post.title}"',
                status="success",
                details="Successfully published to Shopify",
                target=target,
            )
        return updated

    async def update_remote_post(self, post: BlogPost, *, previous_status: str) -> BlogPost:
        was_remote = previous_status in REMOTE_STATUSES
        is_remote = post.status in REMOTE_STATUSES
        if not post.shopify_post_id:
            if is_remote and not was_remote:
                return await self.publish_post(post)
            return post
        if not (is_remote or was_remote):
            return post

        target = self.resolve_target(store_id=post.store_id, blog_id=post.shopify_blog_id)
        if target is None:
            return post
        try:
            if post.content_type == "page":
                await self._shopify_api.update_page(
                    shop_domain=target.shop_domain,
                    access_token=target.access_token,
                    page_id=post.shopify_post_id,
                    title=post.title,
                    body_html=await self.resolve_body(post.content or ""),
                    published=post.status == "published",
                    publish_at=self._page_publish_at(post, await self.shop_timezone(target)),
                )
            elif target.blog_id:
                await self._shopify_api.update_article(
                    shop_domain=target.shop_domain,
                    access_token=target.access_token,
                    blog_id=target.blog_id,
                    article_id=post.shopify_post_id,
                    draft=await self._draft(post),
                    shop_timezone=await self.shop_timezone(target),
                )
            else:
                return post
        except ShopifyApiError as exc:
            logger.warning("update_remote_post_failed", extra={"post_id": post.id, "error": str(exc)})
            self._record(
                activity=f'Failed to update "{post.title}" on Shopify',
                status="failed",
                details=str(exc),
                target=target,
            )
            return post

        self._record(
            activity=f'Updated "{post.title}" on Shopify',
            status="success",
            details="Successfully updated on Shopify",
            target=target,
        )
        return post

    async def delete_remote_post(self, post: BlogPost) -> None:
        if not post.shopify_post_id:
            return
        target = self.resolve_target(store_id=post.store_id, blog_id=post.shopify_blog_id)
        if target is None or (post.content_type != "page" and not target.blog_id):
            return
        try:
            if post.content_type == "page":
                await self._shopify_api.delete_page(
                    shop_domain=target.shop_domain,
                    access_token=target.access_token,
                    page_id=post.shopify_post_id,
                )
            else:
                await self._shopify_api.delete_article(
                    shop_domain=target.shop_domain,
                    access_token=target.access_token,
                    blog_id=target.blog_id or "",
                    article_id=post.shopify_post_id,
                )
        except ShopifyApiError as exc:
            logger.warning("delete_remote_post_failed", extra={"post_id": post.id, "error": str(exc)})
            self._record(
                activity=f'Failed to delete "{post.title}" from Shopify',
                status="failed",
                details=str(exc),
                target=target,
            )
            return

        self._record(
            activity=f'Deleted "{post.title}" from Shopify',
            status="success",
            details="Successfully deleted from Shopify",
            target=target,
        )

    def posts_to_sync(self, post_ids: list[int] | None) -> list[BlogPost]:
        if post_ids:
            return self._posts.get_many(post_ids)
        return [post for post in self._posts.list_published() if not post.shopify_post_id]

    async def sync_posts(self, posts: list[BlogPost], target: ShopTarget) -> int:
        """Create or update each post as an article on ``target``; returns the success count."""
        timezone_name = await self.shop_timezone(target)
        synced = 0
        for post in posts:
            try:
                draft = await self._draft(post)
                if post.shopify_post_id:
                    await self._shopify_api.update_article(
                        shop_domain=target.shop_domain,
                        access_token=target.access_token,
                        blog_id=target.blog_id or "",
                        article_id=post.shopify_post_id,
                        draft=draft,
                        shop_timezone=timezone_name,
                    )
                else:
                    article = await self._shopify_api.create_article(
                        shop_domain=target.shop_domain,
                        access_token=target.access_token,
                        blog_id=target.blog_id or "",
                        draft=draft,
                        shop_timezone=timezone_name,
                    )
                    self._posts.update(post.id, shopify_post_id=str(article.get("id")), shopify_blog_id=target.blog_id)
            except ShopifyApiError as exc:
                logger.warning("sync_post_failed", extra={"post_id": post.id, "error": str(exc)})
                self._record(activity=f'Failed to publish "{post.title}"', status="failed", details=str(exc), target=target)
                continue

            self._record(
                activity=f'Published "{post.title}"',
                status="success",
                details="Successfully published to Shopify",
                target=target,
            )
            synced += 1

        if target.store_id is None:
            self._connections.update(last_synced=utcnow())
        else:
            self._stores.update(target.store_id, last_synced=utcnow())
        return synced
