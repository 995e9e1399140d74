from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import httpx

from topshop.config import settings
from topshop.content_html import rewrite_image_urls, slugify_handle, truncate_body_html, truncate_title
from topshop.scheduling import (
    Publication,
    article_publication,
    format_shopify_timestamp,
    needs_schedule_fix,
    page_publication,
    parse_shopify_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)


class ShopifyApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.upstream_status = upstream_status


@dataclass(frozen=True)
class ArticleDraft:
    title: str
    body_html: str
    status: str
    tags: str = ""
    summary: str = ""
    author: str | None = None
    featured_image: str | None = None
    scheduled_publish_date: str | None = None
    scheduled_publish_time: str | None = None


def build_article_payload(draft: ArticleDraft, *, shop_domain: str, publication: Publication) -> dict[str, Any]:
    article: dict[str, Any] = {
        "title": truncate_title(draft.title),
        "author": draft.author or shop_domain,
        "body_html": truncate_body_html(rewrite_image_urls(draft.body_html or "")),
        "tags": draft.tags or "",
        "summary_html": draft.summary or "",
        "handle": slugify_handle(draft.title),
    }
    if draft.featured_image and draft.featured_image.strip():
        article["image"] = {"src": draft.featured_image.strip()}
    article.update(publication.as_payload())
    return article


def _image_entry(*, image_id: str, url: str, filename: str, alt: str) -> dict[str, str]:
    return {"id": image_id, "url": url, "filename": filename, "contentType": "image/jpeg", "alt": alt}


def flatten_product_images(products: list[dict[str, Any]]) -> list[dict[str, str]]:
    files: list[dict[str, str]] = []
    for product in products:
        title = str(product.get("title") or "Product")
        product_id = product.get("id")
        main_image = product.get("image") or {}
        if isinstance(main_image, dict) and main_image.get("src"):
            files.append(
                _image_entry(
                    image_id=f"product-{product_id}-main",
                    url=main_image["src"],
                    filename=f"{title} (main)",
                    alt=title,
                )
            )
        for index, image in enumerate(product.get("images") or []):
            if not isinstance(image, dict) or not image.get("src"):
                continue
            files.append(
                _image_entry(
                    image_id=f"product-{product_id}-image-{image.get('id') or index}",
                    url=image["src"],
                    filename=f"{title} ({index + 1})",
                    alt=image.get("alt") or f"{title} image {index + 1}",
                )
            )
        for index, variant in enumerate(product.get("variants") or []):
            variant_image = variant.get("image") if isinstance(variant, dict) else None
            if not isinstance(variant_image, dict) or not variant_image.get("src"):
                continue
            label = f"{title} - {variant.get('title') or f'Variant {index + 1}'}"
            files.append(
                _image_entry(
                    image_id=f"variant-{variant.get('id')}",
                    url=variant_image["src"],
                    filename=label,
                    alt=label,
                )
            )
    return files


class ShopifyApiClient:
    def __init__(self) -> None:
        self._timeout = settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS
        self._api_version = settings.SHOPIFY_ADMIN_API_VERSION
        self._fallback_api_version = settings.SHOPIFY_FALLBACK_API_VERSION

    async def exchange_code_for_access_token(self, *, shop_domain: str, code: str) -> tuple[str, str]:
        url = f"https://{shop_domain}/admin/oauth/access_token"
        payload = {
            "client_id": settings.SHOPIFY_API_KEY,
            "client_secret": settings.SHOPIFY_API_SECRET,
            "code": code,
        }
        response = await self._send_json(method="POST", url=url, payload=payload)
        access_token = response.get("access_token")
        scopes = response.get("scope")
        if not isinstance(access_token, str) or not access_token:
            raise ShopifyApiError(message="OAuth token exchange response is missing access_token")
        if not isinstance(scopes, str):
            raise ShopifyApiError(message="OAuth token exchange response is missing scope")
        return access_token, scopes

    async def register_webhook(self, *, shop_domain: str, access_token: str, topic: str, address: str) -> None:
        payload = {"webhook": {"topic": topic, "address": address, "format": "json"}}
        try:
            await self._admin(
                method="POST",
                shop_domain=shop_domain,
                access_token=access_token,
                path="/webhooks.json",
                payload=payload,
            )
        except ShopifyApiError as exc:
            if exc.upstream_status == 422 and "already been taken" in str(exc).lower():
                logger.info("shopify_webhook_already_registered", extra={"shop_domain": shop_domain, "topic": topic})
                return
            raise

    async def get_shop_info(self, *, shop_domain: str, access_token: str) -> dict[str, Any]:
        body = await self._admin(method="GET", shop_domain=shop_domain, access_token=access_token, path="/shop.json")
        return self._require_object(body, "shop")

    async def test_connection(self, *, shop_domain: str, access_token: str) -> dict[str, Any]:
        try:
            shop = await self.get_shop_info(shop_domain=shop_domain, access_token=access_token)
        except ShopifyApiError as exc:
            logger.warning("shopify_connection_test_failed", extra={"shop_domain": shop_domain, "error": str(exc)})
            return {"success": False, "message": f"Failed to connect to store: {exc}"}
        return {"success": True, "message": f"Connected to Shopify store {shop.get('name') or shop_domain} successfully"}

    async def get_blogs(self, *, shop_domain: str, access_token: str) -> list[dict[str, Any]]:
        body = await self._admin(method="GET", shop_domain=shop_domain, access_token=access_token, path="/blogs.json")
        return self._require_list(body, "blogs")

    async def get_blog(self, *, shop_domain: str, access_token: str, blog_id: str) -> dict[str, Any]:
        body = await self._admin(
            method="GET",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/blogs/{blog_id}.json",
        )
        return self._require_object(body, "blog")

    async def get_articles(
        self, *, shop_domain: str, access_token: str, blog_id: str, limit: int = 50
    ) -> list[dict[str, Any]]:
        body = await self._admin(
            method="GET",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/blogs/{blog_id}/articles.json",
            params={"limit": limit},
        )
        return self._require_list(body, "articles")

    async def create_article(
        self,
        *,
        shop_domain: str,
        access_token: str,
        blog_id: str,
        draft: ArticleDraft,
        shop_timezone: str | None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        now = now or utcnow()
        publication = article_publication(
            status=draft.status,
            scheduled_publish_date=draft.scheduled_publish_date,
            scheduled_publish_time=draft.scheduled_publish_time,
            timezone_name=shop_timezone,
            now=now,
            clamp_to_tomorrow=True,
        )
        article = build_article_payload(draft, shop_domain=shop_domain, publication=publication)
        logger.info(
            "shopify_article_create",
            extra={
                "shop_domain": shop_domain,
                "blog_id": blog_id,
                "published": article["published"],
                "published_at": article.get("published_at"),
            },
        )
        body = await self._admin(
            method="POST",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/blogs/{blog_id}/articles.json",
            payload={"article": article},
        )
        created = self._require_object(body, "article")
        if publication.scheduled:
            await self._fix_schedule_if_ignored(
                shop_domain=shop_domain,
                access_token=access_token,
                resource="article",
                path=f"/blogs/{blog_id}/articles/{created.get('id')}.json",
                resource_id=created.get("id"),
                sent=publication.published_at,
                returned=created.get("published_at"),
                now=now,
            )
        return created

    async def update_article(
        self,
        *,
        shop_domain: str,
        access_token: str,
        blog_id: str,
        article_id: str,
        draft: ArticleDraft,
        shop_timezone: str | None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        publication = article_publication(
            status=draft.status,
            scheduled_publish_date=draft.scheduled_publish_date,
            scheduled_publish_time=draft.scheduled_publish_time,
            timezone_name=shop_timezone,
            now=now or utcnow(),
            clamp_to_tomorrow=False,
        )
        article = build_article_payload(draft, shop_domain=shop_domain, publication=publication)
        article.pop("handle", None)
        article["id"] = article_id
        body = await self._admin(
            method="PUT",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/blogs/{blog_id}/articles/{article_id}.json",
            payload={"article": article},
        )
        return self._require_object(body, "article")

    async def delete_article(self, *, shop_domain: str, access_token: str, blog_id: str, article_id: str) -> None:
        await self._admin(
            method="DELETE",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/blogs/{blog_id}/articles/{article_id}.json",
        )

    async def create_page(
        self,
        *,
        shop_domain: str,
        access_token: str,
        title: str,
        body_html: str,
        published: bool = False,
        publish_at: datetime | None = None,
        featured_image: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        now = now or utcnow()
        publication = page_publication(published=published, publish_at=publish_at, now=now)
        page: dict[str, Any] = {"title": title, "body_html": body_html}
        if featured_image:
            page["image"] = {"src": featured_image}
        page.update(publication.as_payload())
        body = await self._admin(
            method="POST",
            shop_domain=shop_domain,
            access_token=access_token,
            path="/pages.json",
            payload={"page": page},
        )
        created = self._require_object(body, "page")
        if publication.scheduled:
            await self._fix_schedule_if_ignored(
                shop_domain=shop_domain,
                access_token=access_token,
                resource="page",
                path=f"/pages/{created.get('id')}.json",
                resource_id=created.get("id"),
                sent=publication.published_at,
                returned=created.get("published_at"),
                now=now,
            )
        return created

    async def update_page(
        self,
        *,
        shop_domain: str,
        access_token: str,
        page_id: str,
        title: str,
        body_html: str,
        published: bool,
        publish_at: datetime | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        page: dict[str, Any] = {"id": page_id, "title": title, "body_html": body_html, "published": published}
        # a published page keeps its original published_at
        if not published:
            page.update(page_publication(published=False, publish_at=publish_at, now=now or utcnow()).as_payload())
        body = await self._admin(
            method="PUT",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/pages/{page_id}.json",
            payload={"page": page},
        )
        return self._require_object(body, "page")

    async def delete_page(self, *, shop_domain: str, access_token: str, page_id: str) -> None:
        await self._admin(
            method="DELETE",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/pages/{page_id}.json",
        )

    async def get_products(self, *, shop_domain: str, access_token: str, limit: int = 50) -> list[dict[str, Any]]:
        try:
            return await self._list_products(shop_domain=shop_domain, access_token=access_token, limit=limit)
        except ShopifyApiError as exc:
            if exc.upstream_status != 404:
                logger.warning("shopify_products_fetch_failed", extra={"shop_domain": shop_domain, "error": str(exc)})
                return []
        try:
            return await self._list_products(
                shop_domain=shop_domain,
                access_token=access_token,
                limit=limit,
                api_version=self._fallback_api_version,
            )
        except ShopifyApiError as exc:
            logger.warning(
                "shopify_products_fallback_failed",
                extra={"shop_domain": shop_domain, "api_version": self._fallback_api_version, "error": str(exc)},
            )
            return []

    async def _list_products(
        self,
        *,
        shop_domain: str,
        access_token: str,
        limit: int,
        api_version: str | None = None,
        fields: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit}
        if fields:
            params["fields"] = fields
        body = await self._admin(
            method="GET",
            shop_domain=shop_domain,
            access_token=access_token,
            path="/products.json",
            params=params,
            api_version=api_version,
        )
        return self._require_list(body, "products")

    async def get_product(self, *, shop_domain: str, access_token: str, product_id: str) -> dict[str, Any]:
        body = await self._admin(
            method="GET",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/products/{product_id}.json",
        )
        return self._require_object(body, "product")

    async def update_product(
        self, *, shop_domain: str, access_token: str, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        body = await self._admin(
            method="PUT",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/products/{product_id}.json",
            payload={"product": {"id": product_id, **fields}},
        )
        return self._require_object(body, "product")

    async def create_product_metafield(
        self, *, shop_domain: str, access_token: str, product_id: str, metafield: dict[str, Any]
    ) -> dict[str, Any]:
        body = await self._admin(
            method="POST",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/products/{product_id}/metafields.json",
            payload={"metafield": metafield},
        )
        return self._require_object(body, "metafield")

    async def get_collections(
        self,
        *,
        shop_domain: str,
        access_token: str,
        kind: Literal["custom", "smart"],
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        key = "custom_collections" if kind == "custom" else "smart_collections"
        body = await self._admin(
            method="GET",
            shop_domain=shop_domain,
            access_token=access_token,
            path=f"/{key}.json",
            params={"limit": limit},
        )
        return self._require_list(body, key)

    async def get_content_files(self, *, shop_domain: str, access_token: str) -> list[dict[str, str]]:
        try:
            products = await self._list_products(
                shop_domain=shop_domain,
                access_token=access_token,
                limit=50,
                fields="id,title,image,images,variants",
            )
        except ShopifyApiError as exc:
            logger.warning("shopify_content_files_failed", extra={"shop_domain": shop_domain, "error": str(exc)})
            return []
        return flatten_product_images(products)

    async def _fix_schedule_if_ignored(
        self,
        *,
        shop_domain: str,
        access_token: str,
        resource: Literal["article", "page"],
        path: str,
        resource_id: Any,
        sent: datetime | None,
        returned: Any,
        now: datetime,
    ) -> None:
        returned_at = parse_shopify_timestamp(returned)
        if not needs_schedule_fix(sent=sent, returned=returned_at, now=now):
            return
        if sent is None:
            return
        logger.warning(
            "shopify_published_instead_of_scheduled",
            extra={"shop_domain": shop_domain, "resource": resource, "resource_id": resource_id},
        )
        payload = {
            resource: {
                "id": resource_id,
                "published": False,
                "published_at": format_shopify_timestamp(sent),
            }
        }
        try:
            await self._admin(
                method="PUT",
                shop_domain=shop_domain,
                access_token=access_token,
                path=path,
                payload=payload,
            )
        except ShopifyApiError:
            logger.exception(
                "shopify_schedule_fix_failed",
                extra={"shop_domain": shop_domain, "resource": resource, "resource_id": resource_id},
            )

    @staticmethod
    def _require_object(body: dict[str, Any], key: str) -> dict[str, Any]:
        value = body.get(key)
        if not isinstance(value, dict):
            raise ShopifyApiError(message=f"Shopify response is missing {key}")
        return value

    @staticmethod
    def _require_list(body: dict[str, Any], key: str) -> list[dict[str, Any]]:
        value = body.get(key)
        if not isinstance(value, list):
            raise ShopifyApiError(message=f"Shopify response is missing {key}")
        return value

    async def _admin(
        self,
        *,
        method: str,
        shop_domain: str,
        access_token: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        api_version: str | None = None,
    ) -> dict[str, Any]:
        url = f"https://{shop_domain}/admin/api/{api_version or self._api_version}{path}"
        headers = {"X-Shopify-Access-Token": access_token}
        return await self._send_json(method=method, url=url, payload=payload, params=params, headers=headers)

    async def _send_json(
        self,
        *,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, url, json=payload, params=params, headers=headers)
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while calling Shopify: {exc}") from exc

        if response.status_code >= 400:
            raise ShopifyApiError(
                message=f"Shopify API call failed ({response.status_code}): {response.text}",
                status_code=502,
                upstream_status=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ShopifyApiError(message="Shopify API returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise ShopifyApiError(message="Shopify API response must be a JSON object")
        return body
