"""Admin endpoints behind the bearer token: Shopify catalogue lookups, service
health checks, keyword research, image search and the one-shot
"generate content" flow that writes and publishes an article with Claude.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from topshop import deps
from topshop.content_html import ContentImage
from topshop.repositories import ContentGenRequestsRepository, PostsRepository
from topshop.schemas import (
    GenerateContentRequest,
    GenerateImagesRequest,
    KeywordsRequest,
    ProductImprovementsRequest,
)
from topshop.security import require_admin_api_token
from topshop.services.claude import BlogContentRequest, ClaudeServiceError
from topshop.services.dataforseo import DataForSeoError, list_regions, location_code_for_region
from topshop.services.pexels import PexelsImage
from topshop.services.publishing import PublishingService, ShopTarget
from topshop.services.shopify_api import ShopifyApiError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_api_token)])

CONTENT_IMAGE_COUNT = 5

POST_STATUS_BY_OPTION = {"publish": "published", "schedule": "scheduled", "draft": "draft"}

PERSPECTIVE_INSTRUCTIONS = {
    "first_person_plural": "Write in the first person plural (we, our) as the brand.",
    "first_person_singular": "Write in the first person singular (I, my).",
    "second_person": "Address the reader directly in the second person (you, your).",
    "third_person": "Write in the third person.",
    "professional": "Write in a neutral, professional voice.",
}

INTRO_INSTRUCTIONS = {
    "standard": "Open with a short standard introduction.",
    "search_intent": "Open with an introduction that answers the reader's search intent in the first paragraph.",
}

FAQ_INSTRUCTIONS = {
    "short": "End with a FAQ section of 3-5 questions and concise answers.",
    "long": "End with a FAQ section of 6-10 questions and detailed answers.",
}


def _target(publisher: PublishingService, store_id: int | None = None) -> ShopTarget:
    target = publisher.resolve_target(store_id=store_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active Shopify connection found")
    return target


def _http_error(exc: ShopifyApiError | ClaudeServiceError | DataForSeoError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def build_content_prompt(payload: GenerateContentRequest, keywords: list[str]) -> str:
    article = "standalone page" if payload.articleType == "page" else "blog post"
    lines = [f'Write a {article} titled "{payload.title}".']
    if keywords:
        lines.append(f"Target these SEO keywords naturally: {', '.join(keywords)}.")
    lines.append(PERSPECTIVE_INSTRUCTIONS[payload.writingPerspective])
    if payload.introType in INTRO_INSTRUCTIONS:
        lines.append(INTRO_INSTRUCTIONS[payload.introType])
    if payload.enableH3s:
        lines.append("Use H3 subheadings under the H2 sections where they help.")
    if payload.enableLists:
        lines.append("Use bulleted or numbered lists for steps and key points.")
    if payload.enableTables:
        lines.append("Include an HTML table where a comparison or data summary fits.")
    if payload.faqType in FAQ_INSTRUCTIONS:
        lines.append(FAQ_INSTRUCTIONS[payload.faqType])
    if payload.enableCitations:
        lines.append("Cite reputable sources with links where you state facts or figures.")
    return "\n".join(lines)


def _content_image(image: PexelsImage) -> ContentImage:
    return ContentImage(url=image.best_url(), alt=image.alt or "")


@router.get("/regions")
def regions() -> dict:
    return {"success": True, "regions": list_regions()}


@router.get("/products")
async def products(storeId: int | None = None, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    target = _target(publisher, storeId)
    items = await deps.shopify_api.get_products(shop_domain=target.shop_domain, access_token=target.access_token)
    return {
        "success": True,
        "products": [
            {
                "id": item.get("id"),
                "title": item.get("title"),
                "handle": item.get("handle"),
                "image": (item.get("image") or {}).get("src"),
            }
            for item in items
        ],
    }


@router.get("/collections")
async def collections(storeId: int | None = None, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    target = _target(publisher, storeId)
    found: list[dict[str, Any]] = []
    try:
        for kind in ("custom", "smart"):
            found.extend(
                await deps.shopify_api.get_collections(
                    shop_domain=target.shop_domain,
                    access_token=target.access_token,
                    kind=kind,
                )
            )
    except ShopifyApiError as exc:
        raise _http_error(exc) from exc
    return {
        "success": True,
        "collections": [
            {
                "id": item.get("id"),
                "title": item.get("title"),
                "handle": item.get("handle"),
                "image": (item.get("image") or {}).get("src"),
            }
            for item in found
        ],
    }


@router.get("/blogs")
async def blogs(storeId: int | None = None, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    target = _target(publisher, storeId)
    try:
        items = await deps.shopify_api.get_blogs(shop_domain=target.shop_domain, access_token=target.access_token)
    except ShopifyApiError as exc:
        raise _http_error(exc) from exc
    return {
        "success": True,
        "blogs": [{"id": item.get("id"), "title": item.get("title"), "handle": item.get("handle")} for item in items],
    }


@router.get("/content-files")
async def content_files(storeId: int | None = None, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    target = _target(publisher, storeId)
    files = await deps.shopify_api.get_content_files(shop_domain=target.shop_domain, access_token=target.access_token)
    return {"success": True, "files": files}


@router.get("/test-connections")
async def test_connections(publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    target = publisher.resolve_target(store_id=None)
    shopify_ok = False
    if target is not None:
        result = await deps.shopify_api.test_connection(
            shop_domain=target.shop_domain,
            access_token=target.access_token,
        )
        shopify_ok = bool(result.get("success"))
    claude_result = await deps.claude.test_connection()
    pexels_result = await deps.pexels.test_connection()
    return {
        "success": True,
        "connections": {
            "shopify": shopify_ok,
            "claude": bool(claude_result.get("success")),
            "dataForSEO": await deps.dataforseo.test_connection(),
            "pexels": bool(pexels_result.get("success")),
        },
    }


@router.post("/generate-images")
async def generate_images(payload: GenerateImagesRequest) -> dict:
    images, fallback_used = await deps.pexels.safe_search_images(payload.query, payload.count)
    return {
        "success": True,
        "images": [image.model_dump() for image in images],
        "fallbackUsed": fallback_used,
    }


@router.post("/keywords")
async def keywords(payload: KeywordsRequest) -> dict:
    try:
        found = await deps.dataforseo.search_related_keywords(
            payload.keyword,
            location_code_for_region(payload.region),
        )
    except DataForSeoError as exc:
        raise _http_error(exc) from exc
    return {"success": True, "keywords": [keyword.as_dict() for keyword in found]}


@router.post("/products/{product_id}/analyze")
async def analyze_product(
    product_id: str,
    storeId: int | None = None,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    target = _target(publisher, storeId)
    try:
        analysis = await deps.product_analyzer.analyze_product(
            shop_domain=target.shop_domain,
            access_token=target.access_token,
            product_id=product_id,
        )
    except (ShopifyApiError, ClaudeServiceError) as exc:
        raise _http_error(exc) from exc
    return {"success": True, **analysis}


@router.post("/products/{product_id}/improvements")
async def apply_improvements(
    product_id: str,
    payload: ProductImprovementsRequest,
    storeId: int | None = None,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    target = _target(publisher, storeId)
    return await deps.product_analyzer.apply_product_improvements(
        shop_domain=target.shop_domain,
        access_token=target.access_token,
        product_id=product_id,
        title=payload.title,
        description=payload.description,
        metafields=[metafield.model_dump() for metafield in payload.metafields],
    )


async def _content_images(payload: GenerateContentRequest, query: str) -> list[PexelsImage]:
    if payload.selectedImageIds:
        return await deps.pexels.get_images_by_ids(payload.selectedImageIds)
    if payload.generateImages:
        images, _ = await deps.pexels.safe_search_images(query, CONTENT_IMAGE_COUNT)
        return images
    return []


async def _product_handles(target: ShopTarget, product_ids: list[str]) -> list[str]:
    if not product_ids:
        return []
    items = await deps.shopify_api.get_products(shop_domain=target.shop_domain, access_token=target.access_token)
    handles = {str(item.get("id")): item.get("handle") for item in items}
    return [handles[product_id] for product_id in product_ids if handles.get(product_id)]


def _admin_url(target: ShopTarget, post_type: str, remote_id: str | None) -> str | None:
    if not remote_id:
        return None
    section = "pages" if post_type == "page" else "articles"
    return f"https://{target.shop_domain}/admin/{section}/{remote_id}"


@router.post("/generate-content")
async def generate_content(
    payload: GenerateContentRequest,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    post_status = POST_STATUS_BY_OPTION[payload.postStatus]
    if post_status == "scheduled" and not (payload.scheduledPublishDate and payload.scheduledPublishTime):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A scheduled post must include scheduledPublishDate and scheduledPublishTime fields",
        )

    target = _target(publisher, payload.storeId)
    session = publisher.session
    requests = ContentGenRequestsRepository(session)
    keywords = [item.keyword for item in payload.selectedKeywordData] or payload.keywords
    gen_request = requests.create(
        topic=payload.title,
        tone=payload.toneOfVoice,
        length="medium",
        store_id=target.store_id,
    )
    logger.info("content_generation_started", extra={"request_id": gen_request.id, "title": payload.title})

    images = await _content_images(payload, keywords[0] if keywords else payload.title)
    product_links = await _product_handles(target, payload.productIds)

    content_request = BlogContentRequest(
        topic=payload.title,
        tone=payload.toneOfVoice,
        length="medium",
        custom_prompt=build_content_prompt(payload, keywords),
        content_style_tone_id=payload.contentStyleToneId,
        content_style_display_name=payload.contentStyleDisplayName,
        primary_image=_content_image(images[0]) if images else None,
        secondary_images=[_content_image(image) for image in images[1:]],
        youtube_embed=payload.youtubeEmbed,
        product_links=product_links,
    )
    try:
        generated = await deps.claude.generate_blog_content(content_request)
    except ClaudeServiceError as exc:
        requests.update(gen_request.id, status="failed", generated_content=str(exc))
        logger.warning("content_generation_failed", extra={"request_id": gen_request.id, "error": str(exc)})
        raise _http_error(exc) from exc

    post_type = "page" if payload.articleType == "page" else "post"
    featured_image = images[0].best_url() if images else None
    columns: dict[str, Any] = {
        "content": generated["content"],
        "summary": generated.get("metaDescription") or None,
        "tags": ", ".join(generated.get("tags") or []),
        "status": post_status,
        "content_type": post_type,
        "featured_image": featured_image,
        "store_id": target.store_id,
        "author": payload.author,
    }
    if post_type == "post":
        columns["shopify_blog_id"] = payload.blogId or target.blog_id
    if post_status == "scheduled":
        columns["scheduled_publish_date"] = payload.scheduledPublishDate
        columns["scheduled_publish_time"] = payload.scheduledPublishTime
        columns["scheduled_date"] = await publisher.compute_scheduled_date(
            store_id=target.store_id,
            scheduled_publish_date=payload.scheduledPublishDate or "",
            scheduled_publish_time=payload.scheduledPublishTime or "",
        )

    posts = PostsRepository(session)
    post = posts.create(title=generated.get("title") or payload.title, **columns)
    requests.update(gen_request.id, status="completed", generated_content=json.dumps(generated))

    post = await publisher.publish_post(post)
    logger.info(
        "content_generation_completed",
        extra={"request_id": gen_request.id, "post_id": post.id, "shopify_id": post.shopify_post_id},
    )
    return {
        "success": True,
        "requestId": gen_request.id,
        "postId": post.id,
        "title": post.title,
        "content": post.content,
        "tags": generated.get("tags") or [],
        "metaDescription": generated.get("metaDescription") or "",
        "featuredImage": featured_image,
        "contentUrl": _admin_url(target, post_type, post.shopify_post_id),
        "shopifyId": post.shopify_post_id,
    }
