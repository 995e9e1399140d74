from __future__ import annotations

import logging
from typing import Any

from topshop.content_html import strip_html
from topshop.services.claude import ClaudeService, ClaudeServiceError
from topshop.services.shopify_api import ShopifyApiClient, ShopifyApiError

logger = logging.getLogger(__name__)

ANALYSIS_MAX_TOKENS = 1500

ANALYSIS_SYSTEM_PROMPT = """You are an expert e-commerce and SEO consultant specializing in Shopify product listings.
Analyze the product details and give constructive feedback that improves sales and SEO.
Reply with valid JSON only, using this structure:
{
  "analysis": {
    "strengths": [array of strings],
    "weaknesses": [array of strings],
    "seoScore": number from 1-10,
    "readabilityScore": number from 1-10,
    "targetAudience": [array of potential customer types],
    "emotionalAppeal": number from 1-10
  },
  "suggestions": {
    "improvedTitle": "SEO-optimized title",
    "improvedDescription": "enhanced product description (HTML allowed)",
    "keywords": [array of recommended keywords],
    "callToAction": "effective call to action"
  }
}"""


def describe_product(product: dict[str, Any]) -> tuple[str, str, str]:
    """Return the title, plain-text description and prompt summary for a product."""
    title = str(product.get("title") or "")
    description = strip_html(product.get("body_html") or "")
    variants = product.get("variants") or []
    price = variants[0].get("price") if variants and isinstance(variants[0], dict) else None
    summary = "\n".join(
        [
            f"Title: {title}",
            f"Description: {description}",
            f"Price: {price or 'N/A'}",
            f"Product Type: {product.get('product_type') or ''}",
            f"Tags: {product.get('tags') or ''}",
            f"Number of Images: {len(product.get('images') or [])}",
        ]
    )
    return title, description, summary


class ProductAnalyzer:
    def __init__(self, *, shopify_api: ShopifyApiClient, claude: ClaudeService) -> None:
        self._shopify_api = shopify_api
        self._claude = claude

    async def analyze_product(self, *, shop_domain: str, access_token: str, product_id: str) -> dict[str, Any]:
        product = await self._shopify_api.get_product(
            shop_domain=shop_domain,
            access_token=access_token,
            product_id=product_id,
        )
        title, description, summary = describe_product(product)
        try:
            reply = await self._claude.complete_json(
                system=ANALYSIS_SYSTEM_PROMPT,
                prompt=(
                    "Please analyze this Shopify product listing and provide detailed feedback "
                    f"with specific improvements:\n\n{summary}"
                ),
                max_tokens=ANALYSIS_MAX_TOKENS,
            )
        except ClaudeServiceError as exc:
            raise ClaudeServiceError(
                message=f"Failed to analyze product: {exc}",
                status_code=exc.status_code,
            ) from exc

        return {
            "original": {"title": title, "description": description},
            "analysis": reply.get("analysis") or {},
            "suggestions": reply.get("suggestions") or {},
        }

    async def apply_product_improvements(
        self,
        *,
        shop_domain: str,
        access_token: str,
        product_id: str,
        title: str | None = None,
        description: str | None = None,
        metafields: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if title:
            fields["title"] = title
        if description:
            fields["body_html"] = description
        try:
            await self._shopify_api.update_product(
                shop_domain=shop_domain,
                access_token=access_token,
                product_id=product_id,
                fields=fields,
            )
            for metafield in metafields or []:
                await self._shopify_api.create_product_metafield(
                    shop_domain=shop_domain,
                    access_token=access_token,
                    product_id=product_id,
                    metafield={
                        "namespace": metafield.get("namespace"),
                        "key": metafield.get("key"),
                        "value": metafield.get("value"),
                        "type": metafield.get("type"),
                    },
                )
        except ShopifyApiError as exc:
            logger.warning(
                "product_improvements_failed",
                extra={"shop_domain": shop_domain, "product_id": product_id, "error": str(exc)},
            )
            return {"success": False, "message": f"Failed to apply improvements: {exc}"}
        return {"success": True, "message": "Product improvements applied successfully"}
