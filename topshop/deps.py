from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from topshop.db import get_session
from topshop.services.claude import ClaudeService
from topshop.services.dataforseo import DataForSeoService
from topshop.services.pexels import PexelsService
from topshop.services.product_analyzer import ProductAnalyzer
from topshop.services.publishing import PublishingService
from topshop.services.shopify_api import ShopifyApiClient

shopify_api = ShopifyApiClient()
claude = ClaudeService()
pexels = PexelsService()
dataforseo = DataForSeoService()
product_analyzer = ProductAnalyzer(shopify_api=shopify_api, claude=claude)


def get_publisher(session: Session = Depends(get_session)) -> PublishingService:
    return PublishingService(session, shopify_api=shopify_api, pexels=pexels)
