from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from topshop import deps
from topshop.config import settings
from topshop.db import get_session
from topshop.repositories import ConnectionRepository, OAuthStatesRepository, StoresRepository
from topshop.routers.oauth import build_authorize_url
from topshop.schemas import (
    DefaultBlogRequest,
    SyncRequest,
    UpsertConnectionRequest,
    serialize_connection,
    serialize_store,
)
from topshop.services.publishing import PublishingService
from topshop.services.shopify_api import ShopifyApiError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shopify", tags=["shopify"])


@router.get("/api-key")
def get_api_key() -> dict:
    return {"apiKey": settings.SHOPIFY_API_KEY}


@router.get("/reconnect")
def reconnect(host: str | None = None, session: Session = Depends(get_session)) -> dict:
    stores = StoresRepository(session).list()
    if not stores:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No connected store found")

    shop_domain = stores[0].shop_name
    state = uuid4().hex
    OAuthStatesRepository(session).create(state=state, shop_domain=shop_domain, host=host)
    return {"success": True, "authUrl": build_authorize_url(shop_domain=shop_domain, state=state)}


@router.get("/connection")
def get_connection(session: Session = Depends(get_session)) -> dict:
    return {"connection": serialize_connection(ConnectionRepository(session).get())}


@router.post("/connection")
async def upsert_connection(payload: UpsertConnectionRequest, session: Session = Depends(get_session)) -> dict:
    connection = ConnectionRepository(session).upsert(
        store_name=payload.storeName.strip(),
        access_token=payload.accessToken.strip(),
        default_blog_id=payload.defaultBlogId,
        is_connected=payload.isConnected,
    )
    if connection.is_connected:
        result = await deps.shopify_api.test_connection(
            shop_domain=connection.store_name,
            access_token=connection.access_token,
        )
        if not result["success"]:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to connect to Shopify API")
    return {"connection": serialize_connection(connection)}


@router.get("/store-info")
async def get_store_info(session: Session = Depends(get_session)) -> dict:
    connection = ConnectionRepository(session).get()
    if connection is None or not connection.is_connected:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active Shopify connection found")

    try:
        shop = await deps.shopify_api.get_shop_info(
            shop_domain=connection.store_name,
            access_token=connection.access_token,
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    return {
        "success": True,
        "shopInfo": {
            "name": shop.get("name"),
            "domain": shop.get("domain"),
            "email": shop.get("email"),
            "country": shop.get("country"),
            "currency": shop.get("currency"),
            "timezone": shop.get("timezone"),
            "iana_timezone": shop.get("iana_timezone"),
        },
    }


@router.get("/stores")
def list_stores(session: Session = Depends(get_session)) -> dict:
    return {"stores": [serialize_store(store) for store in StoresRepository(session).list()]}


@router.get("/store/{store_id}")
def get_store(store_id: int, session: Session = Depends(get_session)) -> dict:
    store = StoresRepository(session).get(store_id)
    if store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return {"store": serialize_store(store)}


@router.post("/disconnect")
def disconnect(session: Session = Depends(get_session)) -> dict:
    connection = ConnectionRepository(session).update(is_connected=False)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No connection found")
    logger.info("shopify_connection_disconnected", extra={"shop_domain": connection.store_name})
    return {"success": True, "connection": serialize_connection(connection)}


@router.get("/blogs")
async def list_blogs(session: Session = Depends(get_session)) -> dict:
    connection = ConnectionRepository(session).get()
    if connection is None or not connection.is_connected:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not connected to Shopify")
    try:
        blogs = await deps.shopify_api.get_blogs(
            shop_domain=connection.store_name,
            access_token=connection.access_token,
        )
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"blogs": blogs}


@router.post("/default-blog")
def set_default_blog(payload: DefaultBlogRequest, session: Session = Depends(get_session)) -> dict:
    connection = ConnectionRepository(session).update(default_blog_id=payload.blogId)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No connection found")
    return {"success": True, "connection": serialize_connection(connection)}


@router.post("/sync")
async def sync_posts(
    payload: SyncRequest | None = None,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    target = publisher.legacy_target()
    if target is None or not target.blog_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not properly connected to Shopify")

    posts = publisher.posts_to_sync(payload.postIds if payload else None)
    if not posts:
        return {"success": True, "syncedCount": 0, "message": "No posts to sync"}

    logger.info("shopify_sync_started", extra={"shop_domain": target.shop_domain, "posts": len(posts)})
    synced = await publisher.sync_posts(posts, target)
    return {"success": True, "syncedCount": synced}
