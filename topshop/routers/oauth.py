from __future__ import annotations

import json
import logging
from datetime import timedelta
from urllib.parse import urlencode
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from topshop import deps
from topshop.config import settings
from topshop.db import get_session
from topshop.models import utcnow
from topshop.repositories import ConnectionRepository, OAuthStatesRepository, StoresRepository
from topshop.security import is_valid_shop_domain, normalize_shop_domain, verify_oauth_hmac, verify_webhook_hmac
from topshop.services.shopify_api import ShopifyApiError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shopify", tags=["oauth"])

UNINSTALL_WEBHOOK_TOPIC = "app/uninstalled"


def build_authorize_url(*, shop_domain: str, state: str) -> str:
    query = urlencode(
        {
            "client_id": settings.SHOPIFY_API_KEY,
            "scope": settings.SHOPIFY_APP_SCOPES,
            "redirect_uri": settings.oauth_callback_url,
            "state": state,
        }
    )
    return f"https://{shop_domain}/admin/oauth/authorize?{query}"


def _state_max_age() -> timedelta:
    return timedelta(seconds=settings.OAUTH_STATE_TTL_SECONDS)


@router.get("/auth")
def start_install(shop: str, host: str | None = None, session: Session = Depends(get_session)):
    shop_domain = normalize_shop_domain(shop)
    states = OAuthStatesRepository(session)
    states.purge_expired(_state_max_age())
    state = uuid4().hex
    states.create(state=state, shop_domain=shop_domain, host=host)
    logger.info("shopify_oauth_started", extra={"shop_domain": shop_domain})
    return RedirectResponse(url=build_authorize_url(shop_domain=shop_domain, state=state), status_code=302)


@router.get("/callback")
async def oauth_callback(request: Request, session: Session = Depends(get_session)):
    params = request.query_params
    shop = params.get("shop")
    code = params.get("code")
    state_value = params.get("state")
    if not shop or not code or not state_value or not params.get("hmac"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required parameters")

    shop_domain = normalize_shop_domain(shop)
    if not verify_oauth_hmac(list(params.multi_items())):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid HMAC signature")

    oauth_state = OAuthStatesRepository(session).consume(
        state=state_value,
        shop_domain=shop_domain,
        max_age=_state_max_age(),
    )
    if oauth_state is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid state parameter")

    try:
        access_token, scopes = await deps.shopify_api.exchange_code_for_access_token(
            shop_domain=shop_domain,
            code=code,
        )
        shop_info = await deps.shopify_api.get_shop_info(shop_domain=shop_domain, access_token=access_token)
    except ShopifyApiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    stores = StoresRepository(session)
    store = stores.get_by_domain(shop_domain)
    now = utcnow()
    if store is None:
        store = stores.create(
            shop_name=shop_domain,
            access_token=access_token,
            scope=scopes,
            is_connected=True,
            last_synced=now,
        )
    else:
        store = stores.update(
            store.id,
            access_token=access_token,
            scope=scopes,
            is_connected=True,
            last_synced=now,
            uninstalled_at=None,
        )
    ConnectionRepository(session).upsert(store_name=shop_domain, access_token=access_token, is_connected=True)
    logger.info(
        "shopify_store_installed",
        extra={"shop_domain": shop_domain, "store_id": store.id if store else None, "shop_name": shop_info.get("name")},
    )

    if settings.SHOPIFY_REGISTER_WEBHOOKS:
        try:
            await deps.shopify_api.register_webhook(
                shop_domain=shop_domain,
                access_token=access_token,
                topic=UNINSTALL_WEBHOOK_TOPIC,
                address=f"{settings.app_base_url}/shopify/webhooks/app-uninstalled",
            )
        except ShopifyApiError as exc:
            logger.warning("shopify_webhook_registration_failed", extra={"shop_domain": shop_domain, "error": str(exc)})

    query = {"shop": shop_domain}
    if oauth_state.host:
        query["host"] = oauth_state.host
    return RedirectResponse(url=f"{settings.POST_INSTALL_REDIRECT_PATH}?{urlencode(query)}", status_code=302)


@router.post("/webhooks/app-uninstalled")
async def app_uninstalled(request: Request, session: Session = Depends(get_session)) -> dict:
    raw_body = await request.body()
    if not verify_webhook_hmac(body=raw_body, supplied_hmac=request.headers.get("x-shopify-hmac-sha256")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body.decode("utf-8") or "{}")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook body must be JSON") from exc
    if not isinstance(payload, dict):
        payload = {}

    shop = payload.get("shop_domain") or payload.get("domain") or request.headers.get("x-shopify-shop-domain")
    if not isinstance(shop, str) or not is_valid_shop_domain(shop):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing shop domain")
    shop_domain = normalize_shop_domain(shop)

    stores = StoresRepository(session)
    store = stores.get_by_domain(shop_domain)
    if store is None:
        logger.warning("shopify_uninstall_unknown_shop", extra={"shop_domain": shop_domain})
        return {"received": True}

    stores.update(store.id, is_connected=False, uninstalled_at=utcnow())
    connections = ConnectionRepository(session)
    connection = connections.get()
    if connection is not None and connection.store_name == shop_domain:
        connections.update(is_connected=False)
    logger.info("shopify_store_uninstalled", extra={"shop_domain": shop_domain})
    return {"received": True}
