from __future__ import annotations

import base64
import hashlib
import hmac
import re
from collections.abc import Sequence
from urllib.parse import urlsplit

from fastapi import Header, HTTPException, status

from topshop.config import settings

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")
# OAuth callbacks sign every query parameter except these two
_UNSIGNED_OAUTH_PARAMS = frozenset({"hmac", "signature"})


def _bare_domain(shop: str) -> str:
    value = shop.strip().lower()
    if "://" in value:
        value = urlsplit(value).netloc
    return value.split("/", 1)[0]


def is_valid_shop_domain(shop: str | None) -> bool:
    if not shop:
        return False
    return bool(_SHOP_DOMAIN_RE.fullmatch(_bare_domain(shop)))


def normalize_shop_domain(shop: str) -> str:
    """Accept ``my-shop.myshopify.com`` or a pasted admin URL and return the bare domain."""
    domain = _bare_domain(shop)
    if not _SHOP_DOMAIN_RE.fullmatch(domain):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="shop must be a valid *.myshopify.com domain",
        )
    return domain


def _app_signature(message: bytes) -> bytes:
    return hmac.new(settings.SHOPIFY_API_SECRET.encode("utf-8"), message, hashlib.sha256).digest()


def verify_oauth_hmac(query_items: Sequence[tuple[str, str]]) -> bool:
    supplied = next((value for key, value in query_items if key == "hmac"), None)
    if not supplied:
        return False
    signed = sorted((key, value) for key, value in query_items if key not in _UNSIGNED_OAUTH_PARAMS)
    message = "&".join(f"{key}={value}" for key, value in signed)
    return hmac.compare_digest(_app_signature(message.encode("utf-8")).hex(), supplied)


def verify_webhook_hmac(*, body: bytes, supplied_hmac: str | None) -> bool:
    if not supplied_hmac:
        return False
    encoded = base64.b64encode(_app_signature(body)).decode("utf-8")
    return hmac.compare_digest(encoded, supplied_hmac)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_admin_api_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    """Guard for ``/api/admin``; open when ``ADMIN_API_TOKEN`` is unset."""
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        return
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer authorization header",
        )
    if not hmac.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API token",
        )
