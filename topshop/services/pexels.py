from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any

import httpx
from pydantic import BaseModel

from topshop.config import settings

logger = logging.getLogger(__name__)

PEXELS_API_URL = "https://api.pexels.com/v1"
REGISTRY_LIMIT = 500
PLACEHOLDER_COLORS = (
    "555555",
    "666666",
    "777777",
    "888888",
    "999999",
    "aaaaaa",
    "bbbbbb",
    "cccccc",
    "dddddd",
    "eeeeee",
)


class PexelsApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


class PexelsImageSource(BaseModel):
    original: str
    large: str | None = None
    medium: str | None = None
    small: str | None = None
    thumbnail: str | None = None


class PexelsImage(BaseModel):
    id: str
    width: int
    height: int
    url: str
    src: PexelsImageSource
    photographer: str = ""
    photographer_url: str = ""
    alt: str = ""

    def best_url(self) -> str:
        """Largest rendition that stays under Shopify's image size limits."""
        return self.src.large or self.src.medium or self.src.small or self.src.original


def _photo_to_image(photo: dict[str, Any], *, default_alt: str) -> PexelsImage:
    src = photo.get("src") or {}
    return PexelsImage(
        id=str(photo["id"]),
        width=int(photo.get("width") or 0),
        height=int(photo.get("height") or 0),
        url=str(photo.get("url") or ""),
        src=PexelsImageSource(
            original=src.get("original") or "",
            large=src.get("large"),
            medium=src.get("medium"),
            small=src.get("small"),
            thumbnail=src.get("tiny"),
        ),
        photographer=photo.get("photographer") or "",
        photographer_url=photo.get("photographer_url") or "",
        alt=photo.get("alt") or default_alt,
    )


def _photos_to_images(photos: list[Any], *, default_alt: str) -> list[PexelsImage]:
    try:
        return [_photo_to_image(photo, default_alt=default_alt) for photo in photos]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise PexelsApiError(message=f"Pexels returned a malformed photo: {exc}") from exc


def fallback_images(count: int = 10) -> list[PexelsImage]:
    images: list[PexelsImage] = []
    for index in range(count):
        color = PLACEHOLDER_COLORS[index % len(PLACEHOLDER_COLORS)]
        full = f"https://placeholder.com/800x600/{color}"
        images.append(
            PexelsImage(
                id=f"fallback-{index}",
                width=800,
                height=600,
                url=full,
                src=PexelsImageSource(
                    original=full,
                    large=full,
                    medium=f"https://placeholder.com/600x400/{color}",
                    small=f"https://placeholder.com/400x300/{color}",
                    thumbnail=f"https://placeholder.com/200x150/{color}",
                ),
                photographer="Placeholder",
                photographer_url="https://placeholder.com",
                alt="Placeholder image",
            )
        )
    return images


class PexelsService:
    def __init__(self) -> None:
        self._timeout = settings.PEXELS_TIMEOUT_SECONDS
        # Images seen through search or lookup, keyed by Pexels id, oldest first.
        self._registry: OrderedDict[str, PexelsImage] = OrderedDict()

    def has_valid_api_key(self) -> bool:
        return bool(settings.PEXELS_API_KEY)

    def remember(self, images: list[PexelsImage]) -> None:
        for image in images:
            if image.id.startswith("fallback-"):
                continue
            self._registry[image.id] = image
            self._registry.move_to_end(image.id)
        while len(self._registry) > REGISTRY_LIMIT:
            self._registry.popitem(last=False)

    async def search_images(self, query: str, count: int = 10) -> list[PexelsImage]:
        body = await self._get_json(
            "/search",
            params={"query": query, "per_page": count, "orientation": "landscape"},
        )
        images = _photos_to_images(self._photos(body), default_alt=query)
        logger.info("pexels_search", extra={"query": query, "results": len(images)})
        self.remember(images)
        return images

    async def get_curated_images(self, count: int = 5) -> list[PexelsImage]:
        body = await self._get_json("/curated", params={"per_page": count})
        images = _photos_to_images(self._photos(body), default_alt="Curated image from Pexels")
        self.remember(images)
        return images

    async def get_image_by_id(self, image_id: str) -> PexelsImage | None:
        try:
            photo = await self._get_json(f"/photos/{image_id}")
            image = _photos_to_images([photo], default_alt=f"Pexels image {image_id}")[0]
        except PexelsApiError as exc:
            logger.warning("pexels_image_lookup_failed", extra={"image_id": image_id, "error": str(exc)})
            return None
        self.remember([image])
        return image

    async def get_images_by_ids(self, ids: list[str]) -> list[PexelsImage]:
        unique_ids = list(dict.fromkeys(str(image_id) for image_id in ids))
        images: list[PexelsImage] = []
        for image_id in unique_ids:
            image = self._registry.get(image_id) or await self.get_image_by_id(image_id)
            if image is not None:
                images.append(image)
        logger.info("pexels_images_by_id", extra={"requested": len(unique_ids), "found": len(images)})
        return images

    async def safe_search_images(self, query: str, count: int = 10) -> tuple[list[PexelsImage], bool]:
        """Search Pexels, substituting placeholder images when the call fails."""
        try:
            return await self.search_images(query, count), False
        except PexelsApiError as exc:
            logger.warning("pexels_search_failed_using_fallback", extra={"query": query, "error": str(exc)})
            return fallback_images(count), True

    async def resolve_image_url(self, image_id: str) -> str | None:
        image = self._registry.get(image_id) or await self.get_image_by_id(image_id)
        if image is None:
            return None
        return image.best_url() or None

    async def fetch_image_bytes(self, url: str) -> tuple[bytes, str]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.RequestError as exc:
            raise PexelsApiError(message=f"Network error while fetching image: {exc}") from exc
        if response.status_code >= 400:
            raise PexelsApiError(message=f"Image fetch failed ({response.status_code})")
        return response.content, response.headers.get("content-type") or "image/jpeg"

    async def test_connection(self) -> dict[str, Any]:
        if not self.has_valid_api_key():
            return {"success": False, "message": "Pexels API key not set"}
        try:
            await self.get_curated_images(1)
        except PexelsApiError as exc:
            return {"success": False, "message": f"Failed to connect to Pexels API: {exc}"}
        return {"success": True, "message": "Successfully connected to Pexels API"}

    @staticmethod
    def _photos(body: dict[str, Any]) -> list[dict[str, Any]]:
        photos = body.get("photos")
        if not isinstance(photos, list):
            raise PexelsApiError(message="Pexels response is missing photos")
        return photos

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.has_valid_api_key():
            raise PexelsApiError(message="No Pexels API key found", status_code=503)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{PEXELS_API_URL}{path}",
                    params=params,
                    headers={"Authorization": settings.PEXELS_API_KEY or ""},
                )
        except httpx.RequestError as exc:
            raise PexelsApiError(message=f"Network error while calling Pexels: {exc}") from exc

        if response.status_code >= 400:
            raise PexelsApiError(message=f"Pexels API call failed ({response.status_code}): {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise PexelsApiError(message="Pexels API returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise PexelsApiError(message="Pexels API response must be a JSON object")
        return body
