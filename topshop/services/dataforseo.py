from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from topshop.config import settings

logger = logging.getLogger(__name__)

DATAFORSEO_API_URL = "https://api.dataforseo.com"
RELATED_KEYWORDS_PATH = "/v3/dataforseo_labs/google/related_keywords/live"
DEFAULT_LOCATION_CODE = 2840
MAX_KEYWORDS = 50
OK_STATUS_CODE = 20000

# id -> (display name, DataForSEO location code)
REGIONS: dict[str, tuple[str, int]] = {
    "us": ("United States", 2840),
    "gb": ("United Kingdom", 2826),
    "ca": ("Canada", 2124),
    "au": ("Australia", 2036),
    "nz": ("New Zealand", 2554),
    "ie": ("Ireland", 2372),
    "in": ("India", 2356),
    "de": ("Germany", 2276),
    "fr": ("France", 2250),
    "es": ("Spain", 2724),
    "it": ("Italy", 2380),
    "nl": ("Netherlands", 2528),
}

_MODIFIER_RE = re.compile(r"\b(best|top|cheap|affordable|review|guide|how to)\b", re.IGNORECASE)
_BRAND_RE = re.compile(r"\b(amazon|walmart|target|sephora|ulta|nike|apple)\b", re.IGNORECASE)


class DataForSeoError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class KeywordData:
    keyword: str
    searchVolume: int
    competition: str
    difficulty: int
    selected: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def location_code_for_region(region: str | None) -> int:
    entry = REGIONS.get((region or "").lower())
    return entry[1] if entry else DEFAULT_LOCATION_CODE


def list_regions() -> list[dict[str, str]]:
    return [{"id": region_id, "name": name} for region_id, (name, _) in REGIONS.items()]


def parse_credentials(raw: str | None) -> tuple[str, str]:
    value = (raw or "").strip()
    if ":" in value:
        login, password = value.split(":", 1)
        return login, password
    return value, value


def clean_keyword_string(value: str) -> str:
    cleaned = re.sub(r"[®™©℠]", "", value)
    cleaned = re.sub(r"\[.*?\]|\(.*?\)", "", cleaned)
    cleaned = re.sub(r"[\[\]{}|<>]", " ", cleaned)
    cleaned = re.sub(r"^\d+\s*[.:)]\s*", "", cleaned)
    cleaned = re.sub(r"\b\d{5,}\b", "", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip().lower()
    return cleaned or value.strip().lower()


def estimate_competition(keyword: str) -> tuple[str, int]:
    """Competition level and difficulty for a keyword with no measured data."""
    word_count = len(keyword.split(" "))
    has_modifiers = bool(_MODIFIER_RE.search(keyword))
    is_brand = bool(_BRAND_RE.search(keyword))

    if word_count >= 4 or len(keyword) > 25:
        competition, difficulty = "LOW", 24
    elif word_count == 3 or has_modifiers:
        competition, difficulty = "MEDIUM", 44
    elif word_count <= 2 and not is_brand:
        competition, difficulty = "HIGH", 79
    else:
        competition, difficulty = "MEDIUM", 37

    if is_brand:
        competition, difficulty = "HIGH", min(99, difficulty + 20)
    return competition, difficulty


def _item_metrics(item: dict[str, Any]) -> tuple[int, str, int]:
    for source_key in ("keyword_data", "seed_keyword_data"):
        source = item.get(source_key)
        if isinstance(source, dict) and source.get("search_volume"):
            return (
                int(source["search_volume"]),
                source.get("competition_level") or "LOW",
                int(source.get("keyword_difficulty") or 0),
            )
    return 0, "LOW", 0


def keywords_from_items(items: list[dict[str, Any]]) -> list[KeywordData]:
    keywords: list[KeywordData] = []
    for item_index, item in enumerate(items):
        related = item.get("related_keywords")
        if not isinstance(related, list):
            continue
        search_volume, competition, difficulty = _item_metrics(item)
        for keyword_index, keyword in enumerate(related):
            if search_volume > 0:
                volume = max(50, search_volume - keyword_index * 50)
            else:
                base_volume = max(500, 1500 - item_index * 100)
                volume = max(50, base_volume - keyword_index * 30)

            keyword_competition, keyword_difficulty = competition, difficulty
            if competition == "LOW" and difficulty == 0:
                keyword_competition, keyword_difficulty = estimate_competition(str(keyword))

            keywords.append(
                KeywordData(
                    keyword=str(keyword),
                    searchVolume=volume,
                    competition=keyword_competition,
                    difficulty=keyword_difficulty,
                )
            )

    keywords = [keyword for keyword in keywords if keyword.searchVolume > 0][:MAX_KEYWORDS]
    keywords.sort(key=lambda keyword: keyword.searchVolume, reverse=True)
    return keywords


class DataForSeoService:
    def __init__(self) -> None:
        self._timeout = settings.DATAFORSEO_TIMEOUT_SECONDS
        self._login, self._password = parse_credentials(settings.DATAFORSEO_API_KEY)

    def has_valid_credentials(self) -> bool:
        return bool(self._login) and bool(self._password)

    async def search_related_keywords(
        self, keyword: str, location_code: int = DEFAULT_LOCATION_CODE
    ) -> list[KeywordData]:
        if not self.has_valid_credentials():
            raise DataForSeoError(
                message="DataForSEO API credentials not configured. Please provide valid credentials.",
                status_code=503,
            )

        cleaned = clean_keyword_string(keyword)
        payload = [
            {
                "keyword": cleaned,
                "language_code": "en",
                "location_code": location_code,
                "limit": MAX_KEYWORDS,
                "include_seed_keyword": True,
            }
        ]
        body = await self._post_json(RELATED_KEYWORDS_PATH, payload)

        tasks = body.get("tasks") or []
        result = tasks[0].get("result") if tasks and isinstance(tasks[0], dict) else None
        if body.get("status_code") != OK_STATUS_CODE or not result:
            logger.warning(
                "dataforseo_related_keywords_empty",
                extra={"keyword": cleaned, "status_code": body.get("status_code"), "message": body.get("status_message")},
            )
            return []

        items = (result[0] or {}).get("items") or []
        keywords = keywords_from_items(items)
        logger.info("dataforseo_related_keywords", extra={"keyword": cleaned, "results": len(keywords)})
        return keywords

    async def test_connection(self) -> bool:
        if not self.has_valid_credentials():
            return False
        try:
            await self.search_related_keywords("test")
        except DataForSeoError as exc:
            logger.warning("dataforseo_connection_test_failed", extra={"error": str(exc)})
            return False
        return True

    async def _post_json(self, path: str, payload: list[dict[str, Any]]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{DATAFORSEO_API_URL}{path}",
                    json=payload,
                    auth=httpx.BasicAuth(self._login, self._password),
                )
        except httpx.RequestError as exc:
            raise DataForSeoError(message=f"Network error while calling DataForSEO: {exc}") from exc

        if response.status_code == 401:
            raise DataForSeoError(
                message="DataForSEO API authentication failed. Please check your API credentials.",
                status_code=401,
            )
        if response.status_code == 402:
            raise DataForSeoError(
                message="DataForSEO API insufficient credits. Please check your account balance.",
                status_code=402,
            )
        if response.status_code >= 400:
            raise DataForSeoError(message=f"DataForSEO API call failed ({response.status_code}): {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise DataForSeoError(message="DataForSEO API returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise DataForSeoError(message="DataForSEO API response must be a JSON object")
        return body
