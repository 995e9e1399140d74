from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from topshop import deps
from topshop.db import get_session
from topshop.repositories import AuthorsRepository, PostsRepository, SyncActivitiesRepository
from topshop.schemas import serialize_activity, serialize_author
from topshop.services.claude import ClaudeServiceError
from topshop.services.pexels import PexelsApiError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dashboard"])

IMAGE_CACHE_CONTROL = "public, max-age=86400"


def fallback_topics(niche: str, count: int) -> list[str]:
    return [
        f"{niche} Best Practices",
        f"Top 10 {niche} Trends",
        f"How to Improve Your {niche} Strategy",
        f"{niche} for Beginners",
        f"Advanced {niche} Techniques",
        f"The Future of {niche}",
        f"{niche} Case Studies",
        f"{niche} Tools and Resources",
        f"{niche} vs Traditional Methods",
        f"{niche} ROI Calculation",
    ][:count]


@router.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "message": "Server is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/sync-activities")
def list_sync_activities(
    limit: int = Query(default=10, ge=1, le=200),
    session: Session = Depends(get_session),
) -> dict:
    activities = SyncActivitiesRepository(session).list(limit)
    return {"activities": [serialize_activity(activity) for activity in activities]}


@router.get("/topic-suggestions")
async def topic_suggestions(niche: str | None = None, count: int = Query(default=5, ge=1, le=10)) -> dict:
    if not niche or not niche.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Niche parameter is required")
    niche = niche.strip()

    prompt = (
        f"Generate {count} engaging, SEO-friendly blog topic ideas for a store in the '{niche}' niche. "
        "Return only a JSON array of strings."
    )
    try:
        topics = await deps.claude.generate_titles(prompt, "json")
    except ClaudeServiceError as exc:
        logger.warning("topic_suggestions_using_fallback", extra={"niche": niche, "error": str(exc)})
        topics = []
    if not topics:
        topics = fallback_topics(niche, count)
    return {"topics": topics[:count]}


@router.get("/stats")
def dashboard_stats(session: Session = Depends(get_session)) -> dict:
    stats = PostsRepository(session).stats()
    return {
        "totalPosts": stats.total_posts,
        "published": stats.published_posts,
        "scheduled": stats.scheduled_posts,
        "totalViews": stats.total_views,
    }


@router.get("/authors")
def list_authors(session: Session = Depends(get_session)) -> dict:
    return {"authors": [serialize_author(author) for author in AuthorsRepository(session).list_active()]}


@router.get("/proxy/image/{image_id}")
async def proxy_image(image_id: str) -> Response:
    url = await deps.pexels.resolve_image_url(image_id)
    if not url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    try:
        content, content_type = await deps.pexels.fetch_image_bytes(url)
    except PexelsApiError as exc:
        logger.warning("image_proxy_fetch_failed", extra={"image_id": image_id, "error": str(exc)})
        raise HTTPException(status_code=exc.status_code, detail="Failed to fetch image") from exc
    return Response(content=content, media_type=content_type, headers={"Cache-Control": IMAGE_CACHE_CONTROL})
