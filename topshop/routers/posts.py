from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, status

from topshop import deps
from topshop.repositories import PostsRepository
from topshop.schemas import CreatePostRequest, UpdatePostRequest, post_columns, serialize_post
from topshop.services.publishing import PublishingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])

MISSING_SCHEDULE_DETAIL = "A scheduled post must include scheduledPublishDate and scheduledPublishTime fields"


@router.get("")
def list_posts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    repo = PostsRepository(publisher.session)
    total = repo.count()
    posts = repo.list(limit=limit, offset=(page - 1) * limit)
    return {
        "posts": [serialize_post(post) for post in posts],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit),
        },
    }


@router.get("/recent")
def recent_posts(
    limit: int = Query(default=5, ge=1, le=100),
    storeId: int | None = None,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    repo = PostsRepository(publisher.session)
    posts = repo.list_recent_for_store(storeId, limit) if storeId is not None else repo.list_recent(limit)
    return {"posts": [serialize_post(post) for post in posts]}


@router.get("/scheduled")
def scheduled_posts(publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    return {"posts": [serialize_post(post) for post in PostsRepository(publisher.session).list_scheduled()]}


@router.get("/published")
def published_posts(publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    return {"posts": [serialize_post(post) for post in PostsRepository(publisher.session).list_published()]}


@router.get("/{post_id}")
def get_post(post_id: int, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    post = PostsRepository(publisher.session).get(post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return {"post": serialize_post(post)}


@router.post("")
async def create_post(
    payload: CreatePostRequest,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    columns = post_columns(payload)
    columns["status"] = payload.status
    if payload.status == "scheduled":
        if not payload.scheduledPublishDate or not payload.scheduledPublishTime:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_SCHEDULE_DETAIL)
        scheduled_date = await publisher.compute_scheduled_date(
            store_id=payload.storeId,
            scheduled_publish_date=payload.scheduledPublishDate,
            scheduled_publish_time=payload.scheduledPublishTime,
        )
        if scheduled_date is not None:
            columns["scheduled_date"] = scheduled_date

    post = PostsRepository(publisher.session).create(**columns)
    logger.info("post_created", extra={"post_id": post.id, "status": post.status})
    post = await publisher.publish_post(post)
    return {"post": serialize_post(post)}


@router.put("/{post_id}")
async def update_post(
    post_id: int,
    payload: UpdatePostRequest,
    publisher: PublishingService = Depends(deps.get_publisher),
) -> dict:
    repo = PostsRepository(publisher.session)
    existing = repo.get(post_id)
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    previous_status = existing.status

    columns = post_columns(payload)
    next_status = columns.get("status") or existing.status
    if next_status == "scheduled":
        publish_date = columns.get("scheduled_publish_date", existing.scheduled_publish_date)
        publish_time = columns.get("scheduled_publish_time", existing.scheduled_publish_time)
        if not publish_date or not publish_time:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_SCHEDULE_DETAIL)
        schedule_changed = (
            previous_status != "scheduled"
            or "scheduled_publish_date" in columns
            or "scheduled_publish_time" in columns
        )
        if schedule_changed and "scheduled_date" not in columns:
            scheduled_date = await publisher.compute_scheduled_date(
                store_id=columns.get("store_id", existing.store_id),
                scheduled_publish_date=publish_date,
                scheduled_publish_time=publish_time,
            )
            if scheduled_date is not None:
                columns["scheduled_date"] = scheduled_date

    post = repo.update(post_id, **columns)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    post = await publisher.update_remote_post(post, previous_status=previous_status)
    return {"post": serialize_post(post)}


@router.delete("/{post_id}")
async def delete_post(post_id: int, publisher: PublishingService = Depends(deps.get_publisher)) -> dict:
    repo = PostsRepository(publisher.session)
    post = repo.get(post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    await publisher.delete_remote_post(post)
    repo.delete(post_id)
    logger.info("post_deleted", extra={"post_id": post_id})
    return {"success": True}
