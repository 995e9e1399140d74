from __future__ import annotations

from fastapi import APIRouter, HTTPException

from topshop import deps
from topshop.content_html import ContentImage
from topshop.schemas import ClaudeGenerateRequest, ClaudeTitlesRequest, ImageRef
from topshop.services.claude import BlogContentRequest, ClaudeServiceError

router = APIRouter(prefix="/claude", tags=["claude"])


def _image(ref: ImageRef | None) -> ContentImage | None:
    return ContentImage(url=ref.url, alt=ref.alt) if ref else None


@router.post("/generate")
async def generate_content(payload: ClaudeGenerateRequest) -> dict:
    request = BlogContentRequest(
        topic=payload.topic,
        tone=payload.tone,
        length=payload.length,
        custom_prompt=payload.customPrompt,
        content_style_tone_id=payload.contentStyleToneId,
        content_style_display_name=payload.contentStyleDisplayName,
        primary_image=_image(payload.primaryImage),
        secondary_images=[ContentImage(url=image.url, alt=image.alt) for image in payload.secondaryImages],
        youtube_embed=payload.youtubeEmbed,
        product_links=payload.productIds,
    )
    try:
        generated = await deps.claude.generate_blog_content(request)
    except ClaudeServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"success": True, **generated}


@router.post("/titles")
async def generate_titles(payload: ClaudeTitlesRequest) -> dict:
    try:
        titles = await deps.claude.generate_titles(payload.prompt, payload.responseFormat)
    except ClaudeServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"titles": titles}


@router.get("/test")
async def test_claude() -> dict:
    return await deps.claude.test_connection()
