from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from topshop.config import settings
from topshop.content_html import (
    ContentImage,
    add_table_of_contents,
    process_media_placements,
    remove_h1_tags,
)
from topshop.json_extract import extract_blog_content, extract_first_json_object, extract_titles

logger = logging.getLogger(__name__)

TITLES_MAX_TOKENS = 2000
TEST_MAX_TOKENS = 50


class ClaudeServiceError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class BlogContentRequest:
    topic: str
    tone: str
    length: str
    custom_prompt: str | None = None
    content_style_tone_id: str | None = None
    content_style_display_name: str | None = None
    primary_image: ContentImage | None = None
    secondary_images: list[ContentImage] = field(default_factory=list)
    youtube_embed: str | None = None
    product_links: list[str] = field(default_factory=list)

    @property
    def tone_style(self) -> str:
        return self.content_style_display_name or self.tone


def describe_length(length: str) -> str:
    lowered = (length or "").lower()
    if "short" in lowered:
        return "approximately 500-700 words"
    if "long" in lowered:
        return "approximately 1500-2000 words"
    return "approximately 800-1000 words"


_STRUCTURE_RULES = """
The blog post MUST follow this structure:
1. A compelling title with the main topic and primary keywords (returned separately)
2. At least 3-4 sections with descriptive, keyword-rich H2 headings
3. H3 subheadings inside sections where useful
4. 2-4 paragraphs per section
5. HTML formatting throughout (h2, h3, p, ul, li, table)
6. Lists and tables where they improve readability
7. A conclusion with a clear call to action

CONTENT RULES:
- Do not put the title in an H1; the platform renders it
- Start with the table of contents marker, then the introduction
- Make the first sentence of the introduction bold with <strong> and add <br> after each intro sentence
- Include a meta description of 155-160 characters with at least 2 primary keywords
- Do not compare competitor products or prices

MEDIA PLACEMENT:
- Under the SECOND H2 heading only, add: <!-- YOUTUBE_VIDEO_PLACEMENT_MARKER -->
- Under each later H2 heading, add: <!-- SECONDARY_IMAGE_PLACEMENT_MARKER -->
- Never repeat a marker under the same heading

TABLE OF CONTENTS:
- Put <!-- TABLE_OF_CONTENTS_PLACEMENT --> at the very start of the content
- Give every H2 a unique, lowercase, hyphenated id attribute (e.g. <h2 id="benefits">Benefits</h2>)
- Use id="faq" on the FAQ section if present

FAQ FORMAT:
- <h3>Q: Question here?</h3><p>A: Answer here.</p>

LINKS AND IMAGES:
- No external links except .gov, .edu or wikipedia.org references
- No image URLs or placeholders other than the markers above; images are inserted automatically

Also suggest 5-7 relevant tags focused on SEO value and search intent."""

_JSON_REPLY_INSTRUCTION = """

Return the response in JSON format with this structure:
{
  "title": "The title of the blog post",
  "content": "The complete HTML content of the blog post",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
  "metaDescription": "A 155-160 character meta description with keywords"
}

Do not explain your process, just return the JSON."""


def _media_summary(request: BlogContentRequest) -> str:
    lines: list[str] = []
    if request.primary_image:
        lines.append("SELECTED PRIMARY IMAGE: a featured image has been chosen and is positioned automatically.")
    if request.secondary_images:
        lines.append(
            f"SELECTED SECONDARY IMAGES: {len(request.secondary_images)} images will be placed "
            "under H2 headings after the video."
        )
    if request.youtube_embed:
        lines.append("SELECTED YOUTUBE VIDEO: it will be placed under the second H2 heading.")
    return "".join(f"\n{line}" for line in lines)


def _media_details(request: BlogContentRequest) -> str:
    if not (request.primary_image or request.secondary_images or request.youtube_embed):
        return ""
    parts = ["\n\nSELECTED MEDIA CONTEXT:"]
    if request.primary_image:
        parts.append(
            f'\nPRIMARY/FEATURED IMAGE: "{request.primary_image.alt}" ({request.primary_image.url})'
            "\n- Reference this image in the introduction"
        )
    if request.secondary_images:
        parts.append(f"\nSECONDARY IMAGES ({len(request.secondary_images)} selected):")
        for index, image in enumerate(request.secondary_images, start=1):
            parts.append(f'\n{index}. "{image.alt}" ({image.url})')
        parts.append("\n- These go under H2 headings after the video")
    if request.youtube_embed:
        parts.append(
            f"\nYOUTUBE VIDEO: {request.youtube_embed}"
            "\n- Use <!-- YOUTUBE_VIDEO_PLACEMENT_MARKER --> under the second H2 heading only"
        )
    parts.append("\n\nStructure the content so these media placements flow naturally.")
    return "".join(parts)


def build_blog_prompt(request: BlogContentRequest) -> str:
    persona = (
        f" Write this content in the style of {request.content_style_display_name}."
        if request.content_style_display_name
        else ""
    )
    prompt = (
        f"Generate a well-structured, SEO-optimized blog post about {request.topic} "
        f"in a {request.tone_style} tone, {describe_length(request.length)}.{persona}"
        f"{_media_summary(request)}\n{_STRUCTURE_RULES}{_media_details(request)}"
    )
    if request.custom_prompt:
        custom = request.custom_prompt.replace("[TOPIC]", request.topic)
        prompt += (
            "\n\nIMPORTANT: Follow these specific instructions for the content:\n"
            f"{custom}\n\n"
            f"The content must address these instructions while keeping a {request.tone_style} tone "
            "and proper blog structure."
        )
    return prompt + _JSON_REPLY_INSTRUCTION


def build_system_prompt(request: BlogContentRequest) -> str | None:
    if not request.content_style_tone_id:
        return None
    return (
        f"Act as the selected copywriter: {request.tone_style}. You are a professional content writer "
        "who specializes in this style and tone. Embody the persona, writing patterns and expertise "
        "of this copywriter type throughout the content."
    )


class ClaudeService:
    def __init__(self) -> None:
        self._model = settings.CLAUDE_MODEL
        self._max_tokens = settings.CLAUDE_MAX_TOKENS
        self._client: AsyncAnthropic | None = None

    def _get_client(self) -> AsyncAnthropic:
        if not settings.ANTHROPIC_API_KEY:
            raise ClaudeServiceError(message="ANTHROPIC_API_KEY is not configured", status_code=503)
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=settings.CLAUDE_TIMEOUT_SECONDS,
            )
        return self._client

    async def _complete(self, *, prompt: str, max_tokens: int, system: str | None = None) -> str:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise ClaudeServiceError(message=f"Claude API call failed: {exc}") from exc
        text_parts = [content.text for content in response.content if getattr(content, "text", None)]
        return "".join(text_parts)

    async def generate_blog_content(self, request: BlogContentRequest) -> dict[str, Any]:
        logger.info(
            "claude_generate_blog_content",
            extra={"topic": request.topic, "content_style": request.content_style_tone_id},
        )
        try:
            reply = await self._complete(
                prompt=build_blog_prompt(request),
                max_tokens=self._max_tokens,
                system=build_system_prompt(request),
            )
        except ClaudeServiceError as exc:
            raise ClaudeServiceError(
                message=f"Failed to generate content with Claude: {exc}",
                status_code=exc.status_code,
            ) from exc

        payload = extract_blog_content(reply)
        content = remove_h1_tags(payload["content"])
        content = add_table_of_contents(content)
        content = process_media_placements(
            content,
            youtube_embed=request.youtube_embed,
            secondary_images=request.secondary_images,
            product_links=request.product_links,
        )
        payload["content"] = content
        return payload

    async def generate_titles(self, prompt: str, response_format: str | None = None) -> list[str]:
        try:
            reply = await self._complete(prompt=prompt, max_tokens=TITLES_MAX_TOKENS)
        except ClaudeServiceError as exc:
            raise ClaudeServiceError(
                message=f"Failed to generate titles with Claude: {exc}",
                status_code=exc.status_code,
            ) from exc
        return extract_titles(reply, response_format)

    async def complete_json(self, *, system: str, prompt: str, max_tokens: int = 4000) -> dict[str, Any]:
        reply = await self._complete(prompt=prompt, max_tokens=max_tokens, system=system)
        try:
            return extract_first_json_object(reply)
        except ValueError as exc:
            raise ClaudeServiceError(message=f"Claude returned an unparseable JSON reply: {exc}") from exc

    async def test_connection(self) -> dict[str, Any]:
        try:
            reply = await self._complete(
                prompt='Hello, please respond with "Claude API is connected successfully!" if you receive this message.',
                max_tokens=TEST_MAX_TOKENS,
            )
        except ClaudeServiceError as exc:
            logger.warning("claude_connection_test_failed", extra={"error": str(exc)})
            return {"success": False, "message": str(exc)}
        return {"success": True, "message": reply.strip()}
