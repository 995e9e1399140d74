from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from html import escape

TOC_MARKER = "<!-- TABLE_OF_CONTENTS_PLACEMENT -->"
VIDEO_MARKER = "<!-- YOUTUBE_VIDEO_PLACEMENT_MARKER -->"
SECONDARY_IMAGE_MARKER = "<!-- SECONDARY_IMAGE_PLACEMENT_MARKER -->"

MAX_BODY_HTML_LENGTH = 65000
TRUNCATED_BODY_HTML_LENGTH = 60000
MAX_TITLE_LENGTH = 255

_H1_RE = re.compile(r"<h1[^>]*>.*?</h1>", re.IGNORECASE | re.DOTALL)
_H2_WITH_ID_RE = re.compile(r"""<h2[^>]*id=["']([^"']+)["'][^>]*>(.*?)</h2>""", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_YOUTUBE_ID_RE = re.compile(r"(?:youtu\.be/|youtube\.com/(?:embed/|v/|watch\?v=|watch\?.+&v=))([^&?]+)")
_IMAGE_SRC_RE = re.compile(r'src="([^"]*?\.(?:jpg|jpeg|png|webp)[^"]*?)"', re.IGNORECASE)
_PROXY_IMAGE_RE = re.compile(r'src="/api/proxy/image/(\d+)"')


@dataclass(frozen=True)
class ContentImage:
    url: str
    alt: str = ""


def remove_h1_tags(content: str) -> str:
    return _H1_RE.sub("", content)


def strip_html(value: str) -> str:
    return " ".join(_TAG_RE.sub(" ", value).split())


def add_table_of_contents(content: str) -> str:
    if TOC_MARKER not in content:
        return content

    headings = [
        (heading_id, _TAG_RE.sub("", title).strip())
        for heading_id, title in _H2_WITH_ID_RE.findall(content)
    ]
    if not headings:
        return content.replace(TOC_MARKER, "", 1)

    items = "".join(
        f'<li style="margin: 8px 0;"><a href="#{escape(heading_id)}" '
        f'style="color: #007bff; text-decoration: none; font-weight: 500;">{title}</a></li>'
        for heading_id, title in headings
    )
    toc_html = (
        '\n<div class="table-of-contents" style="background: #f8f9fa; border: 1px solid #e9ecef; '
        'border-radius: 8px; padding: 20px; margin: 20px 0;">\n'
        '  <h3 style="margin-top: 0; color: #495057; font-size: 18px; font-weight: 600;">'
        "Table of Contents</h3>\n"
        f'  <ol style="margin: 0; padding: 0 0 0 20px; line-height: 1.6;">{items}</ol>\n'
        "</div>"
    )
    return content.replace(TOC_MARKER, toc_html, 1)


def extract_youtube_id(url: str | None) -> str | None:
    if not url:
        return None
    match = _YOUTUBE_ID_RE.search(url)
    return match.group(1) if match else None


def _video_html(video_id: str) -> str:
    return (
        '\n<div style="margin: 20px 0; text-align: center;">\n'
        f'  <iframe width="560" height="315" src="https://www.youtube.com/embed/{escape(video_id)}" '
        'frameborder="0" allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; '
        'picture-in-picture" allowfullscreen style="max-width: 100%; border-radius: 8px;"></iframe>\n'
        "</div>"
    )


def _secondary_image_html(image: ContentImage, product_link: str | None) -> str:
    img = (
        f'<img src="{escape(image.url)}" alt="{escape(image.alt)}" '
        'style="max-width: 100%; height: auto; border-radius: 8px;" />'
    )
    caption = (
        f'\n  <p style="margin-top: 8px; font-style: italic; color: #666; font-size: 14px;">{escape(image.alt)}</p>'
        if image.alt
        else ""
    )
    if product_link is None:
        return f'\n<div style="margin: 20px 0; text-align: center;">\n  {img}{caption}\n</div>'

    href = f"/products/{escape(product_link)}"
    return (
        '\n<div style="margin: 20px 0; text-align: center;">\n'
        f'  <a href="{href}" title="View Product Details" style="text-decoration: none;">{img}</a>'
        f"{caption}\n"
        f'  <p style="margin-top: 4px; font-size: 12px;"><a href="{href}" '
        'style="color: #2563eb; text-decoration: none; font-weight: 500;">View Product Details</a></p>\n'
        "</div>"
    )


def process_media_placements(
    content: str,
    *,
    youtube_embed: str | None = None,
    secondary_images: Sequence[ContentImage] = (),
    product_links: Sequence[str] = (),
) -> str:
    processed = content

    video_id = extract_youtube_id(youtube_embed)
    if video_id:
        processed = processed.replace(VIDEO_MARKER, _video_html(video_id), 1)
    processed = processed.replace(VIDEO_MARKER, "")

    available_markers = processed.count(SECONDARY_IMAGE_MARKER)
    used_urls: set[str] = set()
    for index, image in enumerate(secondary_images[:available_markers]):
        if image.url in used_urls:
            continue
        used_urls.add(image.url)
        product_link = product_links[index % len(product_links)] if product_links else None
        processed = processed.replace(SECONDARY_IMAGE_MARKER, _secondary_image_html(image, product_link), 1)

    return processed.replace(SECONDARY_IMAGE_MARKER, "")


def _downsize_image_src(match: re.Match[str]) -> str:
    full, url = match.group(0), match.group(1)
    if "cdn.shopify.com" in url and "large" in url:
        return full.replace("large", "medium", 1)
    if "images.pexels.com" in url and "original" in url:
        return full.replace("original", "large", 1)
    return full


def rewrite_image_urls(body_html: str) -> str:
    """Swap oversized CDN renditions for ones under Shopify's 25 megapixel limit."""
    return _IMAGE_SRC_RE.sub(_downsize_image_src, body_html)


def truncate_body_html(body_html: str) -> str:
    if len(body_html) > MAX_BODY_HTML_LENGTH:
        return body_html[:TRUNCATED_BODY_HTML_LENGTH] + "...</p>"
    return body_html


def truncate_title(title: str) -> str:
    if len(title) > MAX_TITLE_LENGTH:
        return title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def slugify_handle(title: str | None) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", (title or "").lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "untitled"


def proxy_image_ids(content: str) -> list[str]:
    seen: list[str] = []
    for image_id in _PROXY_IMAGE_RE.findall(content):
        if image_id not in seen:
            seen.append(image_id)
    return seen


def replace_proxy_image_urls(content: str, resolved: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        url = resolved.get(match.group(1))
        return f'src="{url}"' if url else match.group(0)

    return _PROXY_IMAGE_RE.sub(_replace, content)
