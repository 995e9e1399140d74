from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from topshop.models import Author, BlogPost, Project, ShopifyConnection, ShopifyStore, SyncActivity

logger = logging.getLogger(__name__)

PostStatus = Literal["draft", "published", "scheduled"]
ContentType = Literal["post", "page"]


class PostResponse(BaseModel):
    id: int
    title: str
    content: str
    summary: str | None = None
    category: str | None = None
    categories: str | None = None
    tags: str | None = None
    status: str
    contentType: str
    publishedDate: datetime | None = None
    scheduledDate: datetime | None = None
    scheduledPublishDate: str | None = None
    scheduledPublishTime: str | None = None
    views: int = 0
    featuredImage: str | None = None
    shopifyPostId: str | None = None
    shopifyBlogId: str | None = None
    storeId: int | None = None
    author: str | None = None
    authorId: int | None = None
    createdAt: datetime
    updatedAt: datetime


class PostFields(BaseModel):
    content: str | None = None
    summary: str | None = None
    category: str | None = None
    categories: str | None = None
    tags: str | None = None
    contentType: ContentType | None = None
    publishedDate: datetime | None = None
    scheduledDate: datetime | None = None
    scheduledPublishDate: str | None = Field(default=None, max_length=10)
    scheduledPublishTime: str | None = Field(default=None, max_length=5)
    featuredImage: str | None = None
    shopifyPostId: str | None = None
    shopifyBlogId: str | None = None
    storeId: int | None = None
    author: str | None = None
    authorId: int | None = None


class CreatePostRequest(PostFields):
    title: str = Field(min_length=1)
    status: PostStatus = "draft"


class UpdatePostRequest(PostFields):
    title: str | None = Field(default=None, min_length=1)
    status: PostStatus | None = None


_POST_COLUMNS = {
    "title": "title",
    "content": "content",
    "summary": "summary",
    "category": "category",
    "categories": "categories",
    "tags": "tags",
    "status": "status",
    "contentType": "content_type",
    "publishedDate": "published_date",
    "scheduledDate": "scheduled_date",
    "scheduledPublishDate": "scheduled_publish_date",
    "scheduledPublishTime": "scheduled_publish_time",
    "featuredImage": "featured_image",
    "shopifyPostId": "shopify_post_id",
    "shopifyBlogId": "shopify_blog_id",
    "storeId": "store_id",
    "author": "author",
    "authorId": "author_id",
}

# NOT NULL columns: an explicit null leaves the stored value untouched
_REQUIRED_COLUMNS = ("title", "status", "content_type")


def post_columns(payload: PostFields) -> dict[str, Any]:
    """Map the fields a client actually sent onto ``BlogPost`` column names."""
    values = payload.model_dump(exclude_unset=True)
    columns = {_POST_COLUMNS[key]: value for key, value in values.items() if key in _POST_COLUMNS}
    if columns.get("content") is None and "content" in columns:
        columns["content"] = ""
    for column in _REQUIRED_COLUMNS:
        if column in columns and columns[column] is None:
            del columns[column]
    return columns


def serialize_post(post: BlogPost) -> PostResponse:
    return PostResponse(
        id=post.id,
        title=post.title,
        content=post.content or "",
        summary=post.summary,
        category=post.category,
        categories=post.categories,
        tags=post.tags,
        status=post.status,
        contentType=post.content_type,
        publishedDate=post.published_date,
        scheduledDate=post.scheduled_date,
        scheduledPublishDate=post.scheduled_publish_date,
        scheduledPublishTime=post.scheduled_publish_time,
        views=post.views or 0,
        featuredImage=post.featured_image,
        shopifyPostId=post.shopify_post_id,
        shopifyBlogId=post.shopify_blog_id,
        storeId=post.store_id,
        author=post.author,
        authorId=post.author_id,
        createdAt=post.created_at,
        updatedAt=post.updated_at,
    )


class ConnectionResponse(BaseModel):
    id: int
    storeName: str
    defaultBlogId: str | None = None
    isConnected: bool
    lastSynced: datetime | None = None


class UpsertConnectionRequest(BaseModel):
    storeName: str = Field(min_length=1)
    accessToken: str = Field(min_length=1)
    defaultBlogId: str | None = None
    isConnected: bool = True


def serialize_connection(connection: ShopifyConnection | None) -> ConnectionResponse | None:
    if connection is None:
        return None
    return ConnectionResponse(
        id=connection.id,
        storeName=connection.store_name,
        defaultBlogId=connection.default_blog_id,
        isConnected=connection.is_connected,
        lastSynced=connection.last_synced,
    )


class StoreResponse(BaseModel):
    id: int
    shopName: str
    scope: str
    defaultBlogId: str | None = None
    isConnected: bool
    lastSynced: datetime | None = None
    installedAt: datetime
    uninstalledAt: datetime | None = None
    planName: str | None = None


def serialize_store(store: ShopifyStore) -> StoreResponse:
    return StoreResponse(
        id=store.id,
        shopName=store.shop_name,
        scope=store.scope or "",
        defaultBlogId=store.default_blog_id,
        isConnected=store.is_connected,
        lastSynced=store.last_synced,
        installedAt=store.installed_at,
        uninstalledAt=store.uninstalled_at,
        planName=store.plan_name,
    )


class DefaultBlogRequest(BaseModel):
    blogId: str = Field(min_length=1)


class SyncRequest(BaseModel):
    postIds: list[int] = Field(default_factory=list)


class SyncActivityResponse(BaseModel):
    id: int
    timestamp: datetime
    activity: str
    status: str
    details: str | None = None
    storeId: int | None = None


def serialize_activity(activity: SyncActivity) -> SyncActivityResponse:
    return SyncActivityResponse(
        id=activity.id,
        timestamp=activity.timestamp,
        activity=activity.activity,
        status=activity.status,
        details=activity.details,
        storeId=activity.store_id,
    )


class AuthorResponse(BaseModel):
    id: int
    name: str
    email: str | None = None
    bio: str | None = None
    avatarUrl: str | None = None


def serialize_author(author: Author) -> AuthorResponse:
    return AuthorResponse(
        id=author.id,
        name=author.name,
        email=author.email,
        bio=author.bio,
        avatarUrl=author.avatar_url,
    )


class ProjectResponse(BaseModel):
    id: int
    storeId: int
    name: str
    description: str | None = None
    projectData: Any = None
    createdAt: datetime
    updatedAt: datetime


class CreateProjectRequest(BaseModel):
    storeId: int
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    projectData: Any = None


class UpdateProjectRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    projectData: Any = None


def dump_project_data(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def serialize_project(project: Project) -> ProjectResponse:
    data: Any = None
    if project.project_data:
        try:
            data = json.loads(project.project_data)
        except ValueError:
            logger.warning("project_data_not_json", extra={"project_id": project.id})
            data = project.project_data
    return ProjectResponse(
        id=project.id,
        storeId=project.store_id,
        name=project.name,
        description=project.description,
        projectData=data,
        createdAt=project.created_at,
        updatedAt=project.updated_at,
    )


class ImageRef(BaseModel):
    url: str = Field(min_length=1)
    alt: str = ""


class ClaudeGenerateRequest(BaseModel):
    topic: str = Field(min_length=1)
    tone: str = "professional"
    length: str = "medium"
    customPrompt: str | None = None
    contentStyleToneId: str | None = None
    contentStyleDisplayName: str | None = None
    primaryImage: ImageRef | None = None
    secondaryImages: list[ImageRef] = Field(default_factory=list)
    youtubeEmbed: str | None = None
    productIds: list[str] = Field(default_factory=list)


class ClaudeTitlesRequest(BaseModel):
    prompt: str = Field(min_length=1)
    responseFormat: str | None = None


class GenerateImagesRequest(BaseModel):
    query: str = Field(min_length=1)
    count: int = Field(default=10, ge=1, le=80)


class KeywordsRequest(BaseModel):
    keyword: str = Field(min_length=1)
    region: str | None = None


class MetafieldInput(BaseModel):
    namespace: str = Field(min_length=1)
    key: str = Field(min_length=1)
    value: str
    type: str = "single_line_text_field"


class ProductImprovementsRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    metafields: list[MetafieldInput] = Field(default_factory=list)


class SelectedKeyword(BaseModel):
    keyword: str
    searchVolume: int = 0
    difficulty: int = 0
    cpc: float = 0


class GenerateContentRequest(BaseModel):
    title: str = Field(min_length=5)
    region: str | None = "us"
    productIds: list[str] = Field(default_factory=list)
    collectionIds: list[str] = Field(default_factory=list)
    articleType: Literal["blog", "page"] = "blog"
    blogId: str | None = None
    keywords: list[str] = Field(default_factory=list)
    writingPerspective: Literal[
        "first_person_plural", "first_person_singular", "second_person", "third_person", "professional"
    ] = "first_person_plural"
    enableTables: bool = True
    enableLists: bool = True
    enableH3s: bool = True
    introType: Literal["none", "standard", "search_intent"] = "search_intent"
    faqType: Literal["none", "short", "long"] = "short"
    enableCitations: bool = True
    toneOfVoice: str = "friendly"
    postStatus: Literal["publish", "draft", "schedule"] = "draft"
    scheduledPublishDate: str | None = Field(default=None, max_length=10)
    scheduledPublishTime: str | None = Field(default=None, max_length=5)
    generateImages: bool = True
    selectedImageIds: list[str] = Field(default_factory=list)
    selectedKeywordData: list[SelectedKeyword] = Field(default_factory=list)
    contentStyleToneId: str | None = None
    contentStyleDisplayName: str | None = None
    youtubeEmbed: str | None = None
    author: str | None = None
    storeId: int | None = None
