from __future__ import annotations

import json

from sqlalchemy import select

from topshop import deps
from topshop.models import BlogPost, ContentGenRequest
from topshop.repositories import ConnectionRepository, StoresRepository
from topshop.routers.admin import build_content_prompt
from topshop.schemas import GenerateContentRequest
from topshop.services.claude import ClaudeServiceError
from topshop.services.dataforseo import DataForSeoError, KeywordData
from topshop.services.pexels import PexelsImage, PexelsImageSource

SHOP = "my-shop.myshopify.com"


def _connect(db_session) -> None:
    ConnectionRepository(db_session).upsert(
        store_name=SHOP,
        access_token="token",
        default_blog_id="42",
        is_connected=True,
    )


def _image(image_id: str) -> PexelsImage:
    url = f"https://images.pexels.com/{image_id}/large.jpeg"
    return PexelsImage(
        id=image_id,
        width=10,
        height=10,
        url=url,
        src=PexelsImageSource(original=url, large=url),
        alt=f"Photo {image_id}",
    )


def test_admin_requires_bearer_token(api_client):
    assert api_client.get("/api/admin/regions").status_code == 401
    assert api_client.get("/api/admin/regions", headers={"Authorization": "Bearer wrong"}).status_code == 403


def test_regions(api_client, admin_headers):
    body = api_client.get("/api/admin/regions", headers=admin_headers).json()

    assert body["success"] is True
    assert {"id": "gb", "name": "United Kingdom"} in body["regions"]


def test_catalogue_requires_connection(api_client, db_session, admin_headers):
    response = api_client.get("/api/admin/products", headers=admin_headers)

    assert response.status_code == 400
    assert response.json() == {"detail": "No active Shopify connection found"}


def test_products_collections_and_blogs(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)

    async def fake_get_products(*, shop_domain: str, access_token: str, limit: int = 50):
        return [{"id": 1, "title": "Shirt", "handle": "shirt", "image": {"src": "https://cdn/shirt.jpg"}}]

    async def fake_get_collections(*, shop_domain: str, access_token: str, kind: str, limit: int = 50):
        return [{"id": 10 if kind == "custom" else 20, "title": kind, "handle": kind}]

    async def fake_get_blogs(*, shop_domain: str, access_token: str):
        return [{"id": 42, "title": "News", "handle": "news", "commentable": "no"}]

    monkeypatch.setattr(deps.shopify_api, "get_products", fake_get_products)
    monkeypatch.setattr(deps.shopify_api, "get_collections", fake_get_collections)
    monkeypatch.setattr(deps.shopify_api, "get_blogs", fake_get_blogs)

    products = api_client.get("/api/admin/products", headers=admin_headers).json()["products"]
    collections = api_client.get("/api/admin/collections", headers=admin_headers).json()["collections"]
    blogs = api_client.get("/api/admin/blogs", headers=admin_headers).json()["blogs"]

    assert products == [{"id": 1, "title": "Shirt", "handle": "shirt", "image": "https://cdn/shirt.jpg"}]
    assert [c["id"] for c in collections] == [10, 20]
    assert blogs == [{"id": 42, "title": "News", "handle": "news"}]


def test_test_connections(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)

    async def shopify_ok(*, shop_domain: str, access_token: str):
        return {"success": True, "message": "ok"}

    async def claude_down():
        return {"success": False, "message": "ANTHROPIC_API_KEY is not configured"}

    async def dataforseo_ok():
        return True

    async def pexels_ok():
        return {"success": True, "message": "ok"}

    monkeypatch.setattr(deps.shopify_api, "test_connection", shopify_ok)
    monkeypatch.setattr(deps.claude, "test_connection", claude_down)
    monkeypatch.setattr(deps.dataforseo, "test_connection", dataforseo_ok)
    monkeypatch.setattr(deps.pexels, "test_connection", pexels_ok)

    body = api_client.get("/api/admin/test-connections", headers=admin_headers).json()

    assert body == {
        "success": True,
        "connections": {"shopify": True, "claude": False, "dataForSEO": True, "pexels": True},
    }


def test_generate_images_reports_fallback(api_client, admin_headers, monkeypatch):
    async def fake_safe_search(query: str, count: int = 10):
        return [_image("fallback-0")], True

    monkeypatch.setattr(deps.pexels, "safe_search_images", fake_safe_search)

    body = api_client.post("/api/admin/generate-images", json={"query": "boots"}, headers=admin_headers).json()

    assert body["fallbackUsed"] is True
    assert body["images"][0]["id"] == "fallback-0"


def test_keywords(api_client, admin_headers, monkeypatch):
    async def fake_search(keyword: str, location_code: int = 2840):
        assert location_code == 2826
        return [KeywordData(keyword="wool socks", searchVolume=900, competition="LOW", difficulty=12)]

    monkeypatch.setattr(deps.dataforseo, "search_related_keywords", fake_search)

    body = api_client.post(
        "/api/admin/keywords",
        json={"keyword": "socks", "region": "gb"},
        headers=admin_headers,
    ).json()

    assert body == {
        "success": True,
        "keywords": [
            {"keyword": "wool socks", "searchVolume": 900, "competition": "LOW", "difficulty": 12, "selected": False}
        ],
    }


def test_keywords_error_status(api_client, admin_headers, monkeypatch):
    async def failing(keyword: str, location_code: int = 2840):
        raise DataForSeoError(
            message="DataForSEO API insufficient credits. Please check your account balance.",
            status_code=402,
        )

    monkeypatch.setattr(deps.dataforseo, "search_related_keywords", failing)

    response = api_client.post("/api/admin/keywords", json={"keyword": "socks"}, headers=admin_headers)

    assert response.status_code == 402


def test_analyze_and_improve_product(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)
    updates: list[dict] = []

    async def fake_get_product(*, shop_domain: str, access_token: str, product_id: str):
        return {"id": product_id, "title": "Mug", "body_html": "<p>A mug</p>", "variants": [{"price": "9.00"}]}

    async def fake_complete_json(*, system: str, prompt: str, max_tokens: int = 4000):
        assert "Price: 9.00" in prompt
        return {"analysis": {"seoScore": 4}, "suggestions": {"improvedTitle": "Ceramic Mug"}}

    async def fake_update_product(*, shop_domain: str, access_token: str, product_id: str, fields: dict):
        updates.append(fields)
        return {"id": product_id}

    monkeypatch.setattr(deps.shopify_api, "get_product", fake_get_product)
    monkeypatch.setattr(deps.shopify_api, "update_product", fake_update_product)
    monkeypatch.setattr(deps.claude, "complete_json", fake_complete_json)

    analysis = api_client.post("/api/admin/products/7/analyze", headers=admin_headers).json()
    applied = api_client.post(
        "/api/admin/products/7/improvements",
        json={"title": "Ceramic Mug"},
        headers=admin_headers,
    ).json()

    assert analysis["original"] == {"title": "Mug", "description": "A mug"}
    assert analysis["suggestions"]["improvedTitle"] == "Ceramic Mug"
    assert applied == {"success": True, "message": "Product improvements applied successfully"}
    assert updates == [{"title": "Ceramic Mug"}]


def test_build_content_prompt_reflects_options():
    payload = GenerateContentRequest(
        title="Best hiking socks",
        writingPerspective="second_person",
        enableTables=False,
        faqType="long",
        introType="none",
    )

    prompt = build_content_prompt(payload, ["hiking socks", "wool socks"])

    assert 'Write a blog post titled "Best hiking socks".' in prompt
    assert "hiking socks, wool socks" in prompt
    assert "second person" in prompt
    assert "HTML table" not in prompt
    assert "6-10 questions" in prompt
    assert "introduction" not in prompt


def _fake_generation(monkeypatch, captured: dict) -> None:
    async def fake_safe_search(query: str, count: int = 10):
        captured["image_query"] = query
        return [_image("1"), _image("2")], False

    async def fake_get_products(*, shop_domain: str, access_token: str, limit: int = 50):
        return [{"id": 5, "handle": "wool-socks"}]

    async def fake_generate_blog_content(request):
        captured["request"] = request
        return {
            "title": "Best Hiking Socks for 2025",
            "content": "<p>Socks</p>",
            "tags": ["socks", "hiking"],
            "metaDescription": "Find the best hiking socks",
        }

    async def fake_get_shop_info(*, shop_domain: str, access_token: str):
        return {"iana_timezone": "UTC"}

    async def fake_create_article(**kwargs):
        captured["article"] = kwargs
        return {"id": 777}

    monkeypatch.setattr(deps.pexels, "safe_search_images", fake_safe_search)
    monkeypatch.setattr(deps.shopify_api, "get_products", fake_get_products)
    monkeypatch.setattr(deps.claude, "generate_blog_content", fake_generate_blog_content)
    monkeypatch.setattr(deps.shopify_api, "get_shop_info", fake_get_shop_info)
    monkeypatch.setattr(deps.shopify_api, "create_article", fake_create_article)


def test_generate_content_publishes_article(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)
    captured: dict = {}
    _fake_generation(monkeypatch, captured)

    response = api_client.post(
        "/api/admin/generate-content",
        json={
            "title": "Best hiking socks",
            "productIds": ["5", "6"],
            "postStatus": "publish",
            "selectedKeywordData": [{"keyword": "merino hiking socks"}],
        },
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["shopifyId"] == "777"
    assert body["contentUrl"] == f"https://{SHOP}/admin/articles/777"
    assert body["featuredImage"] == "https://images.pexels.com/1/large.jpeg"
    assert body["tags"] == ["socks", "hiking"]
    assert captured["image_query"] == "merino hiking socks"
    assert captured["request"].product_links == ["wool-socks"]
    assert [image.url for image in captured["request"].secondary_images] == ["https://images.pexels.com/2/large.jpeg"]
    assert captured["article"]["blog_id"] == "42"

    db_session.expire_all()
    post = db_session.get(BlogPost, body["postId"])
    assert post.status == "published"
    assert post.tags == "socks, hiking"
    assert post.summary == "Find the best hiking socks"
    gen_request = db_session.get(ContentGenRequest, body["requestId"])
    assert gen_request.status == "completed"
    assert json.loads(gen_request.generated_content)["title"] == "Best Hiking Socks for 2025"


def test_generate_content_as_draft_page_stays_local(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)
    captured: dict = {}
    _fake_generation(monkeypatch, captured)

    body = api_client.post(
        "/api/admin/generate-content",
        json={"title": "About our socks", "articleType": "page", "generateImages": False},
        headers=admin_headers,
    ).json()

    assert body["shopifyId"] is None
    assert body["contentUrl"] is None
    assert body["featuredImage"] is None
    assert "article" not in captured
    db_session.expire_all()
    assert db_session.get(BlogPost, body["postId"]).content_type == "page"


def test_generate_content_schedule_requires_date(api_client, db_session, admin_headers):
    _connect(db_session)

    response = api_client.post(
        "/api/admin/generate-content",
        json={"title": "Later socks", "postStatus": "schedule"},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_generate_content_marks_request_failed(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)
    captured: dict = {}
    _fake_generation(monkeypatch, captured)

    async def failing(request):
        raise ClaudeServiceError(message="Failed to generate content with Claude: overloaded", status_code=502)

    monkeypatch.setattr(deps.claude, "generate_blog_content", failing)

    response = api_client.post(
        "/api/admin/generate-content",
        json={"title": "Doomed socks"},
        headers=admin_headers,
    )

    assert response.status_code == 502
    db_session.expire_all()
    gen_request = db_session.scalars(select(ContentGenRequest)).one()
    assert gen_request.status == "failed"
    assert db_session.scalars(select(BlogPost)).all() == []


def test_generate_content_targets_requested_store(api_client, db_session, admin_headers, monkeypatch):
    _connect(db_session)
    store = StoresRepository(db_session).create(
        shop_name="second-shop.myshopify.com",
        access_token="store-token",
        default_blog_id="7",
    )
    captured: dict = {}
    _fake_generation(monkeypatch, captured)

    body = api_client.post(
        "/api/admin/generate-content",
        json={"title": "Socks for the second shop", "postStatus": "publish", "storeId": store.id},
        headers=admin_headers,
    ).json()

    assert captured["article"]["shop_domain"] == "second-shop.myshopify.com"
    assert captured["article"]["blog_id"] == "7"
    assert body["contentUrl"] == "https://second-shop.myshopify.com/admin/articles/777"
    db_session.expire_all()
    assert db_session.get(BlogPost, body["postId"]).store_id == store.id
    assert db_session.get(ContentGenRequest, body["requestId"]).store_id == store.id
