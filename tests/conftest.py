import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("SHOPIFY_API_KEY", "test_key")
os.environ.setdefault("SHOPIFY_API_SECRET", "test_secret")
os.environ.setdefault("SHOPIFY_APP_SCOPES", "read_products,write_products,read_content,write_content")
os.environ.setdefault("SHOPIFY_APP_BASE_URL", "https://example.ngrok.app")
os.environ.setdefault("TOPSHOP_DB_URL", "sqlite:///./test_topshop.db")
os.environ.setdefault("SHOPIFY_REGISTER_WEBHOOKS", "false")
os.environ.setdefault("ADMIN_API_TOKEN", "admin_token")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402

from topshop.db import SessionLocal, init_db  # noqa: E402
from topshop.models import (  # noqa: E402
    Author,
    BlogPost,
    ContentGenRequest,
    OAuthState,
    Project,
    ShopifyConnection,
    ShopifyStore,
    SyncActivity,
    User,
    UserStore,
)

_TABLES = (
    Project,
    SyncActivity,
    ContentGenRequest,
    BlogPost,
    UserStore,
    User,
    Author,
    OAuthState,
    ShopifyConnection,
    ShopifyStore,
)


def _clear(session) -> None:
    for model in _TABLES:
        session.execute(delete(model))
    session.commit()


@pytest.fixture()
def db_session():
    init_db()
    session = SessionLocal()
    _clear(session)
    try:
        yield session
    finally:
        session.rollback()
        _clear(session)
        session.close()


@pytest.fixture()
def api_client():
    import topshop.main as main_module

    with TestClient(main_module.app) as client:
        yield client


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": "Bearer admin_token"}
