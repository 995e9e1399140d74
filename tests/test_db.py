from __future__ import annotations

from sqlalchemy import text

from topshop.db import engine, is_sqlite
from topshop.models import BlogPost, Project
from topshop.repositories import PostsRepository, ProjectsRepository, StoresRepository


def test_sqlite_connections_enforce_foreign_keys():
    with engine.connect() as connection:
        assert connection.execute(text("PRAGMA foreign_keys")).scalar() == 1


def test_is_sqlite():
    assert is_sqlite("sqlite:///./topshop.db")
    assert not is_sqlite("postgresql+psycopg://user@localhost/topshop")


def test_deleting_store_detaches_posts_and_drops_projects(db_session):
    stores = StoresRepository(db_session)
    store = stores.create(shop_name="leaving.myshopify.com", access_token="t")
    post = PostsRepository(db_session).create(title="Kept", store_id=store.id)
    project = ProjectsRepository(db_session).create(store_id=store.id, name="Plan")

    assert stores.delete(store.id)

    db_session.expire_all()
    assert db_session.get(BlogPost, post.id).store_id is None
    assert db_session.get(Project, project.id) is None
