from __future__ import annotations

from datetime import timedelta

import pytest

from topshop.models import OAuthState, utcnow
from topshop.repositories import (
    AuthorsRepository,
    ConnectionRepository,
    ContentGenRequestsRepository,
    OAuthStatesRepository,
    PostsRepository,
    ProjectNotFoundError,
    ProjectsRepository,
    StoresRepository,
    SyncActivitiesRepository,
    UsersRepository,
)


def test_posts_stats_and_lists(db_session):
    posts = PostsRepository(db_session)
    posts.create(title="Draft", content="d")
    published = posts.create(title="Live", content="l", status="published", views=10, published_date=utcnow())
    posts.create(title="Later", content="s", status="scheduled", scheduled_date=utcnow() + timedelta(days=1))

    stats = posts.stats()

    assert (stats.total_posts, stats.published_posts, stats.scheduled_posts, stats.total_views) == (3, 1, 1, 10)
    assert [post.title for post in posts.list_published()] == ["Live"]
    assert [post.title for post in posts.list_scheduled()] == ["Later"]
    assert posts.count() == 3
    assert len(posts.list(limit=2)) == 2
    assert posts.get_many([published.id])[0].title == "Live"


def test_posts_update_and_delete(db_session):
    posts = PostsRepository(db_session)
    post = posts.create(title="Old")

    updated = posts.update(post.id, title="New", tags="a,b")

    assert updated is not None
    assert (updated.title, updated.tags) == ("New", "a,b")
    assert posts.update(99999, title="x") is None
    assert posts.delete(post.id) is True
    assert posts.delete(post.id) is False


def test_list_recent_for_store(db_session):
    store = StoresRepository(db_session).create(shop_name="a.myshopify.com", access_token="t")
    posts = PostsRepository(db_session)
    posts.create(title="Mine", store_id=store.id)
    posts.create(title="Other")

    assert [post.title for post in posts.list_recent_for_store(store.id)] == ["Mine"]


def test_stores_list_connected_first(db_session):
    stores = StoresRepository(db_session)
    gone = stores.create(shop_name="gone.myshopify.com", access_token="t", is_connected=False)
    live = stores.create(shop_name="live.myshopify.com", access_token="t")

    assert [store.id for store in stores.list()] == [live.id, gone.id]
    assert stores.get_by_domain("live.myshopify.com").id == live.id


def test_connection_upsert_keeps_single_row(db_session):
    connections = ConnectionRepository(db_session)
    first = connections.upsert(store_name="a.myshopify.com", access_token="one", is_connected=True)
    second = connections.upsert(store_name="b.myshopify.com", access_token="two", is_connected=True)

    assert first.id == second.id
    assert connections.get().store_name == "b.myshopify.com"


def test_users_and_store_links(db_session):
    users = UsersRepository(db_session)
    store = StoresRepository(db_session).create(shop_name="s.myshopify.com", access_token="t")
    user = users.create(username="merchant", password="hashed")

    link = users.link_store(user_id=user.id, store_id=store.id, role="owner")
    again = users.link_store(user_id=user.id, store_id=store.id)

    assert link.id == again.id
    assert [s.shop_name for s in users.list_stores_for_user(user.id)] == ["s.myshopify.com"]
    assert users.get_by_username("merchant").id == user.id


def test_authors_only_active(db_session):
    authors = AuthorsRepository(db_session)
    authors.create(name="Zed")
    authors.create(name="Amy")
    authors.create(name="Retired", is_active=False)

    assert [author.name for author in authors.list_active()] == ["Amy", "Zed"]


def test_activities_newest_first(db_session):
    activities = SyncActivitiesRepository(db_session)
    activities.create(activity="first", status="success", details=None)
    activities.create(activity="second", status="failed", details="boom")

    assert [a.activity for a in activities.list(limit=1)] == ["second"]


def test_content_gen_requests(db_session):
    requests = ContentGenRequestsRepository(db_session)
    request = requests.create(topic="Boots", tone="friendly", length="medium")

    assert request.status == "pending"
    assert requests.update(request.id, status="completed").status == "completed"


def test_projects_are_scoped_to_store(db_session):
    stores = StoresRepository(db_session)
    mine = stores.create(shop_name="mine.myshopify.com", access_token="t")
    theirs = stores.create(shop_name="theirs.myshopify.com", access_token="t")
    projects = ProjectsRepository(db_session)
    project = projects.create(store_id=mine.id, name="Spring campaign")

    assert projects.get(project.id, mine.id).name == "Spring campaign"
    with pytest.raises(ProjectNotFoundError, match=f"Project with ID {project.id} not found"):
        projects.get(project.id, theirs.id)
    assert projects.update(project.id, mine.id, name="Summer").name == "Summer"
    assert projects.delete(project.id, mine.id) is True
    assert projects.list(mine.id) == []


def test_oauth_state_is_single_use(db_session):
    states = OAuthStatesRepository(db_session)
    states.create(state="abc", shop_domain="s.myshopify.com", host="aG9zdA")

    consumed = states.consume(state="abc", shop_domain="s.myshopify.com", max_age=timedelta(hours=1))

    assert consumed is not None
    assert consumed.host == "aG9zdA"
    assert states.consume(state="abc", shop_domain="s.myshopify.com", max_age=timedelta(hours=1)) is None


def test_oauth_state_rejects_other_shop_and_expired(db_session):
    states = OAuthStatesRepository(db_session)
    states.create(state="one", shop_domain="s.myshopify.com", host=None)
    db_session.add(
        OAuthState(state="old", shop_domain="s.myshopify.com", created_at=utcnow() - timedelta(hours=2))
    )
    db_session.commit()

    assert states.consume(state="one", shop_domain="x.myshopify.com", max_age=timedelta(hours=1)) is None
    assert states.consume(state="old", shop_domain="s.myshopify.com", max_age=timedelta(hours=1)) is None


def test_purge_expired_states(db_session):
    states = OAuthStatesRepository(db_session)
    states.create(state="fresh", shop_domain="s.myshopify.com", host=None)
    db_session.add(
        OAuthState(state="stale", shop_domain="s.myshopify.com", created_at=utcnow() - timedelta(days=2))
    )
    db_session.commit()

    assert states.purge_expired(timedelta(hours=1)) == 1
    assert db_session.get(OAuthState, "fresh") is not None
