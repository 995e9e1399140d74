from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from topshop.models import BlogPost
from topshop.repositories.base import Repository


@dataclass(frozen=True)
class PostStats:
    total_posts: int
    published_posts: int
    scheduled_posts: int
    total_views: int


class PostsRepository(Repository):
    def list(self, *, limit: int | None = None, offset: int = 0) -> list[BlogPost]:
        stmt = select(BlogPost).order_by(BlogPost.created_at.desc(), BlogPost.id.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def count(self) -> int:
        return int(self.session.scalar(select(func.count()).select_from(BlogPost)) or 0)

    def get(self, post_id: int) -> BlogPost | None:
        return self.session.get(BlogPost, post_id)

    def get_many(self, post_ids: list[int]) -> list[BlogPost]:
        if not post_ids:
            return []
        stmt = select(BlogPost).where(BlogPost.id.in_(post_ids)).order_by(BlogPost.id)
        return list(self.session.scalars(stmt).all())

    def create(self, *, title: str, **fields) -> BlogPost:
        return self.save(BlogPost(title=title, **fields))

    def update(self, post_id: int, **fields) -> BlogPost | None:
        post = self.get(post_id)
        if post is None:
            return None
        return self._apply(post, fields)

    def delete(self, post_id: int) -> bool:
        post = self.get(post_id)
        if post is None:
            return False
        self.session.delete(post)
        self.session.commit()
        return True

    def list_recent(self, limit: int = 5) -> list[BlogPost]:
        return self.list(limit=limit)

    def list_recent_for_store(self, store_id: int, limit: int = 5) -> list[BlogPost]:
        stmt = (
            select(BlogPost)
            .where(BlogPost.store_id == store_id)
            .order_by(BlogPost.created_at.desc(), BlogPost.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def list_scheduled(self) -> list[BlogPost]:
        stmt = (
            select(BlogPost)
            .where(BlogPost.status == "scheduled")
            .order_by(BlogPost.scheduled_date.asc(), BlogPost.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def list_published(self) -> list[BlogPost]:
        stmt = (
            select(BlogPost)
            .where(BlogPost.status == "published")
            .order_by(BlogPost.published_date.desc(), BlogPost.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def stats(self) -> PostStats:
        by_status = dict(
            self.session.execute(select(BlogPost.status, func.count()).group_by(BlogPost.status)).all()
        )
        total_views = self.session.scalar(
            select(func.coalesce(func.sum(BlogPost.views), 0)).where(BlogPost.status == "published")
        )
        return PostStats(
            total_posts=int(sum(by_status.values())),
            published_posts=int(by_status.get("published", 0)),
            scheduled_posts=int(by_status.get("scheduled", 0)),
            total_views=int(total_views or 0),
        )
