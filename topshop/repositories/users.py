from __future__ import annotations

from sqlalchemy import select

from topshop.models import Author, ShopifyStore, User, UserStore
from topshop.repositories.base import Repository


class UsersRepository(Repository):
    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        return self.session.scalars(stmt).first()

    def create(self, *, username: str, password: str) -> User:
        return self.save(User(username=username, password=password))

    def list_stores_for_user(self, user_id: int) -> list[ShopifyStore]:
        stmt = (
            select(ShopifyStore)
            .join(UserStore, UserStore.store_id == ShopifyStore.id)
            .where(UserStore.user_id == user_id)
            .order_by(ShopifyStore.shop_name)
        )
        return list(self.session.scalars(stmt).all())

    def link_store(self, *, user_id: int, store_id: int, role: str = "member") -> UserStore:
        stmt = select(UserStore).where(UserStore.user_id == user_id, UserStore.store_id == store_id)
        existing = self.session.scalars(stmt).first()
        if existing is not None:
            return existing
        return self.save(UserStore(user_id=user_id, store_id=store_id, role=role))


class AuthorsRepository(Repository):
    def list_active(self) -> list[Author]:
        stmt = select(Author).where(Author.is_active.is_(True)).order_by(Author.name)
        return list(self.session.scalars(stmt).all())

    def get(self, author_id: int) -> Author | None:
        return self.session.get(Author, author_id)

    def create(self, *, name: str, **fields) -> Author:
        return self.save(Author(name=name, **fields))
