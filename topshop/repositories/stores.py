from __future__ import annotations

from sqlalchemy import select

from topshop.models import ShopifyConnection, ShopifyStore
from topshop.repositories.base import Repository


class StoresRepository(Repository):
    def list(self) -> list[ShopifyStore]:
        stmt = select(ShopifyStore).order_by(ShopifyStore.is_connected.desc(), ShopifyStore.installed_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, store_id: int) -> ShopifyStore | None:
        return self.session.get(ShopifyStore, store_id)

    def get_by_domain(self, shop_domain: str) -> ShopifyStore | None:
        stmt = select(ShopifyStore).where(ShopifyStore.shop_name == shop_domain)
        return self.session.scalars(stmt).first()

    def create(self, *, shop_name: str, access_token: str, **fields) -> ShopifyStore:
        return self.save(ShopifyStore(shop_name=shop_name, access_token=access_token, **fields))

    def update(self, store_id: int, **fields) -> ShopifyStore | None:
        store = self.get(store_id)
        if store is None:
            return None
        return self._apply(store, fields)

    def delete(self, store_id: int) -> bool:
        store = self.get(store_id)
        if store is None:
            return False
        self.session.delete(store)
        self.session.commit()
        return True


class ConnectionRepository(Repository):
    """The legacy single-store connection row."""

    def get(self) -> ShopifyConnection | None:
        stmt = select(ShopifyConnection).order_by(ShopifyConnection.id)
        return self.session.scalars(stmt).first()

    def create(self, *, store_name: str, access_token: str, **fields) -> ShopifyConnection:
        return self.save(ShopifyConnection(store_name=store_name, access_token=access_token, **fields))

    def update(self, **fields) -> ShopifyConnection | None:
        connection = self.get()
        if connection is None:
            return None
        return self._apply(connection, fields)

    def upsert(self, *, store_name: str, access_token: str, **fields) -> ShopifyConnection:
        connection = self.get()
        if connection is None:
            return self.create(store_name=store_name, access_token=access_token, **fields)
        return self._apply(connection, {"store_name": store_name, "access_token": access_token, **fields})
