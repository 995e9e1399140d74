from __future__ import annotations

from sqlalchemy import select

from topshop.models import ContentGenRequest, SyncActivity
from topshop.repositories.base import Repository


class SyncActivitiesRepository(Repository):
    def list(self, limit: int = 10) -> list[SyncActivity]:
        stmt = select(SyncActivity).order_by(SyncActivity.timestamp.desc(), SyncActivity.id.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def create(
        self,
        *,
        activity: str,
        status: str,
        details: str | None = None,
        store_id: int | None = None,
    ) -> SyncActivity:
        return self.save(SyncActivity(activity=activity, status=status, details=details, store_id=store_id))


class ContentGenRequestsRepository(Repository):
    def get(self, request_id: int) -> ContentGenRequest | None:
        return self.session.get(ContentGenRequest, request_id)

    def create(self, *, topic: str, tone: str, length: str, store_id: int | None = None) -> ContentGenRequest:
        return self.save(ContentGenRequest(topic=topic, tone=tone, length=length, store_id=store_id))

    def update(self, request_id: int, **fields) -> ContentGenRequest | None:
        request = self.get(request_id)
        if request is None:
            return None
        return self._apply(request, fields)
