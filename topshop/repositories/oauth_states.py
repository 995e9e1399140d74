from __future__ import annotations

from datetime import timedelta

from sqlalchemy import delete

from topshop.models import OAuthState, utcnow
from topshop.repositories.base import Repository
from topshop.scheduling import ensure_utc


class OAuthStatesRepository(Repository):
    def create(self, *, state: str, shop_domain: str, host: str | None) -> OAuthState:
        return self.save(OAuthState(state=state, shop_domain=shop_domain, host=host))

    def consume(self, *, state: str, shop_domain: str, max_age: timedelta) -> OAuthState | None:
        """Delete and return a state issued for ``shop_domain`` within ``max_age``."""
        record = self.session.get(OAuthState, state)
        if record is None:
            return None
        self.session.delete(record)
        self.session.commit()
        if record.shop_domain != shop_domain:
            return None
        if utcnow() - ensure_utc(record.created_at) > max_age:
            return None
        return record

    def purge_expired(self, max_age: timedelta) -> int:
        result = self.session.execute(delete(OAuthState).where(OAuthState.created_at < utcnow() - max_age))
        self.session.commit()
        return int(result.rowcount or 0)
