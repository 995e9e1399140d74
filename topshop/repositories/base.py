from __future__ import annotations

from typing import TypeVar

from sqlalchemy.orm import Session

from topshop.models import Base

ModelT = TypeVar("ModelT", bound=Base)


class Repository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, obj: ModelT) -> ModelT:
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def _apply(self, obj: ModelT, fields: dict) -> ModelT:
        for key, value in fields.items():
            setattr(obj, key, value)
        return self.save(obj)
