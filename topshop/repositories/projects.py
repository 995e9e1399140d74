from __future__ import annotations

from sqlalchemy import select

from topshop.models import Project
from topshop.repositories.base import Repository


class ProjectNotFoundError(LookupError):
    def __init__(self, project_id: int) -> None:
        super().__init__(f"Project with ID {project_id} not found")
        self.project_id = project_id


class ProjectsRepository(Repository):
    """Projects are always read and written through the owning store."""

    def list(self, store_id: int) -> list[Project]:
        stmt = select(Project).where(Project.store_id == store_id).order_by(Project.updated_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, project_id: int, store_id: int) -> Project:
        stmt = select(Project).where(Project.id == project_id, Project.store_id == store_id)
        project = self.session.scalars(stmt).first()
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def create(self, *, store_id: int, name: str, **fields) -> Project:
        return self.save(Project(store_id=store_id, name=name, **fields))

    def update(self, project_id: int, store_id: int, **fields) -> Project:
        project = self.get(project_id, store_id)
        return self._apply(project, fields)

    def delete(self, project_id: int, store_id: int) -> bool:
        project = self.get(project_id, store_id)
        self.session.delete(project)
        self.session.commit()
        return True
