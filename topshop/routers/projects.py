from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from topshop.db import get_session
from topshop.repositories import ProjectNotFoundError, ProjectsRepository, StoresRepository
from topshop.schemas import (
    CreateProjectRequest,
    UpdateProjectRequest,
    dump_project_data,
    serialize_project,
)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("")
def list_projects(storeId: int = Query(...), session: Session = Depends(get_session)) -> dict:
    return {"projects": [serialize_project(project) for project in ProjectsRepository(session).list(storeId)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(payload: CreateProjectRequest, session: Session = Depends(get_session)) -> dict:
    if StoresRepository(session).get(payload.storeId) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    project = ProjectsRepository(session).create(
        store_id=payload.storeId,
        name=payload.name,
        description=payload.description,
        project_data=dump_project_data(payload.projectData),
    )
    return {"project": serialize_project(project)}


@router.get("/{project_id}")
def get_project(project_id: int, storeId: int = Query(...), session: Session = Depends(get_session)) -> dict:
    try:
        project = ProjectsRepository(session).get(project_id, storeId)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"project": serialize_project(project)}


@router.put("/{project_id}")
def update_project(
    project_id: int,
    payload: UpdateProjectRequest,
    storeId: int = Query(...),
    session: Session = Depends(get_session),
) -> dict:
    fields = {}
    fields_set = payload.model_fields_set
    if "name" in fields_set and payload.name is not None:
        fields["name"] = payload.name
    if "description" in fields_set:
        fields["description"] = payload.description
    if "projectData" in fields_set:
        fields["project_data"] = dump_project_data(payload.projectData)

    try:
        project = ProjectsRepository(session).update(project_id, storeId, **fields)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"project": serialize_project(project)}


@router.delete("/{project_id}")
def delete_project(project_id: int, storeId: int = Query(...), session: Session = Depends(get_session)) -> dict:
    try:
        ProjectsRepository(session).delete(project_id, storeId)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"success": True}
