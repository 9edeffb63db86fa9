"""REST API for a user's projects. A project's system prompt is the directive
the relay sends with every chat inside it."""

import logging
from contextlib import AsyncExitStack
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlmodel import Session, col, select

from projectchat.api.deps import get_current_user_id
from projectchat.core.database import get_session
from projectchat.core.exceptions import AuthzError, InputError
from projectchat.models.chat import Chat, Project, project_to_dict
from projectchat.services.chats import find_owned_project
from projectchat.services.relay import chat_locks

router = APIRouter()
logger = logging.getLogger(__name__)


class ProjectCreate(BaseModel):
    name: str | None = None
    description: str | None = None
    system_prompt: str | None = None


class ProjectUpdate(BaseModel):
    """Fields left out (or null) keep their current value."""

    name: str | None = None
    description: str | None = None
    system_prompt: str | None = None


def _require_name(name: str | None) -> str:
    if not name or not name.strip():
        raise InputError("Project name is required")
    return name


def _get_owned(session: Session, project_id: int, user_id: int) -> Project:
    project = find_owned_project(session, project_id, user_id)
    if project is None:
        logger.debug(f"Project {project_id} not found for user {user_id}")
        raise AuthzError("Project not found")
    return project


@router.get("")
async def list_projects(
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    projects = session.exec(
        select(Project)
        .where(Project.user_id == user_id)
        .order_by(col(Project.created_at).desc(), col(Project.id).desc())
    ).all()
    return {"projects": [project_to_dict(p) for p in projects]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    project = Project(
        user_id=user_id,
        name=_require_name(body.name),
        description=body.description or None,
        system_prompt=body.system_prompt or None,
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.debug(f"Created project {project.id} for user {user_id}")
    return {"project": project_to_dict(project)}


@router.get("/{project_id}")
async def get_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return {"project": project_to_dict(_get_owned(session, project_id, user_id))}


@router.put("/{project_id}")
async def update_project(
    project_id: int,
    body: ProjectUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    project = _get_owned(session, project_id, user_id)

    if body.name is not None:
        project.name = _require_name(body.name)
    if body.description is not None:
        project.description = body.description
    if body.system_prompt is not None:
        project.system_prompt = body.system_prompt
    project.updated_at = datetime.now(timezone.utc)

    session.add(project)
    session.commit()
    session.refresh(project)
    return {"project": project_to_dict(project)}


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    _get_owned(session, project_id, user_id)
    chat_ids = session.exec(
        select(Chat.id).where(Chat.project_id == project_id).order_by(col(Chat.id))
    ).all()

    # Chats go with the project: wait out relays on any of them. Locks are
    # always taken in ascending chat id order.
    async with AsyncExitStack() as stack:
        for chat_id in chat_ids:
            await stack.enter_async_context(chat_locks.hold(chat_id))
        session.expire_all()
        project = _get_owned(session, project_id, user_id)
        session.delete(project)
        session.commit()

    logger.debug(f"Deleted project {project_id} with {len(chat_ids)} chats")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
