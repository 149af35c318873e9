"""Projects router — registration, membership, activity feed, tasks."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.api.deps import (
    get_activity_service,
    get_project_service,
    get_session,
    get_task_service,
)
from ontrackr.api.schemas.activity import ActivityItem
from ontrackr.api.schemas.project import (
    MemberAdd,
    MemberAddResponse,
    ProjectCreate,
    ProjectCreateResponse,
    ProjectDetail,
)
from ontrackr.api.schemas.task import TaskCreate, TaskItem
from ontrackr.services.activity_service import ActivityService
from ontrackr.services.project_service import ProjectService
from ontrackr.services.task_service import TaskService

router = APIRouter()


@router.post("/", response_model=ProjectCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> ProjectCreateResponse:
    result = await svc.create(
        session,
        name=body.name,
        github_repo_url=body.github_repo_url,
        created_by=body.created_by,
        member_ids=body.member_ids,
        description=body.description,
        deadline_in_days=body.deadline_in_days,
    )
    project = result["project"]
    return ProjectCreateResponse(
        **ProjectDetail.model_validate(project).model_dump(exclude={"member_ids"}),
        member_ids=result["member_ids"],
        unknown_member_ids=result["unknown_member_ids"],
    )


@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> ProjectDetail:
    result = await svc.get(session, project_id)
    return ProjectDetail(
        **ProjectDetail.model_validate(result["project"]).model_dump(exclude={"member_ids"}),
        member_ids=result["member_ids"],
    )


@router.post("/{project_id}/members", response_model=MemberAddResponse)
async def add_member(
    project_id: uuid.UUID,
    body: MemberAdd,
    session: AsyncSession = Depends(get_session),
    svc: ProjectService = Depends(get_project_service),
) -> MemberAddResponse:
    added = await svc.add_member(session, project_id, body.user_id)
    return MemberAddResponse(added=added)


@router.get("/{project_id}/activities", response_model=list[ActivityItem])
async def list_project_activities(
    project_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    svc: ActivityService = Depends(get_activity_service),
) -> list[ActivityItem]:
    activities = await svc.list_by_project(session, project_id, limit=limit)
    return [ActivityItem.model_validate(a) for a in activities]


@router.get("/{project_id}/tasks", response_model=list[TaskItem])
async def list_project_tasks(
    project_id: uuid.UUID,
    assigned_to: uuid.UUID | None = Query(None),
    session: AsyncSession = Depends(get_session),
    svc: TaskService = Depends(get_task_service),
) -> list[TaskItem]:
    tasks = await svc.list_by_project(session, project_id, assigned_to=assigned_to)
    return [TaskItem.model_validate(t) for t in tasks]


@router.post(
    "/{project_id}/tasks", response_model=TaskItem, status_code=status.HTTP_201_CREATED
)
async def create_task(
    project_id: uuid.UUID,
    body: TaskCreate,
    session: AsyncSession = Depends(get_session),
    svc: TaskService = Depends(get_task_service),
) -> TaskItem:
    task = await svc.create(
        session,
        project_id=project_id,
        title=body.title,
        assigned_to=body.assigned_to,
        assigned_to_name=body.assigned_to_name,
        description=body.description,
        deadline_in_days=body.deadline_in_days,
    )
    return TaskItem.model_validate(task)
