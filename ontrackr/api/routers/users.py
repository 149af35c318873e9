"""Users router — a developer's GitHub activity across projects."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.api.deps import get_activity_service, get_session
from ontrackr.api.schemas.activity import ActivityItem, OpenIssueItem, UserActivityItem
from ontrackr.services.activity_service import ActivityService

router = APIRouter()


@router.get("/{github_username}/activities", response_model=list[UserActivityItem])
async def list_user_activities(
    github_username: str,
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    svc: ActivityService = Depends(get_activity_service),
) -> list[UserActivityItem]:
    items = await svc.list_by_user(session, github_username, limit=limit)
    return [
        UserActivityItem(
            **ActivityItem.model_validate(item["activity"]).model_dump(),
            project_name=item["project_name"],
        )
        for item in items
    ]


@router.get("/{github_username}/issues", response_model=list[OpenIssueItem])
async def list_user_open_issues(
    github_username: str,
    session: AsyncSession = Depends(get_session),
    svc: ActivityService = Depends(get_activity_service),
) -> list[OpenIssueItem]:
    issues = await svc.list_open_issues_for_user(session, github_username)
    return [
        OpenIssueItem(
            id=issue["activity"].id,
            project_id=issue["activity"].project_id,
            project_name=issue["project_name"],
            number=issue["number"],
            title=issue["activity"].title,
            github_url=issue["activity"].github_url,
            github_username=issue["activity"].github_username,
            created_at=issue["activity"].created_at,
        )
        for issue in issues
    ]
