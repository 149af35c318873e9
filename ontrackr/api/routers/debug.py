"""Debug router — check a project's GitHub wiring and recent deliveries."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.api.deps import (
    get_activity_service,
    get_project_service,
    get_session,
    get_webhook_event_dao,
)
from ontrackr.api.schemas.activity import ActivityItem
from ontrackr.dao.webhook_event_dao import WebhookEventDAO
from ontrackr.services.activity_service import ActivityService
from ontrackr.services.project_service import ProjectService

router = APIRouter()


@router.get("/github-activity")
async def github_activity_diagnostics(
    project_id: uuid.UUID = Query(alias="projectId"),
    session: AsyncSession = Depends(get_session),
    projects: ProjectService = Depends(get_project_service),
    activities: ActivityService = Depends(get_activity_service),
    events: WebhookEventDAO = Depends(get_webhook_event_dao),
) -> dict:
    project = (await projects.get(session, project_id))["project"]
    recent_activity = await activities.list_by_project(session, project.id, limit=10)
    recent_events = await events.list_recent(session, project.id, limit=5)

    configured = bool(project.github_owner and project.github_repo)
    return {
        "project": {
            "id": str(project.id),
            "name": project.name,
            "githubOwner": project.github_owner,
            "githubRepo": project.github_repo,
            "githubRepoUrl": project.github_repo_url,
        },
        "activitiesCount": len(recent_activity),
        "activities": [
            ActivityItem.model_validate(a).model_dump(mode="json") for a in recent_activity
        ],
        "recentEventsCount": len(recent_events),
        "recentEvents": [
            {
                "id": str(e.id),
                "eventType": e.event_type,
                "action": e.action,
                "deliveryId": e.delivery_id,
                "repository": e.repository,
                "createdAt": e.created_at.isoformat() if e.created_at else "N/A",
            }
            for e in recent_events
        ],
        "diagnostics": {
            "hasGitHubConfig": configured,
            "expectedRepository": (
                f"{project.github_owner}/{project.github_repo}" if configured else "Not configured"
            ),
        },
    }
