"""SQLAlchemy ORM models — one file per table."""

from ontrackr.models.github_activity import GitHubActivity
from ontrackr.models.project import Project
from ontrackr.models.project_member import ProjectMember
from ontrackr.models.task import Task
from ontrackr.models.user import User
from ontrackr.models.webhook_event import WebhookEvent

__all__ = [
    "User",
    "Project",
    "ProjectMember",
    "Task",
    "GitHubActivity",
    "WebhookEvent",
]
