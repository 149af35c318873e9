"""Task status workflow: To Do → In Review → Done.

Statuses only ever move forward. ``Done`` is terminal.
"""

from __future__ import annotations

from typing import Literal

TaskStatus = Literal["To Do", "In Review", "Done"]
MatchEvent = Literal["commit", "merge"]

TO_DO: TaskStatus = "To Do"
IN_REVIEW: TaskStatus = "In Review"
DONE: TaskStatus = "Done"

STATUSES: tuple[TaskStatus, ...] = (TO_DO, IN_REVIEW, DONE)

DEFAULT_BRANCHES = frozenset({"main", "master"})

_RANK: dict[str, int] = {status: rank for rank, status in enumerate(STATUSES)}


def is_default_branch(branch: str | None) -> bool:
    """Literal match against ``main`` / ``master``; no per-repo setting."""
    return branch in DEFAULT_BRANCHES


def source_status(event: MatchEvent) -> TaskStatus:
    """Status a task must be in to be a candidate for *event*."""
    return TO_DO if event == "commit" else IN_REVIEW


def target_status(event: MatchEvent, default_branch: bool) -> TaskStatus:
    """Status a matching task moves to.

    commit on a feature branch → In Review, commit on main/master → Done,
    merge (only ever into main/master) → Done.
    """
    if event == "commit" and not default_branch:
        return IN_REVIEW
    return DONE


def can_transition(current: str, requested: str) -> bool:
    """Forward moves and no-ops are allowed; nothing leaves Done."""
    if current not in _RANK or requested not in _RANK:
        return False
    if current == DONE:
        return requested == DONE
    return _RANK[requested] >= _RANK[current]
