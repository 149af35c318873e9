"""WebhookDispatcher — GitHub webhook deliveries → activity records and task moves.

A delivery is handled in three stages:

1. Structural checks: signature, event header, repository coordinates,
   project resolution. Any failure rejects the whole delivery.
2. Raw audit record for every routed, non-ping delivery.
3. Per-record pipeline (one commit / PR action / issue action each):
   membership guard → idempotency check → append → task matching.
   Each record runs in its own SAVEPOINT; a failing record is logged and
   counted and the remaining records still run. Matching gets a nested
   SAVEPOINT so a matcher failure keeps the recorded activity.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.core.github import branch_from_ref, verify_signature
from ontrackr.core.task_state import is_default_branch
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.webhook_event_dao import WebhookEventDAO
from ontrackr.models.project import Project
from ontrackr.services import (
    InvalidSignatureError,
    MalformedWebhookError,
    UnroutableEventError,
    WebhookConfigError,
)
from ontrackr.services.activity_service import (
    ActivityRecord,
    ActivityService,
    commit_github_id,
    issue_github_id,
    pull_request_github_id,
)
from ontrackr.services.membership_service import MembershipService
from ontrackr.services.task_matcher import TaskMatcher, TaskTransition

log = structlog.get_logger("ontrackr.webhook")

SUPPORTED_EVENTS = ("push", "pull_request", "issues")

Matcher = Callable[[], Awaitable[list[TaskTransition]]]


@dataclass
class ProcessingSummary:
    """What happened to the records of one delivery."""

    recorded: int = 0
    duplicates: int = 0
    unauthorized: int = 0
    failed: int = 0
    match_failed: int = 0
    tasks_updated: list[TaskTransition] = field(default_factory=list)


@dataclass
class DeliveryResult:
    event: str
    repository: str
    project_id: uuid.UUID | None = None
    project_name: str | None = None
    ping: bool = False
    summary: ProcessingSummary = field(default_factory=ProcessingSummary)


@dataclass
class _Delivery:
    """A parsed, routed delivery."""

    event: str
    payload: dict[str, Any]
    project: Project
    repository: str
    owner: str
    delivery_id: str | None

    @property
    def sender(self) -> dict[str, Any]:
        return self.payload.get("sender") or {}


def _avatar_for(delivery: _Delivery, actor: str, fallback: str | None = None) -> str | None:
    sender = delivery.sender
    if sender.get("login") and sender["login"].lower() == actor.lower():
        return sender.get("avatar_url") or fallback
    return fallback


class WebhookDispatcher:
    """Stateless dispatcher; one :meth:`dispatch` call per delivery."""

    def __init__(
        self,
        project_dao: ProjectDAO,
        webhook_event_dao: WebhookEventDAO,
        activity_service: ActivityService,
        membership_service: MembershipService,
        task_matcher: TaskMatcher,
        *,
        webhook_secret: str | None = None,
        verify_signatures: bool = True,
    ) -> None:
        self._project_dao = project_dao
        self._event_dao = webhook_event_dao
        self._activities = activity_service
        self._membership = membership_service
        self._matcher = task_matcher
        self._secret = webhook_secret
        self._verify_signatures = verify_signatures

    # ── structural checks ─────────────────────────────────────────────────

    def verify(self, body: bytes, signature: str | None) -> None:
        """Reject the delivery unless its HMAC signature checks out.

        Raises :class:`WebhookConfigError` when verification is enabled
        without a secret, :class:`InvalidSignatureError` on a bad signature.
        """
        if not self._verify_signatures:
            return
        if not self._secret:
            raise WebhookConfigError("set ONTRACKR_WEBHOOK_SECRET or disable verification")
        if not verify_signature(body, signature, self._secret):
            raise InvalidSignatureError(
                "missing signature" if not signature else "signature mismatch"
            )

    @staticmethod
    def parse(event_type: str | None, body: bytes) -> tuple[dict[str, Any], str, str]:
        """Return (payload, owner login, repo name).

        Raises :class:`MalformedWebhookError` for a missing event type, a
        body that is not a JSON object, or missing repository coordinates.
        """
        if not event_type:
            raise MalformedWebhookError(error="Missing event type")
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedWebhookError("body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedWebhookError("body is not a JSON object")

        repository = payload.get("repository")
        if not isinstance(repository, dict):
            raise MalformedWebhookError("missing repository")
        owner = repository.get("owner")
        owner = owner.get("login") if isinstance(owner, dict) else None
        repo = repository.get("name")
        if not owner or not repo:
            raise MalformedWebhookError("missing repository owner or name")
        return payload, owner, repo

    # ── entry point ───────────────────────────────────────────────────────

    async def dispatch(
        self,
        session: AsyncSession,
        *,
        event_type: str | None,
        body: bytes,
        signature: str | None = None,
        delivery_id: str | None = None,
    ) -> DeliveryResult:
        """Process one delivery inside a single transaction.

        *session* must not have a transaction open; an exception escaping
        this method rolls everything back.
        """
        self.verify(body, signature)
        payload, owner, repo = self.parse(event_type, body)
        repository = f"{owner}/{repo}"

        if event_type == "ping":
            log.info("webhook.ping", repository=repository)
            return DeliveryResult(event=event_type, repository=repository, ping=True)

        async with session.begin():
            project = await self._project_dao.get_by_repo(session, owner, repo)
            if project is None:
                log.warning("webhook.unroutable", repository=repository)
                raise UnroutableEventError(repository=repository)

            delivery = _Delivery(event_type, payload, project, repository, owner, delivery_id)
            log.info(
                "webhook.routed",
                repository=repository,
                project_id=str(project.id),
                project_name=project.name,
            )
            await self._store_raw_event(session, delivery)

            result = DeliveryResult(
                event=event_type,
                repository=repository,
                project_id=project.id,
                project_name=project.name,
            )
            if event_type == "push":
                await self._handle_push(session, delivery, result.summary)
            elif event_type == "pull_request":
                await self._handle_pull_request(session, delivery, result.summary)
            elif event_type == "issues":
                await self._handle_issues(session, delivery, result.summary)
            else:
                log.info("webhook.unhandled_event", repository=repository)

        log.info(
            "webhook.processed",
            repository=repository,
            recorded=result.summary.recorded,
            duplicates=result.summary.duplicates,
            unauthorized=result.summary.unauthorized,
            failed=result.summary.failed,
            match_failed=result.summary.match_failed,
            tasks_updated=len(result.summary.tasks_updated),
        )
        return result

    async def _store_raw_event(self, session: AsyncSession, delivery: _Delivery) -> None:
        repository = delivery.payload["repository"]
        sender = delivery.sender
        await self._event_dao.create(
            session,
            project_id=delivery.project.id,
            event_type=delivery.event,
            action=delivery.payload.get("action") or "unknown",
            delivery_id=delivery.delivery_id,
            repository={
                "name": repository.get("name"),
                "fullName": repository.get("full_name") or delivery.repository,
                "owner": delivery.owner,
            },
            sender={"login": sender.get("login"), "avatarUrl": sender.get("avatar_url")},
            payload=delivery.payload,
        )

    # ── per-event handlers ────────────────────────────────────────────────

    async def _handle_push(
        self, session: AsyncSession, delivery: _Delivery, summary: ProcessingSummary
    ) -> None:
        commits = delivery.payload.get("commits") or []
        branch = branch_from_ref(delivery.payload.get("ref"))
        default_branch = is_default_branch(branch)
        sender_login = delivery.sender.get("login")
        log.debug("webhook.push", branch=branch, default_branch=default_branch, commits=len(commits))

        for index, commit in enumerate(commits):

            async def _build(commit: dict[str, Any] = commit):
                sha = commit["id"]
                message = commit.get("message") or ""
                actor = (commit.get("author") or {}).get("username") or sender_login
                if not actor:
                    raise ValueError(f"commit {sha} has no author username and no sender")
                record = ActivityRecord(
                    project_id=delivery.project.id,
                    activity_type="commit",
                    github_id=commit_github_id(sha),
                    title=message.split("\n", 1)[0],
                    github_username=actor,
                    github_url=commit.get("url")
                    or f"https://github.com/{delivery.repository}/commit/{sha}",
                    branch=branch or None,
                    repository_full_name=delivery.repository,
                    avatar_url=_avatar_for(delivery, actor),
                )

                async def _match() -> list[TaskTransition]:
                    return await self._matcher.match_commit(
                        session,
                        delivery.project.id,
                        message,
                        actor,
                        default_branch=default_branch,
                    )

                return record, _match

            await self._process_record(
                session, summary, _build, unit=f"commit[{index}]", sha=commit.get("id")
            )

    async def _handle_pull_request(
        self, session: AsyncSession, delivery: _Delivery, summary: ProcessingSummary
    ) -> None:
        action = delivery.payload.get("action")
        pr = delivery.payload.get("pull_request") or {}
        merged = action == "closed" and bool(pr.get("merged"))
        if action != "opened" and not merged:
            log.debug("webhook.pull_request_ignored", action=action)
            return

        async def _build():
            number = pr.get("number") or delivery.payload["number"]
            user = pr.get("user") or {}
            actor = user["login"]
            base_ref = (pr.get("base") or {}).get("ref")
            kind = "merged" if merged else "opened"
            record = ActivityRecord(
                project_id=delivery.project.id,
                activity_type=f"pull_request_{kind}",
                github_id=pull_request_github_id(number, kind),
                title=pr.get("title") or "",
                github_username=actor,
                github_url=pr.get("html_url")
                or f"https://github.com/{delivery.repository}/pull/{number}",
                branch=(base_ref if merged else (pr.get("head") or {}).get("ref")),
                repository_full_name=delivery.repository,
                avatar_url=_avatar_for(delivery, actor, user.get("avatar_url")),
            )
            if not merged or not is_default_branch(base_ref):
                return record, None

            async def _match() -> list[TaskTransition]:
                return await self._matcher.match_merge(
                    session, delivery.project.id, pr.get("title") or "", pr.get("body"), actor
                )

            return record, _match

        await self._process_record(
            session, summary, _build, unit=f"pull_request[{action}]", number=pr.get("number")
        )

    async def _handle_issues(
        self, session: AsyncSession, delivery: _Delivery, summary: ProcessingSummary
    ) -> None:
        action = delivery.payload.get("action")
        if action not in ("opened", "closed"):
            log.debug("webhook.issue_ignored", action=action)
            return
        issue = delivery.payload.get("issue") or {}

        async def _build():
            number = issue["number"]
            if action == "opened":
                user = issue.get("user") or {}
                actor, fallback_avatar = user["login"], user.get("avatar_url")
            else:
                # closing is attributed to whoever closed it
                actor, fallback_avatar = delivery.sender["login"], None
            record = ActivityRecord(
                project_id=delivery.project.id,
                activity_type=f"issue_{action}",
                github_id=issue_github_id(number, action),
                title=issue.get("title") or "",
                github_username=actor,
                github_url=issue.get("html_url")
                or f"https://github.com/{delivery.repository}/issues/{number}",
                repository_full_name=delivery.repository,
                avatar_url=_avatar_for(delivery, actor, fallback_avatar),
            )
            return record, None

        await self._process_record(
            session, summary, _build, unit=f"issue[{action}]", number=issue.get("number")
        )

    # ── per-record pipeline ───────────────────────────────────────────────

    async def _process_record(
        self,
        session: AsyncSession,
        summary: ProcessingSummary,
        build: Callable[[], Awaitable[tuple[ActivityRecord, Matcher | None]]],
        **context: Any,
    ) -> None:
        """guard → exists → append → match, isolated from sibling records.

        Matching runs in a SAVEPOINT of its own: a matcher failure is
        counted in ``match_failed`` and leaves the appended activity in place.
        """
        try:
            async with session.begin_nested():
                record, match = await build()
                key = {
                    "activity_type": record.activity_type,
                    "github_id": record.github_id,
                    "github_username": record.github_username,
                }

                if not await self._membership.is_authorized(
                    session, record.project_id, record.github_username
                ):
                    summary.unauthorized += 1
                    log.info("webhook.record_unauthorized", **context, **key)
                    return

                if await self._activities.exists(
                    session, record.project_id, record.activity_type, record.github_id
                ):
                    summary.duplicates += 1
                    log.info("webhook.record_duplicate", **context, **key)
                    return

                if not await self._activities.append(session, record):
                    summary.duplicates += 1
                    log.info("webhook.record_duplicate", race=True, **context, **key)
                    return
        except Exception:
            summary.failed += 1
            log.error("webhook.record_failed", **context, exc_info=True)
            return

        summary.recorded += 1
        if match is not None:
            await self._run_match(session, summary, record, match, **context)

    async def _run_match(
        self,
        session: AsyncSession,
        summary: ProcessingSummary,
        record: ActivityRecord,
        match: Matcher,
        **context: Any,
    ) -> None:
        try:
            async with session.begin_nested():
                transitions = await match()
                if transitions:
                    await self._activities.link_task(session, record, transitions[0].task_id)
        except Exception:
            summary.match_failed += 1
            log.error(
                "webhook.match_failed", github_id=record.github_id, **context, exc_info=True
            )
            return
        summary.tasks_updated.extend(transitions)
