"""Tests for WebhookDispatcher.

The activity store, tasks and membership run against small in-memory DAOs
so whole deliveries, including redeliveries, can be driven end to end.
"""

import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from ontrackr.core.github import sign_payload
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.user_dao import UserDAO
from ontrackr.dao.webhook_event_dao import WebhookEventDAO
from ontrackr.models.project import Project
from ontrackr.models.task import Task
from ontrackr.services import (
    InvalidSignatureError,
    MalformedWebhookError,
    UnroutableEventError,
    WebhookConfigError,
)
from ontrackr.services.activity_service import ActivityService
from ontrackr.services.membership_service import MembershipService
from ontrackr.services.task_matcher import TaskMatcher
from ontrackr.services.webhook_service import WebhookDispatcher

SECRET = "s3cret"
LEAD_ID = uuid.uuid4()
ALICE_ID = uuid.uuid4()
PROJECT_ID = uuid.uuid4()

# ---------------------------------------------------------------------------
# In-memory DAOs
# ---------------------------------------------------------------------------


class FakeActivityDAO:
    def __init__(self):
        self.rows: dict[tuple, dict] = {}
        self.fail_on: set[str] = set()

    async def exists_by_key(self, session, project_id, activity_type, github_id):
        return (project_id, activity_type, github_id) in self.rows

    async def insert_if_absent(self, session, values):
        if values["github_id"] in self.fail_on:
            raise RuntimeError(f"write failed for {values['github_id']}")
        key = (values["project_id"], values["activity_type"], values["github_id"])
        if key in self.rows:
            return False
        self.rows[key] = values
        return True

    async def link_task(self, session, project_id, activity_type, github_id, task_id):
        row = self.rows.get((project_id, activity_type, github_id))
        if row is None or row.get("related_task_id"):
            return False
        row["related_task_id"] = task_id
        return True

    def by_type(self, activity_type):
        return [v for (_, t, _), v in self.rows.items() if t == activity_type]


class FakeTaskDAO:
    def __init__(self, tasks):
        self.tasks = {t.id: t for t in tasks}
        self.unavailable = False

    async def list_by_status(self, session, project_id, status):
        if self.unavailable:
            raise RuntimeError("task store unavailable")
        return [t for t in self.tasks.values() if t.project_id == project_id and t.status == status]

    async def set_status(self, session, pk, *, status, expected_status=None):
        task = self.tasks[pk]
        if expected_status is not None and task.status != expected_status:
            return False
        task.status = status
        return True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_project() -> Project:
    return Project(
        id=PROJECT_ID,
        name="Widgets",
        description="",
        github_owner="acme",
        github_repo="widgets",
        github_repo_url="https://github.com/acme/widgets",
        status="Active",
        created_by=LEAD_ID,
    )


def _make_task(**overrides) -> Task:
    defaults = {
        "id": uuid.uuid4(),
        "project_id": PROJECT_ID,
        "title": "Fix login bug",
        "status": "To Do",
        "assigned_to": ALICE_ID,
        "keywords": ["bug", "fix", "login"],
        "created_at": datetime.now(timezone.utc),
    }
    defaults.update(overrides)
    return Task(**defaults)


class Harness:
    """A dispatcher wired to in-memory state."""

    def __init__(self, *, tasks=(), members=("alice", "lead"), project=True, **dispatcher_kw):
        self.activity_dao = FakeActivityDAO()
        self.task_dao = FakeTaskDAO(list(tasks))

        self.project_dao = AsyncMock(spec=ProjectDAO)
        self.project_dao.get_by_repo.return_value = _make_project() if project else None
        self.project_dao.list_authorized_usernames.return_value = set(members)
        self.project_dao.get_names.return_value = {}

        self.user_dao = AsyncMock(spec=UserDAO)
        usernames = {ALICE_ID: "alice", LEAD_ID: "lead"}
        self.user_dao.get_github_username.side_effect = lambda session, uid: usernames.get(uid)

        self.event_dao = AsyncMock(spec=WebhookEventDAO)

        self.dispatcher = WebhookDispatcher(
            self.project_dao,
            self.event_dao,
            ActivityService(self.activity_dao, self.project_dao),
            MembershipService(self.project_dao, fail_open=True),
            TaskMatcher(self.task_dao, self.user_dao),
            **{"webhook_secret": SECRET, "verify_signatures": False, **dispatcher_kw},
        )

    async def send(self, session, event, payload, **kw):
        return await self.dispatcher.dispatch(
            session, event_type=event, body=json.dumps(payload).encode(), **kw
        )


def _repository():
    return {
        "name": "widgets",
        "full_name": "acme/widgets",
        "owner": {"login": "acme"},
    }


def _push(*commits, ref="refs/heads/main", sender="alice"):
    return {
        "ref": ref,
        "repository": _repository(),
        "sender": {"login": sender, "avatar_url": f"https://avatars/{sender}"},
        "commits": list(commits),
    }


def _commit(sha, message, username="alice"):
    return {
        "id": sha,
        "message": message,
        "url": f"https://github.com/acme/widgets/commit/{sha}",
        "author": {"name": username.title(), "username": username},
    }


def _pull_request(action, *, number=42, merged=False, base="main", head="feature/login",
                  title="Fix login bug", body=None, user="alice"):
    return {
        "action": action,
        "number": number,
        "repository": _repository(),
        "sender": {"login": user},
        "pull_request": {
            "number": number,
            "title": title,
            "body": body,
            "merged": merged,
            "html_url": f"https://github.com/acme/widgets/pull/{number}",
            "user": {"login": user, "avatar_url": f"https://avatars/{user}"},
            "base": {"ref": base},
            "head": {"ref": head},
        },
    }


def _issue(action, *, number=7, opener="alice", sender="alice"):
    return {
        "action": action,
        "repository": _repository(),
        "sender": {"login": sender},
        "issue": {
            "number": number,
            "title": "Login page crashes",
            "html_url": f"https://github.com/acme/widgets/issues/{number}",
            "user": {"login": opener},
        },
    }


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


class TestParse:
    def test_ok(self):
        payload, owner, repo = WebhookDispatcher.parse("push", json.dumps(_push()).encode())
        assert (owner, repo) == ("acme", "widgets")
        assert payload["ref"] == "refs/heads/main"

    def test_missing_event_type(self):
        with pytest.raises(MalformedWebhookError) as exc_info:
            WebhookDispatcher.parse(None, b"{}")
        assert exc_info.value.error == "Missing event type"
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b'"text"'])
    def test_not_a_json_object(self, body):
        with pytest.raises(MalformedWebhookError):
            WebhookDispatcher.parse("push", body)

    @pytest.mark.parametrize(
        "payload",
        [
            {"ref": "refs/heads/main"},
            {"repository": {"name": "widgets"}},
            {"repository": {"owner": {"login": "acme"}}},
            {"repository": "acme/widgets"},
            {"repository": {"name": "widgets", "owner": "acme"}},
        ],
    )
    def test_missing_repository(self, payload):
        with pytest.raises(MalformedWebhookError) as exc_info:
            WebhookDispatcher.parse("push", json.dumps(payload).encode())
        assert exc_info.value.error == "Invalid payload"


class TestSignature:
    def _dispatcher(self, **kw):
        return Harness(verify_signatures=True, **kw).dispatcher

    def test_valid(self):
        body = b'{"zen": "hi"}'
        self._dispatcher().verify(body, sign_payload(body, SECRET))

    def test_missing(self):
        with pytest.raises(InvalidSignatureError) as exc_info:
            self._dispatcher().verify(b"{}", None)
        assert exc_info.value.status_code == 401

    def test_mismatch(self):
        with pytest.raises(InvalidSignatureError):
            self._dispatcher().verify(b"{}", sign_payload(b"{}", "wrong"))

    def test_secret_not_configured(self):
        with pytest.raises(WebhookConfigError) as exc_info:
            self._dispatcher(webhook_secret=None).verify(b"{}", "sha256=00")
        assert exc_info.value.status_code == 500

    def test_disabled(self):
        Harness(verify_signatures=False, webhook_secret=None).dispatcher.verify(b"{}", None)

    async def test_checked_before_parsing(self, mock_session):
        h = Harness(verify_signatures=True)
        with pytest.raises(InvalidSignatureError):
            await h.dispatcher.dispatch(mock_session, event_type=None, body=b"garbage")
        h.project_dao.get_by_repo.assert_not_awaited()

    async def test_signed_delivery_processed(self, mock_session):
        h = Harness(verify_signatures=True)
        body = json.dumps(_push(_commit("a1", "Update docs"))).encode()

        result = await h.dispatcher.dispatch(
            mock_session, event_type="push", body=body, signature=sign_payload(body, SECRET)
        )
        assert result.summary.recorded == 1


class TestRouting:
    async def test_ping_touches_nothing(self, mock_session):
        h = Harness()
        payload = {"zen": "Design for failure.", "hook_id": 1, "repository": _repository()}

        result = await h.send(mock_session, "ping", payload)

        assert result.ping is True
        assert result.repository == "acme/widgets"
        h.project_dao.get_by_repo.assert_not_awaited()
        h.event_dao.create.assert_not_awaited()
        mock_session.begin.assert_not_called()

    async def test_unroutable(self, mock_session):
        h = Harness(project=False)

        with pytest.raises(UnroutableEventError) as exc_info:
            await h.send(mock_session, "push", _push(_commit("a1", "Fix login")))
        assert exc_info.value.status_code == 404
        assert exc_info.value.extra == {"repository": "acme/widgets"}
        h.event_dao.create.assert_not_awaited()
        assert h.activity_dao.rows == {}

    async def test_raw_event_stored(self, mock_session):
        h = Harness()

        await h.send(mock_session, "push", _push(_commit("a1", "Update docs")), delivery_id="d-1")

        kwargs = h.event_dao.create.call_args.kwargs
        assert kwargs["project_id"] == PROJECT_ID
        assert kwargs["event_type"] == "push"
        assert kwargs["action"] == "unknown"
        assert kwargs["delivery_id"] == "d-1"
        assert kwargs["repository"]["fullName"] == "acme/widgets"
        assert kwargs["sender"]["login"] == "alice"

    async def test_unsupported_event_stored_only(self, mock_session):
        h = Harness()
        payload = {"action": "created", "repository": _repository(), "sender": {"login": "alice"}}

        result = await h.send(mock_session, "star", payload)

        assert result.summary.recorded == 0
        h.event_dao.create.assert_awaited_once()

    async def test_runs_in_one_transaction(self, mock_session):
        h = Harness()
        await h.send(mock_session, "push", _push(_commit("a1", "x"), _commit("a2", "y")))
        mock_session.begin.assert_called_once()


# ---------------------------------------------------------------------------
# push
# ---------------------------------------------------------------------------


class TestPush:
    async def test_commit_record(self, mock_session):
        h = Harness()

        result = await h.send(
            mock_session,
            "push",
            _push(_commit("abc123", "Fix login bug\n\nlong description"), ref="refs/heads/feature/login"),
        )

        assert result.project_id == PROJECT_ID
        assert result.summary.recorded == 1
        [row] = h.activity_dao.by_type("commit")
        assert row["github_id"] == "abc123"
        assert row["title"] == "Fix login bug"
        assert row["branch"] == "feature/login"
        assert row["github_username"] == "alice"
        assert row["avatar_url"] == "https://avatars/alice"
        assert row["repository_full_name"] == "acme/widgets"

    async def test_main_branch_moves_task_to_done(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task])

        result = await h.send(mock_session, "push", _push(_commit("c1", "Fix login bug")))

        assert task.status == "Done"
        [transition] = result.summary.tasks_updated
        assert (transition.task_id, transition.from_status, transition.to_status) == (
            task.id,
            "To Do",
            "Done",
        )
        assert h.activity_dao.by_type("commit")[0]["related_task_id"] == task.id

    async def test_feature_branch_moves_task_to_in_review(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task])

        await h.send(
            mock_session, "push", _push(_commit("c1", "Fix login bug"), ref="refs/heads/feature/login")
        )
        assert task.status == "In Review"

    async def test_author_username_beats_sender(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task], members=("alice", "bob"))

        await h.send(
            mock_session, "push", _push(_commit("c1", "Fix login bug", username="bob"), sender="alice")
        )

        [row] = h.activity_dao.by_type("commit")
        assert row["github_username"] == "bob"
        assert row["avatar_url"] is None
        # bob is not the assignee
        assert task.status == "To Do"

    async def test_sender_fallback_for_unlinked_author(self, mock_session):
        h = Harness()
        commit = _commit("c1", "Update docs")
        commit["author"] = {"name": "Alice", "email": "alice@example.com"}

        await h.send(mock_session, "push", _push(commit, sender="alice"))
        assert h.activity_dao.by_type("commit")[0]["github_username"] == "alice"

    async def test_non_member_dropped(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task], members=("lead",))

        result = await h.send(mock_session, "push", _push(_commit("c1", "Fix login bug")))

        assert result.summary.unauthorized == 1
        assert result.summary.recorded == 0
        assert h.activity_dao.rows == {}
        assert task.status == "To Do"

    async def test_membership_case_insensitive(self, mock_session):
        h = Harness(members=("alice",))

        result = await h.send(mock_session, "push", _push(_commit("c1", "x", username="Alice")))
        assert result.summary.recorded == 1

    async def test_redelivery_is_idempotent(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task])
        payload = _push(_commit("c1", "Fix login bug"), _commit("c2", "Update docs"))

        first = await h.send(mock_session, "push", payload)
        second = await h.send(mock_session, "push", payload)

        assert first.summary.recorded == 2
        assert second.summary.recorded == 0
        assert second.summary.duplicates == 2
        assert second.summary.tasks_updated == []
        assert len(h.activity_dao.rows) == 2
        assert task.status == "Done"

    async def test_failing_commit_does_not_stop_batch(self, mock_session):
        h = Harness()
        h.activity_dao.fail_on = {"c2"}
        payload = _push(_commit("c1", "one"), _commit("c2", "two"), _commit("c3", "three"))

        result = await h.send(mock_session, "push", payload)

        assert result.summary.recorded == 2
        assert result.summary.failed == 1
        assert {row["github_id"] for row in h.activity_dao.by_type("commit")} == {"c1", "c3"}
        # per commit: record, membership lookup, and matching for the two recorded
        assert mock_session.begin_nested.call_count == 8

    async def test_matcher_failure_keeps_activity(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task])
        h.task_dao.unavailable = True

        result = await h.send(mock_session, "push", _push(_commit("c1", "Fix login bug")))

        summary = result.summary
        assert (summary.recorded, summary.failed, summary.match_failed) == (1, 0, 1)
        assert summary.tasks_updated == []
        [row] = h.activity_dao.by_type("commit")
        assert row.get("related_task_id") is None
        assert task.status == "To Do"

    async def test_matcher_recovers_on_next_delivery(self, mock_session):
        task = _make_task()
        h = Harness(tasks=[task])
        h.task_dao.unavailable = True

        first = await h.send(mock_session, "push", _push(_commit("c1", "Update docs")))
        h.task_dao.unavailable = False
        second = await h.send(mock_session, "push", _push(_commit("c2", "Fix login bug")))

        assert first.summary.match_failed == 1
        assert second.summary.match_failed == 0
        assert task.status == "Done"

    async def test_malformed_commit_counted_as_failed(self, mock_session):
        h = Harness()
        payload = _push({"message": "no sha"}, _commit("c2", "two"))

        result = await h.send(mock_session, "push", payload)
        assert (result.summary.failed, result.summary.recorded) == (1, 1)

    async def test_empty_push(self, mock_session):
        h = Harness()
        result = await h.send(mock_session, "push", _push())
        assert result.summary.recorded == 0
        h.event_dao.create.assert_awaited_once()


# ---------------------------------------------------------------------------
# pull_request
# ---------------------------------------------------------------------------


class TestPullRequest:
    async def test_opened(self, mock_session):
        h = Harness()

        result = await h.send(mock_session, "pull_request", _pull_request("opened"))

        assert result.summary.recorded == 1
        [row] = h.activity_dao.by_type("pull_request_opened")
        assert row["github_id"] == "pr-42-opened"
        assert row["branch"] == "feature/login"
        assert row["avatar_url"] == "https://avatars/alice"

    async def test_opened_twice_same_id(self, mock_session):
        h = Harness()

        await h.send(mock_session, "pull_request", _pull_request("opened"))
        result = await h.send(mock_session, "pull_request", _pull_request("opened"))

        assert result.summary.duplicates == 1
        assert len(h.activity_dao.by_type("pull_request_opened")) == 1

    async def test_opened_does_not_move_tasks(self, mock_session):
        task = _make_task(status="In Review")
        h = Harness(tasks=[task])

        await h.send(mock_session, "pull_request", _pull_request("opened"))
        assert task.status == "In Review"

    async def test_merged_into_main(self, mock_session):
        task = _make_task(status="In Review")
        h = Harness(tasks=[task])

        result = await h.send(
            mock_session, "pull_request", _pull_request("closed", merged=True, body="Fixes login")
        )

        [row] = h.activity_dao.by_type("pull_request_merged")
        assert row["github_id"] == "pr-42-merged"
        assert row["branch"] == "main"
        assert task.status == "Done"
        assert [t.to_status for t in result.summary.tasks_updated] == ["Done"]

    async def test_merged_into_other_branch_records_only(self, mock_session):
        task = _make_task(status="In Review")
        h = Harness(tasks=[task])

        result = await h.send(
            mock_session, "pull_request", _pull_request("closed", merged=True, base="develop")
        )

        assert result.summary.recorded == 1
        assert task.status == "In Review"

    async def test_closed_without_merge_ignored(self, mock_session):
        h = Harness()

        result = await h.send(mock_session, "pull_request", _pull_request("closed", merged=False))

        assert result.summary.recorded == 0
        assert h.activity_dao.rows == {}
        h.event_dao.create.assert_awaited_once()

    @pytest.mark.parametrize("action", ["synchronize", "edited", "reopened"])
    async def test_other_actions_ignored(self, mock_session, action):
        h = Harness()
        result = await h.send(mock_session, "pull_request", _pull_request(action))
        assert result.summary.recorded == 0


# ---------------------------------------------------------------------------
# issues
# ---------------------------------------------------------------------------


class TestIssues:
    async def test_opened_attributed_to_opener(self, mock_session):
        h = Harness(members=("alice", "lead"))

        await h.send(mock_session, "issues", _issue("opened", opener="alice", sender="alice"))

        [row] = h.activity_dao.by_type("issue_opened")
        assert row["github_id"] == "issue-7-opened"
        assert row["github_username"] == "alice"
        assert row["branch"] is None

    async def test_closed_attributed_to_sender(self, mock_session):
        h = Harness(members=("alice", "lead"))

        await h.send(mock_session, "issues", _issue("closed", opener="alice", sender="lead"))

        [row] = h.activity_dao.by_type("issue_closed")
        assert row["github_id"] == "issue-7-closed"
        assert row["github_username"] == "lead"

    async def test_closed_by_outsider_dropped(self, mock_session):
        h = Harness(members=("alice",))

        result = await h.send(
            mock_session, "issues", _issue("closed", opener="alice", sender="mallory")
        )
        assert result.summary.unauthorized == 1

    async def test_other_actions_ignored(self, mock_session):
        h = Harness()
        result = await h.send(mock_session, "issues", _issue("labeled"))
        assert result.summary.recorded == 0
        assert h.activity_dao.rows == {}
