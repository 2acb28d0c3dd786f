import asyncio
import base64
import re
from contextlib import asynccontextmanager

import git
import httpx
import pytest

from comment_fixer.agents.fix_decision_service import MISSING_CONTENT
from comment_fixer.core.exceptions import NoChangesError, RemoteError
from comment_fixer.models.github import FileDiffEntry, InboundEvent
from comment_fixer.models.verdict import ProposedChange, Verdict
from comment_fixer.services.comment_processor import CommentProcessor, PipelineOutcome
from comment_fixer.services.github_service import GitHubService
from tests.fakes import (
    TYPO_CONTENT,
    TYPO_FILE,
    FakeDecision,
    FakeGitHub,
    comment_payload,
    issue_comment_payload,
)


FIXED_CONTENT = TYPO_CONTENT.replace("recieve", "receive")

APPLY = Verdict(
    should_apply=True,
    confidence=0.95,
    reasoning="Spelling mistake in a docstring",
    changes=[ProposedChange(filename=TYPO_FILE, content=FIXED_CONTENT, description="Fix 'recieve' typo")],
)

REJECT = Verdict(
    should_apply=False,
    confidence=0.0,
    reasoning="Variable naming is a subjective preference",
    changes=[],
)


class RecordingWorkingCopies:
    """Working-copy manager that must never be touched"""

    def __init__(self):
        self.leases = []

    @asynccontextmanager
    async def lease(self, owner, repo):
        self.leases.append((owner, repo))
        raise AssertionError("working copy should not be used")
        yield


def typo_github():
    return FakeGitHub(
        files=[FileDiffEntry(filename=TYPO_FILE, status="modified", additions=3, changes=3)],
        contents={TYPO_FILE: TYPO_CONTENT},
    )


def run(processor, payload):
    return asyncio.run(processor.process_comment(InboundEvent.model_validate(payload)))


def test_typo_fix_is_pushed_and_reported(manager, remote_repo):
    github = typo_github()
    decision = FakeDecision(APPLY, summary="Corrected a spelling mistake in the handler docstring.")
    processor = CommentProcessor(github=github, decision=decision, working_copies=manager, bot_username="fixer-bot")

    outcome = run(processor, comment_payload())

    assert outcome == PipelineOutcome.APPLIED
    assert github.content_requests == [{"path": TYPO_FILE, "ref": "abc123def456"}]
    assert decision.evaluations[0]["file_contents"] == {TYPO_FILE: TYPO_CONTENT}

    assert len(github.comments) == 1
    body = github.comments[0]["body"]
    branch = re.search(r"\*\*Branch:\*\* `(fix/pr-42-\d+)`", body).group(1)
    assert "Changes Applied Successfully" in body
    assert "Corrected a spelling mistake" in body
    assert "**Confidence:** 95%" in body
    assert f"Create a new PR from `{branch}` to `main`" in body
    assert github.comments[0]["pr_number"] == 42

    pushed = git.Repo(remote_repo).commit(branch)
    assert pushed.tree[TYPO_FILE].data_stream.read().decode() == FIXED_CONTENT
    assert "Comment: #123456" in pushed.message


def test_subjective_comment_is_explained_not_applied():
    github = typo_github()
    working_copies = RecordingWorkingCopies()
    processor = CommentProcessor(
        github=github, decision=FakeDecision(REJECT), working_copies=working_copies, bot_username="fixer-bot",
    )

    outcome = run(processor, comment_payload(body="I think this variable name could be nicer"))

    assert outcome == PipelineOutcome.REJECTED
    assert working_copies.leases == []
    assert len(github.comments) == 1
    body = github.comments[0]["body"]
    assert "Will not apply" in body
    assert "Variable naming is a subjective preference" in body
    assert "**Confidence:** 0%" in body


def authorless(payload):
    payload["comment"]["user"] = None
    return payload


@pytest.mark.parametrize("payload", [
    comment_payload(action="edited"),
    comment_payload(action="deleted"),
    comment_payload(with_pr=False),
    issue_comment_payload(on_pr=False),
    comment_payload(author="fixer-bot"),
    comment_payload(author="Fixer-Bot"),
    authorless(comment_payload()),
])
def test_skipped_events_never_reach_decision_or_working_copy(payload):
    github = typo_github()
    decision = FakeDecision(APPLY)
    working_copies = RecordingWorkingCopies()
    processor = CommentProcessor(github=github, decision=decision, working_copies=working_copies, bot_username="fixer-bot")

    assert run(processor, payload) == PipelineOutcome.SKIPPED
    assert decision.evaluations == []
    assert working_copies.leases == []
    assert github.comments == []


def test_issue_comment_on_pr_fetches_pull_request(manager):
    github = typo_github()
    decision = FakeDecision(REJECT)
    processor = CommentProcessor(github=github, decision=decision, working_copies=manager, bot_username="fixer-bot")

    outcome = run(processor, issue_comment_payload(on_pr=True))

    assert outcome == PipelineOutcome.REJECTED
    assert github.pr_requests == [42]
    assert decision.evaluations[0]["pr"].base.ref == "main"


def test_unavailable_file_gets_placeholder():
    github = FakeGitHub(
        files=[
            FileDiffEntry(filename=TYPO_FILE, status="modified"),
            FileDiffEntry(filename="src/deleted.py", status="removed"),
        ],
        contents={TYPO_FILE: TYPO_CONTENT},
    )
    decision = FakeDecision(REJECT)
    processor = CommentProcessor(
        github=github, decision=decision, working_copies=RecordingWorkingCopies(), bot_username="fixer-bot",
    )

    assert run(processor, comment_payload()) == PipelineOutcome.REJECTED
    assert decision.evaluations[0]["file_contents"] == {
        TYPO_FILE: TYPO_CONTENT,
        "src/deleted.py": MISSING_CONTENT,
    }


def test_non_utf8_file_gets_placeholder_from_real_client():
    def handler(request: httpx.Request):
        path = request.url.path
        if path.endswith("/pulls/42/files"):
            return httpx.Response(200, json=[
                {"filename": TYPO_FILE, "status": "modified"},
                {"filename": "docs/legacy.txt", "status": "modified"},
            ])
        if path.endswith("/contents/docs/legacy.txt"):
            return httpx.Response(200, json={
                "encoding": "base64", "content": base64.b64encode("café\n".encode("latin-1")).decode(),
            })
        if path.endswith(f"/contents/{TYPO_FILE}"):
            return httpx.Response(200, json={
                "encoding": "base64", "content": base64.b64encode(TYPO_CONTENT.encode()).decode(),
            })
        return httpx.Response(201, json={"id": 1, "body": "ok", "user": {"login": "fixer-bot"}})

    github = GitHubService(
        token="secret-token",
        webhook_secret="test-secret",
        base_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
    )
    decision = FakeDecision(REJECT)
    processor = CommentProcessor(
        github=github, decision=decision, working_copies=RecordingWorkingCopies(), bot_username="fixer-bot",
    )

    assert run(processor, comment_payload()) == PipelineOutcome.REJECTED
    assert decision.evaluations[0]["file_contents"] == {
        TYPO_FILE: TYPO_CONTENT,
        "docs/legacy.txt": MISSING_CONTENT,
    }


def test_identical_content_reports_no_changes_error(manager):
    github = typo_github()
    unchanged = Verdict(
        should_apply=True,
        confidence=0.9,
        reasoning="looks wrong",
        changes=[ProposedChange(filename=TYPO_FILE, content=TYPO_CONTENT, description="noop")],
    )
    processor = CommentProcessor(
        github=github, decision=FakeDecision(unchanged), working_copies=manager, bot_username="fixer-bot",
    )

    assert run(processor, comment_payload()) == PipelineOutcome.FAILED
    assert len(github.comments) == 1
    body = github.comments[0]["body"]
    assert "Error Processing Comment" in body
    assert f"**Error Type:** {NoChangesError.__name__}" in body
    assert "No changes to commit" in body


def test_push_failure_reports_error_after_commit(tmp_path, remote_repo):
    from comment_fixer.services.git_service import WorkingCopyManager

    class FailingPushManager(WorkingCopyManager):
        def working_copy(self, owner, repo):
            wc = super().working_copy(owner, repo)

            def push(branch_name):
                wc._run("push", "origin", "refs/heads/does-not-exist")

            wc.push = push
            return wc

    manager = FailingPushManager(
        workspace_path=str(tmp_path / "ws"),
        remote_url_factory=lambda owner, repo: str(remote_repo),
        user_name="Fixer Bot",
        user_email="fixer-bot@example.com",
        timeout=60,
    )
    github = typo_github()
    processor = CommentProcessor(github=github, decision=FakeDecision(APPLY), working_copies=manager, bot_username="fixer-bot")

    assert run(processor, comment_payload()) == PipelineOutcome.FAILED
    assert len(github.comments) == 1
    assert "**Error Type:** GitOperationError" in github.comments[0]["body"]
    assert not [h for h in git.Repo(remote_repo).heads if h.name.startswith("fix/")]


def test_pr_context_fetch_failure_is_reported():
    github = FakeGitHub(files_error=RemoteError(502, "Bad Gateway"))
    decision = FakeDecision(APPLY)
    processor = CommentProcessor(
        github=github, decision=decision, working_copies=RecordingWorkingCopies(), bot_username="fixer-bot",
    )

    assert run(processor, comment_payload()) == PipelineOutcome.FAILED
    assert decision.evaluations == []
    assert "**Error Type:** RemoteError" in github.comments[0]["body"]


def test_comment_post_failure_does_not_raise():
    class BrokenCommentsGitHub(FakeGitHub):
        async def create_comment(self, owner, repo, pr_number, body):
            raise RemoteError(403, "Resource not accessible by integration")

    github = BrokenCommentsGitHub(files=[], contents={})
    processor = CommentProcessor(
        github=github, decision=FakeDecision(REJECT), working_copies=RecordingWorkingCopies(), bot_username="fixer-bot",
    )

    assert run(processor, comment_payload()) == PipelineOutcome.REJECTED
