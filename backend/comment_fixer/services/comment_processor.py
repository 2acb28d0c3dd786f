"""
Comment Processor
Runs one PR comment through analysis and, when approved, the fix workflow
"""
import asyncio
from enum import Enum
from typing import Dict, List, Optional
from comment_fixer.agents.fix_decision_service import MISSING_CONTENT, FixDecisionService
from comment_fixer.core.config import settings
from comment_fixer.core.exceptions import RemoteError
from comment_fixer.models.github import Comment, FileDiffEntry, InboundEvent, PullRequest
from comment_fixer.models.verdict import Verdict
from comment_fixer.services.comment_formatter import CommentFormatter
from comment_fixer.services.git_service import WorkingCopyManager
from comment_fixer.services.github_service import GitHubService
from comment_fixer.utils.logger import logger


class PipelineOutcome(str, Enum):
    SKIPPED = "skipped"
    REJECTED = "rejected"
    APPLIED = "applied"
    FAILED = "failed"


class CommentProcessor:

    def __init__(
        self,
        github: GitHubService = None,
        decision: FixDecisionService = None,
        working_copies: WorkingCopyManager = None,
        bot_username: str = None,
    ):
        if github is None:
            from comment_fixer.services.github_service import github_service as github
        if decision is None:
            from comment_fixer.agents.fix_decision_service import fix_decision_service as decision
        if working_copies is None:
            from comment_fixer.services.git_service import working_copy_manager as working_copies
        self.github = github
        self.decision = decision
        self.working_copies = working_copies
        self.bot_username = bot_username or settings.BOT_USERNAME

    def skip_reason(self, event: InboundEvent) -> Optional[str]:
        """Why this event needs no processing, or None"""
        if event.action != "created":
            return f"Skipping {event.action} action"
        if event.comment is None:
            return "No comment found in payload"
        if event.pr_number is None:
            return "Skipping non-PR comment"
        if event.comment.user is None:
            return "Skipping comment without an author"
        if event.comment.user.login.lower() == self.bot_username.lower():
            return "Skipping comment from bot itself"
        return None

    async def process_comment(self, event: InboundEvent) -> PipelineOutcome:
        """Main entry point, called once per accepted webhook delivery"""
        reason = self.skip_reason(event)
        if reason:
            logger.info(reason)
            return PipelineOutcome.SKIPPED

        comment = event.comment
        owner, repo, pr_number = event.owner, event.repo, event.pr_number
        logger.info(f"[PR #{pr_number}] Processing comment {comment.id} in {event.repository.full_name}")

        try:
            pr = event.pull_request or await self.github.get_pull_request(owner, repo, pr_number)
            verdict = await self._analyze(owner, repo, comment, pr)

            if not verdict.should_apply:
                logger.info(f"[PR #{pr_number}] Comment should not be applied: {verdict.reasoning}")
                await self._post(owner, repo, pr_number, CommentFormatter.format_analysis(verdict))
                return PipelineOutcome.REJECTED

            fix_branch = await self._apply(owner, repo, comment, pr, verdict)
        except Exception as e:
            logger.error(f"[PR #{pr_number}] Error processing comment: {e.__class__.__name__}: {e}", exc_info=True)
            await self._post(owner, repo, pr_number, CommentFormatter.format_error(e))
            return PipelineOutcome.FAILED

        summary = await self.decision.summarize(verdict.changes)
        await self._post(
            owner, repo, pr_number,
            CommentFormatter.format_success(verdict, summary, fix_branch, pr.base.ref),
        )
        return PipelineOutcome.APPLIED

    async def _analyze(self, owner: str, repo: str, comment: Comment, pr: PullRequest) -> Verdict:
        logger.info(f"[PR #{pr.number}] Analyzing comment with AI...")

        files = await self.github.get_pull_request_files(owner, repo, pr.number)
        file_contents = await self._fetch_contents(owner, repo, files, pr.head.sha)

        return await self.decision.evaluate(comment, pr, files, file_contents)

    async def _fetch_contents(
        self, owner: str, repo: str, files: List[FileDiffEntry], ref: str
    ) -> Dict[str, str]:
        file_contents: Dict[str, str] = {}
        for file in files:
            try:
                file_contents[file.filename] = await self.github.get_file_content(owner, repo, file.filename, ref)
            except RemoteError as e:
                logger.warning(f"Could not fetch content for {file.filename}: {e}")
                file_contents[file.filename] = MISSING_CONTENT
        return file_contents

    async def _apply(
        self, owner: str, repo: str, comment: Comment, pr: PullRequest, verdict: Verdict
    ) -> str:
        """Branch, write, commit and push while holding the repository lease"""
        logger.info(f"[PR #{pr.number}] Applying {len(verdict.changes)} change(s)...")

        async with self.working_copies.lease(owner, repo) as working_copy:
            await asyncio.to_thread(working_copy.ensure_repository, owner, repo, pr.base.ref)

            fix_branch = await asyncio.to_thread(working_copy.create_fix_branch, pr.base.ref, pr.number)
            logger.info(f"[PR #{pr.number}] Created fix branch: {fix_branch}")

            await asyncio.to_thread(working_copy.apply_changes, verdict.changes)

            commit_sha = await asyncio.to_thread(working_copy.commit, pr.number, comment.id, verdict.changes)
            logger.info(f"[PR #{pr.number}] Committed changes: {commit_sha}")

            await asyncio.to_thread(working_copy.push, fix_branch)

        return fix_branch

    async def _post(self, owner: str, repo: str, pr_number: int, body: str) -> None:
        try:
            await self.github.create_comment(owner, repo, pr_number, body)
        except RemoteError as e:
            logger.error(f"[PR #{pr_number}] Failed to add comment: {e}")
