"""
Working Copy Service
Maintains local clones of target repositories and turns a change set into
a pushed fix branch.
"""

import asyncio
import re
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence
import git
from git.exc import GitCommandError, GitError
from comment_fixer.core.config import settings
from comment_fixer.core.exceptions import GitOperationError, NoChangesError, UnsafePathError
from comment_fixer.models.verdict import ProposedChange
from comment_fixer.utils.logger import logger


_CREDENTIALS = re.compile(r"://[^/@\s]+@")


def redact(text: str) -> str:
    """Strip credentials embedded in remote URLs"""
    return _CREDENTIALS.sub("://***@", text or "")


def _describe(error: GitCommandError) -> str:
    stderr = (error.stderr or "").strip().removeprefix("stderr:").strip().strip("'").strip()
    return redact(stderr or str(error))


class WorkingCopy:
    """
    One local checkout of a remote repository.
    All methods are blocking; callers run them off the event loop.
    """

    def __init__(
        self,
        path: Path,
        remote_url: str,
        user_name: str,
        user_email: str,
        timeout: Optional[float] = None,
    ):
        self.path = Path(path)
        self.remote_url = remote_url
        self.user_name = user_name
        self.user_email = user_email
        self.timeout = timeout
        self._repo: Optional[git.Repo] = None

    @property
    def repo(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.path)
            except GitError as e:
                raise GitOperationError(f"{self.path} is not a git repository: {e}") from e
        return self._repo

    def _run(self, command: str, *args: str) -> str:
        """Run a git command inside the working copy with a hard timeout"""
        try:
            return self.repo.git.execute(
                ["git", command, *args],
                kill_after_timeout=self.timeout,
            )
        except GitCommandError as e:
            raise GitOperationError(f"git {command} failed: {_describe(e)}") from e

    # ------------------------------------------------------------------
    # Pipeline operations
    # ------------------------------------------------------------------

    def ensure_repository(self, owner: str, repo: str, base_branch: str = "main") -> None:
        """Clone if missing, otherwise refresh; then configure identity and check out base_branch"""
        if not (self.path / ".git").exists():
            if self.path.exists():
                shutil.rmtree(self.path)
            self.path.parent.mkdir(parents=True, exist_ok=True)

            logger.info(f"Cloning {owner}/{repo} to {self.path}")
            try:
                git.Git(str(self.path.parent)).execute(
                    ["git", "clone", self.remote_url, str(self.path)],
                    kill_after_timeout=self.timeout,
                )
            except GitCommandError as e:
                raise GitOperationError(f"git clone failed: {_describe(e)}") from e
            self._repo = None
        else:
            logger.info(f"Repository {owner}/{repo} already exists, pulling latest changes")
            # Leftovers from an interrupted run must not leak into the next fix branch
            self.reset()
            self._run("remote", "set-url", "origin", self.remote_url)
            self._run("fetch", "--prune", "origin")

        self._run("config", "user.name", self.user_name)
        self._run("config", "user.email", self.user_email)

        try:
            self._run("checkout", base_branch)
        except GitOperationError:
            logger.info(f"Branch {base_branch} doesn't exist, creating it...")
            self._run("checkout", "-b", base_branch)

        self.pull(base_branch)

    def pull(self, branch: str) -> None:
        """Make the local branch mirror origin/<branch>, if the remote has it"""
        self._run("fetch", "origin")
        if not self._has_remote_branch(branch):
            logger.info(f"origin/{branch} does not exist, keeping local {branch}")
            return
        self._run("reset", "--hard", f"origin/{branch}")

    def create_fix_branch(self, base_branch: str, pr_number: int) -> str:
        """Create and check out fix/pr-<n>-<epoch millis> from a freshly pulled base"""
        if pr_number <= 0:
            raise ValueError(f"PR number must be positive, got {pr_number}")

        self.checkout(base_branch)
        self.pull(base_branch)

        existing = {head.name for head in self.repo.heads}
        millis = int(time.time() * 1000)
        branch_name = f"fix/pr-{pr_number}-{millis}"
        while branch_name == base_branch or branch_name in existing:
            millis += 1
            branch_name = f"fix/pr-{pr_number}-{millis}"

        self._run("checkout", "-b", branch_name)
        return branch_name

    def apply_changes(self, changes: Sequence[ProposedChange]) -> None:
        """Overwrite each target file with its proposed content"""
        for change in changes:
            file_path = self._resolve(change.filename)
            file_path.parent.mkdir(parents=True, exist_ok=True)

            with open(file_path, "w", encoding="utf-8", newline="") as f:
                f.write(change.content)

            logger.info(f"Applied changes to {change.filename}")

    def commit(self, pr_number: int, comment_id: int, changes: Sequence[ProposedChange]) -> str:
        """Stage exactly the touched files and commit them; returns the commit sha"""
        filenames = list(dict.fromkeys(change.filename for change in changes))
        if not filenames:
            raise NoChangesError()

        self._run("add", "--", *filenames)

        staged = self._run("diff", "--cached", "--name-only", "--", *filenames)
        if not staged.strip():
            raise NoChangesError()

        change_descriptions = "\n".join(f"- {c.filename}: {c.description}" for c in changes)
        commit_message = (
            "fix: Apply PR comment suggestions\n\n"
            f"PR: #{pr_number}\n"
            f"Comment: #{comment_id}\n\n"
            "Changes:\n"
            f"{change_descriptions}\n\n"
            "Applied by AI Comment Fixer Bot"
        )

        self._run("commit", "-m", commit_message, "--", *filenames)
        return self.repo.head.commit.hexsha

    def push(self, branch_name: str) -> None:
        self._run("push", "--set-upstream", "origin", branch_name)
        logger.info(f"Pushed changes to branch: {branch_name}")

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD")

    def status(self) -> List[str]:
        """Porcelain status lines, e.g. ' M src/app.py'"""
        output = self._run("status", "--porcelain")
        return [line for line in output.splitlines() if line.strip()]

    def staged_diff(self) -> str:
        return self._run("diff", "--cached")

    def unstaged_diff(self) -> str:
        return self._run("diff")

    def log(self, limit: int = 10) -> List[str]:
        output = self._run("log", "--oneline", f"-{limit}")
        return output.splitlines()

    def is_clean(self) -> bool:
        return not self.status()

    def checkout(self, ref: str) -> None:
        self._run("checkout", ref)

    def reset(self) -> None:
        """Discard every uncommitted change and untracked file"""
        self._run("reset", "--hard")
        self._run("clean", "-fd")

    def get_file_content(self, filename: str, ref: str = "HEAD") -> str:
        try:
            return self._run("show", f"{ref}:{filename}")
        except GitOperationError as e:
            raise GitOperationError(f"File {filename} not found at {ref}") from e

    def _has_remote_branch(self, branch: str) -> bool:
        try:
            origin = self.repo.remotes.origin
        except (AttributeError, IndexError):
            return False
        return any(ref.remote_head == branch for ref in origin.refs)

    def _resolve(self, filename: str) -> Path:
        root = self.path.resolve()
        target = (root / filename).resolve()
        if target == root or root not in target.parents:
            raise UnsafePathError(f"{filename} resolves outside the working copy")
        if ".git" in target.relative_to(root).parts:
            raise UnsafePathError(f"{filename} points into the .git directory")
        return target


class WorkingCopyManager:
    """
    Hands out working copies keyed by owner/repo.
    A lease holds that repository's lock until the caller is done, so two
    pipelines never mutate the same checkout at once.
    """

    def __init__(
        self,
        workspace_path: str = None,
        remote_url_factory: Optional[Callable[[str, str], str]] = None,
        user_name: str = None,
        user_email: str = None,
        timeout: Optional[float] = None,
    ):
        self.workspace_path = Path(workspace_path or settings.WORKSPACE_PATH)
        self.remote_url_factory = remote_url_factory or self._github_remote_url
        self.user_name = user_name or settings.GIT_USER_NAME
        self.user_email = user_email or settings.GIT_USER_EMAIL
        self.timeout = timeout if timeout is not None else settings.GIT_TIMEOUT
        self._locks: Dict[str, asyncio.Lock] = {}

    @staticmethod
    def _github_remote_url(owner: str, repo: str) -> str:
        return f"https://x-access-token:{settings.GITHUB_TOKEN}@{settings.GIT_HOST}/{owner}/{repo}.git"

    def path_for(self, owner: str, repo: str) -> Path:
        return self.workspace_path / owner / repo

    def working_copy(self, owner: str, repo: str) -> WorkingCopy:
        return WorkingCopy(
            path=self.path_for(owner, repo),
            remote_url=self.remote_url_factory(owner, repo),
            user_name=self.user_name,
            user_email=self.user_email,
            timeout=self.timeout,
        )

    @asynccontextmanager
    async def lease(self, owner: str, repo: str) -> AsyncIterator[WorkingCopy]:
        key = f"{owner}/{repo}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            logger.info(f"Waiting for working copy {key}")
        async with lock:
            yield self.working_copy(owner, repo)

    def cleanup(self) -> None:
        """Best-effort removal of every working copy"""
        if not self.workspace_path.exists():
            return
        try:
            shutil.rmtree(self.workspace_path)
            logger.info(f"Cleaned up working copies in {self.workspace_path}")
        except OSError as e:
            logger.warning(f"Failed to clean up {self.workspace_path}: {e}")


# Global instance
working_copy_manager = WorkingCopyManager()
