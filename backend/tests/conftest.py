import os

# Settings are read at import time, so the environment must be seeded first
os.environ.update({
    "GITHUB_TOKEN": "test-token",
    "GITHUB_WEBHOOK_SECRET": "test-secret",
    "LLM_PROVIDER": "groq",
    "GROQ_API_KEY": "test-groq-key",
    "GIT_USER_NAME": "Fixer Bot",
    "GIT_USER_EMAIL": "fixer-bot@example.com",
    "REPO_OWNER": "example",
    "REPO_NAME": "repo",
    "BOT_USERNAME": "fixer-bot",
    "WORKSPACE_PATH": "/tmp/comment-fixer-test-workspace",
    "GIT_TERMINAL_PROMPT": "0",
})

from pathlib import Path

import git
import pytest

from comment_fixer.services.git_service import WorkingCopyManager
from tests.fakes import TYPO_CONTENT, TYPO_FILE

@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """Bare repository with one commit on main, standing in for origin"""
    seed_path = tmp_path / "seed"
    seed = git.Repo.init(seed_path)
    seed.git.config("user.name", "Seeder")
    seed.git.config("user.email", "seeder@example.com")

    target = seed_path / TYPO_FILE
    target.parent.mkdir(parents=True)
    target.write_text(TYPO_CONTENT, encoding="utf-8")
    (seed_path / "README.md").write_text("# repo\n", encoding="utf-8")
    seed.git.add("--all")
    seed.git.commit("-m", "initial commit")
    seed.git.branch("-M", "main")

    bare_path = tmp_path / "origin.git"
    bare = git.Repo.init(bare_path, bare=True)
    bare.git.symbolic_ref("HEAD", "refs/heads/main")
    seed.create_remote("origin", str(bare_path))
    seed.git.push("origin", "main")
    return bare_path

@pytest.fixture
def manager(tmp_path: Path, remote_repo: Path) -> WorkingCopyManager:
    return WorkingCopyManager(
        workspace_path=str(tmp_path / "workspace"),
        remote_url_factory=lambda owner, repo: str(remote_repo),
        user_name="Fixer Bot",
        user_email="fixer-bot@example.com",
        timeout=60,
    )
