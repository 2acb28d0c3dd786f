"""
GitHub webhook and REST models
Only the fields the pipeline reads are declared; everything else is ignored.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class User(BaseModel):
    login: str
    id: Optional[int] = None
    type: Optional[str] = None


class Comment(BaseModel):
    id: int
    body: str = ""
    user: Optional[User] = None  # null for deleted accounts
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"frozen": True}


class RepoName(BaseModel):
    full_name: str


class BranchRef(BaseModel):
    ref: str
    sha: str
    repo: Optional[RepoName] = None  # None when the fork was deleted


class PullRequest(BaseModel):
    number: int
    title: str = ""
    body: Optional[str] = None
    head: BranchRef
    base: BranchRef
    state: str = "open"
    mergeable: Optional[bool] = None


class FileDiffEntry(BaseModel):
    filename: str
    status: str  # added, modified, removed, renamed
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: Optional[str] = None
    blob_url: Optional[str] = None
    raw_url: Optional[str] = None
    contents_url: Optional[str] = None


class RepositoryRef(BaseModel):
    full_name: str
    name: str
    owner: User


class IssueRef(BaseModel):
    """The issue stub carried by issue_comment deliveries"""
    number: int
    title: str = ""
    body: Optional[str] = None
    pull_request: Optional[Dict[str, Any]] = None  # present only when the issue is a PR


class InboundEvent(BaseModel):
    """A verified webhook payload for a comment event"""
    action: str
    comment: Optional[Comment] = None
    pull_request: Optional[PullRequest] = None
    issue: Optional[IssueRef] = None
    repository: RepositoryRef
    sender: Optional[User] = None

    @property
    def owner(self) -> str:
        return self.repository.owner.login

    @property
    def repo(self) -> str:
        return self.repository.name

    @property
    def pr_number(self) -> Optional[int]:
        """PR the comment belongs to, from either payload shape"""
        if self.pull_request is not None:
            return self.pull_request.number
        if self.issue is not None and self.issue.pull_request is not None:
            return self.issue.number
        return None


class CommitInfo(BaseModel):
    sha: str
    message: str = ""
    files: List[FileDiffEntry] = Field(default_factory=list)
