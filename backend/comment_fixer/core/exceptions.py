"""
Error taxonomy for the comment-to-fix pipeline
"""
from typing import Optional


class CommentFixerError(Exception):
    """Base class for all pipeline errors"""


class RemoteError(CommentFixerError):
    """
    Non-2xx response (or transport failure) from the GitHub REST API.
    status_code is 0 when no response was received at all.
    """

    def __init__(self, status_code: int, body: str, url: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        target = f" from {url}" if url else ""
        super().__init__(f"GitHub API returned {status_code}{target}: {body[:500]}")


class AIServiceError(CommentFixerError):
    """The LLM could not be reached or returned nothing"""


class WorkingCopyError(CommentFixerError):
    """Failure while preparing or mutating the local working copy"""


class GitOperationError(WorkingCopyError):
    """A git command (clone, pull, checkout, commit, push) failed"""


class NoChangesError(WorkingCopyError):
    """The proposed change set leaves the repository unchanged"""

    def __init__(self, message: str = "No changes to commit"):
        super().__init__(message)


class UnsafePathError(WorkingCopyError):
    """A proposed filename resolves outside the working copy"""
