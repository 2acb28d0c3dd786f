"""
GitHub Service - Handles GitHub API interactions
"""
import base64
import hmac
import hashlib
from typing import Optional, Dict, Any, List
from urllib.parse import quote
import httpx
from comment_fixer.core.config import settings
from comment_fixer.core.exceptions import RemoteError
from comment_fixer.models.github import Comment, PullRequest, FileDiffEntry, CommitInfo
from comment_fixer.utils.logger import logger


USER_AGENT = "AI-PR-Comment-Fixer-Bot"
FILES_PER_PAGE = 100


class GitHubService:
    """Service for GitHub API operations"""

    def __init__(
        self,
        token: str = None,
        webhook_secret: str = None,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token or settings.GITHUB_TOKEN
        self.webhook_secret = webhook_secret or settings.GITHUB_WEBHOOK_SECRET
        self.base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.GITHUB_API_TIMEOUT
        self._transport = transport

    def verify_webhook_signature(self, payload_body: Optional[bytes], signature_header: Optional[str]) -> bool:
        """
        Verify GitHub webhook signature for security.
        payload_body must be the untouched request bytes. Never raises.
        """
        if payload_body is None or not signature_header:
            return False

        # GitHub sends signature as 'sha256=...'
        hash_algorithm, sep, github_signature = signature_header.strip().partition("=")
        if not sep:
            github_signature = hash_algorithm
        elif hash_algorithm.lower() != "sha256":
            return False

        try:
            body = bytes(payload_body)
            provided = github_signature.encode("ascii")
        except (TypeError, ValueError):
            return False

        # Calculate expected signature
        mac = hmac.new(
            self.webhook_secret.encode(),
            msg=body,
            digestmod=hashlib.sha256
        )
        expected_signature = mac.hexdigest().encode("ascii")

        # Constant-time comparison to prevent timing attacks
        return hmac.compare_digest(expected_signature, provided)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"token {self.token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            },
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Issue one call; anything but 2xx becomes RemoteError. No retries."""
        async with self._client() as client:
            try:
                response = await client.request(method, url, params=params, json=json, headers=headers)
            except httpx.HTTPError as e:
                logger.warning(f"GitHub {method} {url} failed: {e.__class__.__name__}: {e}")
                raise RemoteError(0, f"{e.__class__.__name__}: {e}", url) from e

        if not response.is_success:
            logger.warning(f"GitHub {method} {url} returned {response.status_code}")
            raise RemoteError(response.status_code, response.text, url)
        return response

    async def get_pull_request(self, owner: str, repo: str, pr_number: int) -> PullRequest:
        """Get PR details"""
        response = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}")
        return PullRequest.model_validate(response.json())

    async def get_pull_request_files(self, owner: str, repo: str, pr_number: int) -> List[FileDiffEntry]:
        """Get every file changed in a PR, following pagination"""
        files: List[FileDiffEntry] = []
        url = f"/repos/{owner}/{repo}/pulls/{pr_number}/files"
        params: Optional[Dict[str, Any]] = {"per_page": FILES_PER_PAGE}

        while url:
            response = await self._request("GET", url, params=params)
            files.extend(FileDiffEntry.model_validate(item) for item in response.json())
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query

        logger.info(f"Found {len(files)} files in {owner}/{repo}#{pr_number}")
        return files

    async def get_pull_request_comments(self, owner: str, repo: str, pr_number: int) -> List[Comment]:
        """Get review comments on a PR"""
        response = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}/comments")
        return [Comment.model_validate(item) for item in response.json()]

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """
        Get file content at a commit.
        The contents API returns base64; files over 1 MB come back without
        content and are fetched again through the raw media type.
        """
        url = f"/repos/{owner}/{repo}/contents/{quote(path)}"
        response = await self._request("GET", url, params={"ref": ref})
        data = response.json()

        if isinstance(data, list):
            raise RemoteError(response.status_code, f"{path} is a directory", url)

        if data.get("encoding") == "base64":
            return self._decode_text(base64.b64decode(data.get("content", "")), path, response.status_code, url)

        raw = await self._request(
            "GET",
            url,
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.v3.raw"},
        )
        return self._decode_text(raw.content, path, raw.status_code, url)

    @staticmethod
    def _decode_text(content: bytes, path: str, status_code: int, url: str) -> str:
        # Only UTF-8 text is handed to the model
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            raise RemoteError(status_code, f"{path} is not UTF-8 text", url)

    async def create_comment(self, owner: str, repo: str, pr_number: int, body: str) -> Comment:
        """Create a comment on PR"""
        response = await self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{pr_number}/comments", json={"body": body}
        )
        return Comment.model_validate(response.json())

    async def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> Comment:
        """Update an existing PR comment"""
        response = await self._request(
            "PATCH", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", json={"body": body}
        )
        return Comment.model_validate(response.json())

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get GitHub repository information"""
        response = await self._request("GET", f"/repos/{owner}/{repo}")
        return response.json()

    async def get_commit(self, owner: str, repo: str, sha: str) -> CommitInfo:
        """Get commit details"""
        response = await self._request("GET", f"/repos/{owner}/{repo}/commits/{sha}")
        data = response.json()
        return CommitInfo(
            sha=data["sha"],
            message=data.get("commit", {}).get("message", ""),
            files=[FileDiffEntry.model_validate(item) for item in data.get("files", [])],
        )

    async def get_diff(self, owner: str, repo: str, base: str, head: str) -> str:
        """Get unified diff between two refs"""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/compare/{base}...{head}",
            headers={"Accept": "application/vnd.github.v3.diff"},
        )
        return response.text


# Global instance
github_service = GitHubService()
