"""GitHub repository content store.

Uses the REST contents API of a single repository branch as the backing
store::

    GET    /repos/{owner}/{repo}/contents/{path}?ref={branch}
    PUT    /repos/{owner}/{repo}/contents/{path}   (create / update)
    DELETE /repos/{owner}/{repo}/contents/{path}

The blob ``sha`` returned by GitHub is the revision token.  GitHub rejects a
PUT whose ``sha`` is not the current blob with HTTP 409, and a PUT without
``sha`` on an existing path with HTTP 422; both are mapped onto the revstore
error taxonomy.  Every write is a commit on the branch with the given
message.

Rate-limit headers are tracked from every response and exposed through
``rate_limit_status``.
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from revstore.errors import (
    ConfigurationError,
    PathExistsError,
    PathNotFoundError,
    RateLimitError,
    RevisionConflictError,
    StoreError,
)
from revstore.models import ChildEntry, EntryType, StoredFile
from revstore.store.base import NOT_FOUND, ReadResult

_API_VERSION = "2022-11-28"


def split_repo(repo: str) -> tuple[str, str]:
    """Split ``owner/name``; a bare name is used as both owner and name."""
    owner, _, name = repo.partition("/")
    if not owner:
        msg = f"Invalid repository: {repo!r}"
        raise ConfigurationError(msg)
    return owner, name or owner


class GitHubContentStore:
    """GitHub contents-API implementation of the ContentStore protocol."""

    def __init__(
        self,
        token: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owner, self._name = split_repo(repo)
        self._branch = branch
        self._api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self._api_url}/repos/{self._owner}/{self._name}",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": _API_VERSION,
            },
            timeout=timeout,
            transport=transport,
        )
        self._rate_remaining = 5000
        self._rate_reset = 0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubContentStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Transport -------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            msg = f"GitHub request failed: {method} {url}"
            raise StoreError(msg) from e

        self._track_rate_limit(resp)
        if resp.status_code in (403, 429) and self._rate_remaining == 0:
            msg = f"GitHub API rate limit exceeded; resets at epoch {self._rate_reset}"
            raise RateLimitError(msg)
        return resp

    def _track_rate_limit(self, resp: httpx.Response) -> None:
        remaining = resp.headers.get("x-ratelimit-remaining")
        reset = resp.headers.get("x-ratelimit-reset")
        if remaining is not None:
            self._rate_remaining = int(remaining)
        if reset is not None:
            self._rate_reset = int(reset)

    def rate_limit_status(self) -> dict[str, int]:
        return {"remaining": self._rate_remaining, "reset": self._rate_reset}

    @staticmethod
    def _contents_url(path: str) -> str:
        return f"/contents/{quote(path.strip('/'), safe='/')}"

    @staticmethod
    def _fail(resp: httpx.Response, action: str, path: str) -> StoreError:
        try:
            detail = resp.json().get("message", resp.text)
        except ValueError:
            detail = resp.text
        return StoreError(f"Failed to {action} {path}: HTTP {resp.status_code}: {detail}")

    # -- Read ------------------------------------------------------------------

    async def read(self, path: str) -> ReadResult:
        resp = await self._request("GET", self._contents_url(path), params={"ref": self._branch})
        if resp.status_code == 404:
            return NOT_FOUND
        if resp.status_code != 200:
            raise self._fail(resp, "read", path)

        data = resp.json()
        if isinstance(data, list) or data.get("type") != "file":
            msg = f"Not a file: {path}"
            raise StoreError(msg)
        raw = data.get("content") or ""
        content = base64.b64decode(raw).decode("utf-8") if raw else ""
        return StoredFile(path=data.get("path", path.strip("/")), content=content, revision=data["sha"])

    async def list_children(self, path: str = "") -> list[ChildEntry]:
        resp = await self._request("GET", self._contents_url(path), params={"ref": self._branch})
        if resp.status_code == 404:
            return []
        if resp.status_code != 200:
            raise self._fail(resp, "list", path)

        data = resp.json()
        if not isinstance(data, list):
            return []
        return [
            ChildEntry(
                name=item["name"],
                path=item["path"],
                type=EntryType.DIR if item["type"] == "dir" else EntryType.FILE,
            )
            for item in data
        ]

    # -- Write -----------------------------------------------------------------

    async def create(self, path: str, content: str, message: str) -> str:
        return await self._put(path, content, message, None)

    async def update(self, path: str, content: str, message: str, revision: str) -> str:
        return await self._put(path, content, message, revision)

    async def _put(self, path: str, content: str, message: str, revision: str | None) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self._branch,
        }
        if revision is not None:
            body["sha"] = revision

        resp = await self._request("PUT", self._contents_url(path), json=body)
        if resp.status_code in (200, 201):
            logger.debug("GitHub: committed {} ({})", path, message)
            return resp.json()["content"]["sha"]
        if revision is None and resp.status_code == 422:
            raise PathExistsError(path)
        if revision is not None and resp.status_code == 404:
            raise PathNotFoundError(path)
        if revision is not None and resp.status_code in (409, 422):
            raise RevisionConflictError(path, revision)
        raise self._fail(resp, "write", path)

    async def delete(self, path: str, message: str, revision: str) -> None:
        body = {"message": message, "sha": revision, "branch": self._branch}
        resp = await self._request("DELETE", self._contents_url(path), json=body)
        if resp.status_code == 200:
            return
        if resp.status_code == 404:
            raise PathNotFoundError(path)
        if resp.status_code in (409, 422):
            raise RevisionConflictError(path, revision)
        raise self._fail(resp, "delete", path)

    # -- Repository checks -----------------------------------------------------

    async def validate_token(self) -> bool:
        """Check the token against ``/user``.  Raises ``ConfigurationError`` if rejected."""
        resp = await self._request("GET", f"{self._api_url}/user")
        if resp.status_code != 200:
            msg = f"Invalid GitHub token: HTTP {resp.status_code}"
            raise ConfigurationError(msg)
        return True

    async def repo_exists(self) -> bool:
        resp = await self._request("GET", "")
        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            raise self._fail(resp, "inspect repository", f"{self._owner}/{self._name}")
        return True
