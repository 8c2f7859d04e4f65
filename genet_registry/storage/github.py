"""
GitHub Sync Gateway

Implements the SyncGateway port on top of the GitHub REST API (v3) using
httpx's async client.

Endpoints used:
- GET  /repos/{owner}/{repo}/contents/{path}   read content + blob sha
- PUT  /repos/{owner}/{repo}/contents/{path}   create/update, keyed by sha
- GET  /repos/{owner}/{repo}/git/ref/heads/{b} tip of the default branch
- POST /repos/{owner}/{repo}/git/refs          create a branch
- POST /repos/{owner}/{repo}/pulls             open a pull request
- GET  /user                                   the authenticated user

The blob sha returned by the contents API is the revision token. GitHub
rejects a PUT whose sha is not the file's current blob sha, which gives the
optimistic-concurrency guarantee server-side.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from typing import Any

import httpx

from genet_registry.storage.ports import (
    FileSnapshot,
    NotFoundError,
    PullRequestHandle,
    RevisionConflictError,
    RemoteUnavailableError,
    SyncGateway,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


# =============================================================================
# Encoding Helpers
# =============================================================================

def _encode_content(content: str) -> str:
    """UTF-8 text to the base64 form the contents API expects."""
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def _decode_content(encoded: str) -> str:
    """Base64 from the contents API (wrapped at 60 columns) to UTF-8 text."""
    return base64.b64decode(encoded.replace("\n", "")).decode("utf-8")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase


def branch_name_for(path: str, now_ms: int | None = None) -> str:
    """Branch name for a proposed change to `path`."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"update-{re.sub(r'[^A-Za-z0-9_]', '-', path)}-{stamp}"


# =============================================================================
# GitHub Gateway
# =============================================================================

class GitHubSyncGateway(SyncGateway):
    """
    Registry files stored in a GitHub repository.

    One gateway per access token.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            token: GitHub access token
            owner: Repository owner (user or organization)
            repo: Repository name
            branch: Default branch that direct writes go to
            api_url: API root (GitHub Enterprise uses a different one)
            timeout: Transport timeout in seconds
            client: Pre-built client (tests inject a mock transport here)
        """
        self._owner = owner
        self._repo = repo
        self._branch = branch
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._client = client or httpx.AsyncClient(base_url=api_url, timeout=timeout)
        self._owns_client = client is None

    @property
    def branch(self) -> str:
        return self._branch

    def _repo_url(self, suffix: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/{suffix}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into RemoteUnavailableError."""
        try:
            return await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"GitHub request {method} {url} failed: {e}")
            raise RemoteUnavailableError(f"GitHub request failed: {e}") from e

    def _unavailable(self, response: httpx.Response) -> RemoteUnavailableError:
        message = _error_message(response)
        if response.status_code in (401, 403):
            message = f"GitHub rejected the request ({response.status_code}): {message}"
        else:
            message = f"GitHub returned {response.status_code}: {message}"
        return RemoteUnavailableError(message, status_code=response.status_code)

    # -------------------------------------------------------------------------
    # Contents
    # -------------------------------------------------------------------------

    async def _get_contents(self, path: str, ref: str) -> FileSnapshot:
        response = await self._request("GET", self._repo_url(f"contents/{path}"), params={"ref": ref})
        if response.status_code == 404:
            raise NotFoundError(path)
        if response.is_error:
            raise self._unavailable(response)

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"GitHub returned a non-JSON body for {path}") from e
        if not isinstance(data, dict) or "content" not in data or not data.get("sha"):
            raise RemoteUnavailableError(f"{path} is a directory or invalid")

        try:
            content = _decode_content(data["content"])
        except (binascii.Error, UnicodeDecodeError, AttributeError) as e:
            raise RemoteUnavailableError(f"{path} is not UTF-8 text: {e}") from e
        return FileSnapshot(content=content, revision=data["sha"])

    async def _put_contents(
        self,
        path: str,
        content: str,
        message: str,
        revision: str | None,
        branch: str,
    ) -> FileSnapshot:
        body: dict[str, Any] = {
            "message": message,
            "content": _encode_content(content),
            "branch": branch,
        }
        if revision:
            body["sha"] = revision

        response = await self._request("PUT", self._repo_url(f"contents/{path}"), json=body)

        if response.status_code == 409:
            raise RevisionConflictError(path, _error_message(response))
        if response.status_code == 422 and "sha" in _error_message(response):
            # Creating over an existing file without its sha
            raise RevisionConflictError(path, _error_message(response))
        if response.is_error:
            raise self._unavailable(response)

        try:
            revision = response.json()["content"]["sha"]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteUnavailableError(f"Unexpected response writing {path}: {e}") from e
        return FileSnapshot(content=content, revision=revision)

    async def read_file(self, path: str) -> FileSnapshot:
        return await self._get_contents(path, self._branch)

    async def write_file(
        self,
        path: str,
        content: str,
        commit_message: str,
        revision: str | None,
    ) -> FileSnapshot:
        snapshot = await self._put_contents(path, content, commit_message, revision, self._branch)
        logger.info(f"Committed {path} to {self._branch} ({snapshot.revision[:7]})")
        return snapshot

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def propose_change(
        self,
        path: str,
        content: str,
        commit_message: str,
        title: str,
        description: str,
    ) -> PullRequestHandle:
        response = await self._request("GET", self._repo_url(f"git/ref/heads/{self._branch}"))
        if response.is_error:
            raise self._unavailable(response)
        base_sha = response.json()["object"]["sha"]

        # TODO: fork the repository for contributors without push access
        branch = branch_name_for(path)
        response = await self._request(
            "POST",
            self._repo_url("git/refs"),
            json={"ref": f"refs/heads/{branch}", "sha": base_sha},
        )
        if response.is_error:
            raise self._unavailable(response)

        # The new branch starts at the default branch tip, so its blob sha is current
        try:
            current = await self._get_contents(path, branch)
            revision: str | None = current.revision
        except NotFoundError:
            revision = None

        await self._put_contents(path, content, commit_message, revision, branch)

        response = await self._request(
            "POST",
            self._repo_url("pulls"),
            json={"title": title, "body": description, "head": branch, "base": self._branch},
        )
        if response.is_error:
            raise self._unavailable(response)

        pr = response.json()
        logger.info(f"Opened pull request #{pr['number']} from {branch}")
        return PullRequestHandle(number=pr["number"], url=pr["html_url"], branch=branch)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def get_authenticated_user(self) -> dict[str, Any]:
        """
        Profile of the token's owner.

        Raises:
            RemoteUnavailableError: Invalid token or transport failure
        """
        response = await self._request("GET", "/user")
        if response.is_error:
            raise self._unavailable(response)
        return response.json()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
