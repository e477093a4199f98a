"""GitHub REST client: branch resolution, recursive tree listing, blob retrieval."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from reposnap.exceptions import ExtractionError, ResolutionError, SyncError, TransportError

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

logger = logging.getLogger(__name__)

_NOT_FOUND_STATUSES = frozenset({404, 409, 422})


@dataclass(frozen=True)
class RemoteFileRef:
    """One file entry of a snapshot listing."""

    path: str
    sha: str
    size: int
    kind: str = "blob"


class GitHubClient:
    """Thin async wrapper over the GitHub git-data endpoints of one repository."""

    def __init__(
        self,
        owner: str,
        name: str,
        *,
        token: str = "",
        api_url: str = "https://api.github.com",
        user_agent: str = "RepoSnap-Sync",
        timeout: float = 60.0,
        retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.owner = owner
        self.name = name
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": user_agent,
        }
        if token:
            headers["Authorization"] = f"token {token}"
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/repos/{quote(owner)}/{quote(name)}",
            headers=headers,
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=retries),
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _get_json(
        self,
        url: str,
        what: str,
        *,
        params: dict[str, str] | None = None,
        resolvable: bool = False,
        payload_error: type[SyncError] = TransportError,
    ) -> dict[str, Any]:
        """GET a JSON object, mapping failures onto the sync error taxonomy.

        With ``resolvable`` set, not-found style statuses raise ResolutionError
        instead of TransportError.  A 2xx body that is not a JSON object raises
        ``payload_error``.
        """
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"{what} failed: {exc}") from exc

        if resolvable and response.status_code in _NOT_FOUND_STATUSES:
            msg = f"{what}: not found in {self.full_name} ({response.status_code})"
            raise ResolutionError(msg)
        if not response.is_success:
            msg = f"{what} failed: {response.status_code} {response.text[:200]}"
            raise TransportError(msg, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise payload_error(f"{what} returned invalid JSON") from exc
        if not isinstance(data, dict):
            if resolvable:
                raise ResolutionError(f"{what}: no exact match in {self.full_name}")
            raise payload_error(f"{what} returned an unexpected payload")
        return data

    async def resolve_commit(self, branch: str) -> str:
        """Return the head commit SHA of a branch."""
        data = await self._get_json(
            f"/git/ref/heads/{quote(branch, safe='/')}",
            f"Branch ref {branch!r}",
            resolvable=True,
        )
        try:
            return str(data["object"]["sha"])
        except (KeyError, TypeError) as exc:
            raise TransportError(f"Branch ref {branch!r} has no object SHA") from exc

    async def get_commit_tree(self, commit_sha: str) -> tuple[str, str]:
        """Return the full commit SHA and its root tree SHA.

        ``commit_sha`` may be abbreviated; the remote expands it.
        """
        data = await self._get_json(
            f"/git/commits/{quote(commit_sha)}",
            f"Commit {commit_sha}",
            resolvable=True,
        )
        try:
            return str(data["sha"]), str(data["tree"]["sha"])
        except (KeyError, TypeError) as exc:
            raise TransportError(f"Commit {commit_sha} has no tree SHA") from exc

    async def list_tree(self, tree_sha: str) -> list[RemoteFileRef]:
        """Return every blob of a tree, recursively expanded in one listing call."""
        data = await self._get_json(
            f"/git/trees/{quote(tree_sha)}",
            f"Tree {tree_sha}",
            params={"recursive": "1"},
        )
        if data.get("truncated"):
            logger.warning(
                "Tree listing for %s@%s was truncated by the remote; some files will be missing",
                self.full_name,
                tree_sha,
            )
        refs: list[RemoteFileRef] = []
        for item in data.get("tree", []):
            if item.get("type") != "blob":
                continue
            refs.append(
                RemoteFileRef(
                    path=str(item["path"]),
                    sha=str(item["sha"]),
                    size=int(item.get("size") or 0),
                )
            )
        return refs

    def stream_blob(self, sha: str) -> AbstractAsyncContextManager[httpx.Response]:
        """Open a streaming GET of one blob; the caller reads the body incrementally."""
        return self._client.stream("GET", f"/git/blobs/{quote(sha)}")

    async def get_blob(self, sha: str) -> dict[str, Any]:
        """Fetch one blob and parse the whole response."""
        return await self._get_json(
            f"/git/blobs/{quote(sha)}", f"Blob {sha}", payload_error=ExtractionError
        )


async def list_snapshot_files(
    client: GitHubClient,
    branch: str,
    commit_sha: str | None = None,
) -> tuple[str, list[RemoteFileRef]]:
    """Resolve the snapshot to pull and list its files.

    Without ``commit_sha`` the branch head is used.  Returns the full
    commit SHA and the flat list of blob entries (directories excluded).
    """
    if commit_sha is None:
        commit_sha = await client.resolve_commit(branch)
        logger.info("Resolved %s@%s to %s", client.full_name, branch, commit_sha)
    commit_sha, tree_sha = await client.get_commit_tree(commit_sha)
    refs = await client.list_tree(tree_sha)
    total_bytes = sum(ref.size for ref in refs)
    logger.info(
        "Listed %d files (%.2f MB) in %s at %s",
        len(refs),
        total_bytes / 1024 / 1024,
        client.full_name,
        commit_sha,
    )
    return commit_sha, refs
