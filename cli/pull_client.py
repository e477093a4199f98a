"""CLI client for triggering and inspecting RepoSnap snapshot pulls."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any
from urllib.parse import urlparse

import httpx

_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


class PullClient:
    """Client for the RepoSnap repository API."""

    def __init__(
        self,
        server_url: str,
        token: str,
        timeout: float = 600.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.server_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> PullClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def register(self, owner: str, name: str, branch: str) -> dict[str, Any]:
        """Register a repository and return it."""
        resp = self.client.post(
            "/api/repos", json={"owner": owner, "name": name, "branch": branch}
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def pull(self, repo_id: int, commit_sha: str | None = None) -> dict[str, Any]:
        """Pull a snapshot and return the sync result."""
        resp = self.client.post(f"/api/repos/{repo_id}/pull", json={"commit_sha": commit_sha})
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def files(self, repo_id: int) -> list[dict[str, Any]]:
        """List stored files of a repository."""
        resp = self.client.get(f"/api/repos/{repo_id}/files")
        resp.raise_for_status()
        result: list[dict[str, Any]] = resp.json()
        return result


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def print_result(result: dict[str, Any]) -> int:
    """Print a pull summary and return the process exit code."""
    print(f"Pulled commit {result['commit_sha']}")
    print(f"  Files fetched:   {result['files_fetched']}")
    print(f"  Files updated:   {result['files_updated']}")
    print(f"  Small files:     {result['small_files_processed']}")
    print(f"  Large files:     {result['large_files_processed']}")
    failed = result.get("failed_files", [])
    if failed:
        print(f"  Failed:          {len(failed)}")
        for f in failed:
            print(f"    ! {f['path']}: {f['error']}")
    if result["success"]:
        return EXIT_OK
    return EXIT_PARTIAL if result["partial_success"] else EXIT_ERROR


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="reposnap-pull",
        description="Pull repository snapshots through a RepoSnap server",
    )
    parser.add_argument("--server", "-s", default=os.environ.get("REPOSNAP_SERVER"))
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument(
        "--token", default=os.environ.get("REPOSNAP_TOKEN"), help="API access token"
    )

    subparsers = parser.add_subparsers(dest="command")
    register = subparsers.add_parser("register", help="Register a repository")
    register.add_argument("repository", help="owner/name")
    register.add_argument("--branch", "-b", default="main")
    pull = subparsers.add_parser("pull", help="Pull a snapshot")
    pull.add_argument("repo_id", type=int)
    pull.add_argument("--commit", help="Commit SHA to pull (default: branch head)")
    files = subparsers.add_parser("files", help="List stored files")
    files.add_argument("repo_id", type=int)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_ERROR)
    if not args.server:
        print("Error: --server or REPOSNAP_SERVER required")
        sys.exit(EXIT_ERROR)
    if not args.token:
        print("Error: --token or REPOSNAP_TOKEN required")
        sys.exit(EXIT_ERROR)
    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(EXIT_ERROR)

    with PullClient(server_url, args.token) as client:
        try:
            if args.command == "register":
                owner, _, name = args.repository.partition("/")
                if not owner or not name:
                    print("Error: repository must be given as owner/name")
                    sys.exit(EXIT_ERROR)
                repo = client.register(owner, name, args.branch)
                print(f"Registered {owner}/{name} as repository {repo['id']}")
            elif args.command == "pull":
                sys.exit(print_result(client.pull(args.repo_id, args.commit)))
            elif args.command == "files":
                for f in client.files(args.repo_id):
                    kind = "binary" if f["is_binary"] else "text"
                    print(f"{f['size']:>12}  {kind:<6}  {f['path']}")
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            print(f"Error: server returned {exc.response.status_code}: {detail}")
            sys.exit(EXIT_ERROR)
        except httpx.HTTPError as exc:
            print(f"Error: {exc}")
            sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
