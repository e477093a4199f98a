"""Tests for the pull CLI client."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from cli.pull_client import (
    EXIT_ERROR,
    EXIT_OK,
    EXIT_PARTIAL,
    PullClient,
    main,
    print_result,
    validate_server_url,
)


def _result(**overrides: Any) -> dict[str, Any]:
    result: dict[str, Any] = {
        "success": True,
        "partial_success": False,
        "commit_sha": "a" * 40,
        "files_fetched": 3,
        "files_updated": 1,
        "small_files_processed": 2,
        "large_files_processed": 1,
        "failed_files": [],
    }
    result.update(overrides)
    return result


class TestValidateServerUrl:
    def test_rejects_insecure_http_for_remote_hosts(self) -> None:
        with pytest.raises(ValueError, match="HTTPS is required"):
            validate_server_url("http://example.com")

    def test_allows_https_for_remote_hosts(self) -> None:
        assert validate_server_url("https://example.com/") == "https://example.com"

    def test_allows_http_for_localhost(self) -> None:
        assert validate_server_url("http://localhost:8000") == "http://localhost:8000"

    def test_allows_insecure_http_when_flag_enabled(self) -> None:
        assert (
            validate_server_url("http://example.com:8000", allow_insecure_http=True)
            == "http://example.com:8000"
        )

    def test_rejects_missing_scheme(self) -> None:
        with pytest.raises(ValueError, match="scheme and host"):
            validate_server_url("example.com")


class TestPrintResult:
    def test_success(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert print_result(_result()) == EXIT_OK
        out = capsys.readouterr().out
        assert "Files fetched:   3" in out
        assert "Failed" not in out

    def test_partial(self, capsys: pytest.CaptureFixture[str]) -> None:
        failed = [{"path": "big.bin", "size": 1, "error": "TransportError: 500"}]
        code = print_result(_result(success=False, partial_success=True, failed_files=failed))
        assert code == EXIT_PARTIAL
        assert "! big.bin: TransportError: 500" in capsys.readouterr().out

    def test_total_failure(self) -> None:
        failed = [{"path": "a", "size": 1, "error": "x"}]
        assert print_result(_result(success=False, failed_files=failed)) == EXIT_ERROR


class TestPullClient:
    def test_requests(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/api/repos":
                return httpx.Response(201, json={"id": 5, "owner": "acme", "name": "widgets"})
            if request.url.path.endswith("/pull"):
                return httpx.Response(200, json=_result())
            return httpx.Response(200, json=[])

        with PullClient(
            "https://snap.example.com/", "tok", transport=httpx.MockTransport(handler)
        ) as client:
            assert client.register("acme", "widgets", "main")["id"] == 5
            assert client.pull(5, "abcd")["success"] is True
            assert client.files(5) == []

        assert [r.url.path for r in seen] == [
            "/api/repos",
            "/api/repos/5/pull",
            "/api/repos/5/files",
        ]
        assert all(r.headers["Authorization"] == "Bearer tok" for r in seen)
        assert json.loads(seen[1].content) == {"commit_sha": "abcd"}

    def test_error_status_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(403, json={}))
        with PullClient("https://snap.example.com", "tok", transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                client.pull(1)


class TestMain:
    def test_pull_exit_code(self) -> None:
        with patch("cli.pull_client.PullClient") as client_cls:
            client = client_cls.return_value.__enter__.return_value
            client.pull.return_value = _result(success=False, partial_success=True)
            with pytest.raises(SystemExit) as exc_info:
                main(["--server", "https://snap.example.com", "--token", "t", "pull", "3"])
        assert exc_info.value.code == EXIT_PARTIAL
        client.pull.assert_called_once_with(3, None)

    def test_register_requires_owner_and_name(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("cli.pull_client.PullClient"):
            with pytest.raises(SystemExit) as exc_info:
                main(["--server", "https://snap.example.com", "--token", "t", "register", "acme"])
        assert exc_info.value.code == EXIT_ERROR
        assert "owner/name" in capsys.readouterr().out

    def test_missing_token(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.delenv("REPOSNAP_TOKEN", raising=False)
        with pytest.raises(SystemExit):
            main(["--server", "https://snap.example.com", "files", "1"])
        assert "REPOSNAP_TOKEN" in capsys.readouterr().out

    def test_insecure_server_rejected(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["--server", "http://snap.example.com", "--token", "t", "files", "1"])
        assert "HTTPS is required" in capsys.readouterr().out
