"""Blob content retrieval with separate decode paths for text and binary files."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from reposnap.exceptions import ExtractionError, TransportError

if TYPE_CHECKING:
    from reposnap.services.classifier import ClassifiedFileRef
    from reposnap.services.github_service import GitHubClient

logger = logging.getLogger(__name__)

_STRING_SPECIAL = re.compile(r'["\\]')
_BLOB_FIELDS = frozenset({"content", "encoding"})


@dataclass
class FetchedFile:
    """Decoded content of one file, held only until it is persisted."""

    path: str
    content: str
    commit_sha: str
    is_binary: bool
    size: int = 0


class BlobFieldScanner:
    """Incrementally pull top-level string fields out of a JSON object.

    Text chunks are fed as they arrive.  Only the requested top-level fields
    are buffered, as their raw (still escaped) JSON string bodies; every other
    value is skipped without being materialized.  Structure and string
    escapes are tracked, so a field name that appears inside another value is
    never mistaken for a key.
    """

    def __init__(self, fields: frozenset[str]) -> None:
        self._fields = fields
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._expect_key = False
        self._key: str | None = None
        self._buffer: list[str] | None = None
        self._buffer_is_key = False
        self.values: dict[str, str] = {}

    def feed(self, chunk: str) -> None:
        i = 0
        n = len(chunk)
        while i < n:
            if self._in_string:
                i = self._scan_string(chunk, i)
                continue
            ch = chunk[i]
            i += 1
            if ch == '"':
                self._open_string()
            elif ch in "{[":
                self._depth += 1
                self._expect_key = ch == "{" and self._depth == 1
            elif ch in "}]":
                self._depth -= 1
            elif self._depth == 1:
                if ch == ",":
                    self._expect_key = True
                elif ch == ":":
                    self._expect_key = False

    def _scan_string(self, chunk: str, i: int) -> int:
        if self._escape:
            self._escape = False
            self._append(chunk[i])
            return i + 1
        match = _STRING_SPECIAL.search(chunk, i)
        if match is None:
            self._append(chunk[i:])
            return len(chunk)
        j = match.start()
        self._append(chunk[i:j])
        if chunk[j] == "\\":
            self._escape = True
            self._append("\\")
        else:
            self._close_string()
        return j + 1

    def _open_string(self) -> None:
        self._in_string = True
        self._buffer = None
        self._buffer_is_key = False
        if self._depth != 1:
            return
        if self._expect_key:
            self._buffer = []
            self._buffer_is_key = True
        elif self._key in self._fields:
            self._buffer = []

    def _append(self, text: str) -> None:
        if self._buffer is not None and text:
            self._buffer.append(text)

    def _close_string(self) -> None:
        self._in_string = False
        if self._buffer is None:
            return
        raw = "".join(self._buffer)
        self._buffer = None
        if self._buffer_is_key:
            self._key = json.loads(f'"{raw}"')
        elif self._key is not None:
            self.values[self._key] = raw
            self._key = None


def _strip_wrapping(raw: str) -> str:
    """Remove the line-wrapping the API inserts into base64 payloads."""
    payload = raw.replace("\\n", "")
    if "\\" in payload:
        payload = "".join(json.loads(f'"{payload}"').split())
    return payload


async def _fetch_binary(
    client: GitHubClient, ref: ClassifiedFileRef, commit_sha: str
) -> FetchedFile:
    scanner = BlobFieldScanner(_BLOB_FIELDS)
    try:
        async with client.stream_blob(ref.sha) as response:
            if not response.is_success:
                await response.aread()
                msg = f"Blob fetch failed: {response.status_code} {response.text[:100]}"
                raise TransportError(msg, status_code=response.status_code)
            async for chunk in response.aiter_text():
                scanner.feed(chunk)
    except httpx.HTTPError as exc:
        raise TransportError(f"Blob fetch failed: {exc}") from exc
    except ValueError as exc:
        raise ExtractionError(f"Malformed blob response for {ref.path}: {exc}") from exc

    raw = scanner.values.get("content")
    if raw is None:
        raise ExtractionError(f"No content field in blob response for {ref.path}")
    encoding = scanner.values.get("encoding", "base64")
    if encoding != "base64":
        raise ExtractionError(f"Unsupported blob encoding {encoding!r} for {ref.path}")
    try:
        payload = _strip_wrapping(raw)
    except ValueError as exc:
        raise ExtractionError(f"Malformed base64 payload for {ref.path}: {exc}") from exc
    return FetchedFile(
        path=ref.path,
        content=payload,
        commit_sha=commit_sha,
        is_binary=True,
        size=ref.size,
    )


async def _fetch_text(
    client: GitHubClient, ref: ClassifiedFileRef, commit_sha: str
) -> FetchedFile:
    data = await client.get_blob(ref.sha)
    content = data.get("content")
    if not isinstance(content, str):
        raise ExtractionError(f"No content field in blob response for {ref.path}")

    encoding = data.get("encoding", "base64")
    if encoding == "utf-8":
        return FetchedFile(
            path=ref.path, content=content, commit_sha=commit_sha, is_binary=False, size=ref.size
        )
    if encoding != "base64":
        raise ExtractionError(f"Unsupported blob encoding {encoding!r} for {ref.path}")

    payload = "".join(content.split())
    try:
        raw_bytes = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ExtractionError(f"Malformed base64 payload for {ref.path}: {exc}") from exc

    try:
        text = raw_bytes.decode("utf-8")
    except UnicodeDecodeError:
        logger.info("Treating %s as binary due to decode error", ref.path)
        return FetchedFile(
            path=ref.path, content=payload, commit_sha=commit_sha, is_binary=True, size=ref.size
        )
    return FetchedFile(
        path=ref.path, content=text, commit_sha=commit_sha, is_binary=False, size=ref.size
    )


async def fetch_content(
    client: GitHubClient, ref: ClassifiedFileRef, commit_sha: str
) -> FetchedFile:
    """Retrieve and decode one file of the snapshot.

    Binary files are streamed and their base64 payload is kept as-is, so the
    response is never parsed into an object tree.  Text files are fully
    parsed and decoded to UTF-8, falling back to binary storage when the
    bytes are not valid UTF-8.

    Raises TransportError or ExtractionError; callers treat both as a
    failure of this file only.
    """
    if ref.is_binary:
        return await _fetch_binary(client, ref, commit_sha)
    return await _fetch_text(client, ref, commit_sha)
