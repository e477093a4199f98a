"""Text/binary classification of repository paths by file extension."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reposnap.services.github_service import RemoteFileRef

# Paths with these suffixes are stored as base64 with is_binary set.
BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        # images
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".ico",
        ".webp",
        ".bmp",
        # documents and archives
        ".pdf",
        ".zip",
        ".tar",
        ".gz",
        ".rar",
        ".7z",
        # fonts
        ".woff",
        ".woff2",
        ".ttf",
        ".eot",
        ".otf",
        # audio/video
        ".mp3",
        ".mp4",
        ".wav",
        ".avi",
        ".mov",
        ".webm",
        # compiled objects
        ".exe",
        ".dll",
        ".so",
        ".dylib",
        ".pyc",
        ".class",
        ".o",
        ".obj",
        # lockfiles
        ".lock",
        ".lockb",
    }
)


@dataclass(frozen=True)
class ClassifiedFileRef:
    """A remote file entry labelled as text or binary."""

    path: str
    sha: str
    size: int
    is_binary: bool


def is_binary_path(path: str) -> bool:
    """Return True when the path's extension marks it as binary.

    This is a heuristic, not content sniffing.  Text that fails to decode is
    corrected later by the content fetcher; the reverse is never corrected.
    """
    return PurePosixPath(path).suffix.lower() in BINARY_EXTENSIONS


def classify(refs: list[RemoteFileRef]) -> list[ClassifiedFileRef]:
    """Label every listed entry as text or binary."""
    return [
        ClassifiedFileRef(
            path=ref.path,
            sha=ref.sha,
            size=ref.size,
            is_binary=is_binary_path(ref.path),
        )
        for ref in refs
    ]
