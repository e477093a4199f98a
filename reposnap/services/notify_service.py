"""Best-effort change notification after a completed snapshot pull."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

import httpx

from reposnap.services.datetime_service import epoch_millis, now_utc

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEvent:
    """Broadcast payload announcing that a repository's files were refreshed."""

    repo_id: int
    commit_sha: str
    action: str = "pull"
    timestamp: int = field(default_factory=lambda: epoch_millis(now_utc()))


class ChangeNotifier:
    """Delivers snapshot events to in-process subscribers and an optional webhook.

    Delivery is best-effort: ``publish`` never raises, failures are logged.
    """

    def __init__(
        self,
        webhook_url: str = "",
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport
        self._subscribers: list[Callable[[SnapshotEvent], Awaitable[None]]] = []

    def subscribe(self, callback: Callable[[SnapshotEvent], Awaitable[None]]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[SnapshotEvent], Awaitable[None]]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def publish(self, event: SnapshotEvent) -> None:
        logger.info("Broadcasting files_refresh for repo %d at %s", event.repo_id, event.commit_sha)
        for callback in list(self._subscribers):
            try:
                await callback(event)
            except Exception:
                logger.exception("Change subscriber failed for repo %d", event.repo_id)

        if not self.webhook_url:
            return
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"event": "files_refresh", "payload": asdict(event)},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to broadcast files_refresh event: %s", exc)
