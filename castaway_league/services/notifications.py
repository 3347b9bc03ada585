"""
Outbound events for the notification collaborator.

The core only emits events; delivery, scheduling and preference filtering
belong to the notification service. Events are emitted after the owning
transaction commits, so a failed delivery never undoes a pick or a grade.
"""

import enum
import logging
from dataclasses import dataclass, field, asdict
from typing import Protocol

import httpx

from castaway_league.core.config import get_settings

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    DRAFT_TURN = "draft_turn"
    RESULTS_AVAILABLE = "results_available"
    QUESTION_WINDOW_CLOSING = "question_window_closing"


@dataclass
class Event:
    kind: EventKind
    league_season_id: int
    payload: dict = field(default_factory=dict)

    def to_json(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class Notifier(Protocol):
    async def emit(self, event: Event) -> None: ...


class LoggingNotifier:
    """Default sink when no webhook is configured."""

    async def emit(self, event: Event) -> None:
        logger.info(f"Event {event.kind.value} for league-season {event.league_season_id}: {event.payload}")


class WebhookNotifier:
    """POSTs each event as JSON to the notification service."""

    def __init__(self, url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def emit(self, event: Event) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=event.to_json())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            # The state change already committed; the notification service retries on its side.
            logger.error(f"Failed to deliver {event.kind.value} event to {self.url}: {e}")


class RecordingNotifier:
    """Keeps emitted events in memory. Handy for scripts and tests."""

    def __init__(self):
        self.events: list[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> list[Event]:
        return [e for e in self.events if e.kind == kind]


def get_notifier() -> Notifier:
    settings = get_settings()
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url, settings.notification_timeout_seconds)
    return LoggingNotifier()
