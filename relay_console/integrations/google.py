"""Google Calendar and Gmail signal sources.

Access tokens come from the platform connector service, which holds the
user's OAuth connection. Each connector gets its own TokenCache, injected by
the caller, so no token state lives at module level.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time as dtime, timedelta, timezone
from typing import Any

import httpx

from relay_console.config import get_settings
from relay_console.schemas import CalendarBlock, CalendarEvent, EmailSignal, TimeWindow


logger = logging.getLogger(__name__)

CALENDAR_CONNECTOR = "google-calendar"
GMAIL_CONNECTOR = "google-mail"

ACTIONABLE_CATEGORIES = {"delivery", "event_invite", "reservation", "urgent"}


class ConnectorError(RuntimeError):
    """Raised when a connector is missing, unlinked or unreachable."""


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Token handling
# =============================================================================

@dataclass
class TokenCache:
    """Last access token handed out by a connector and its expiry."""
    token: str | None = None
    expires_at: datetime | None = None

    def get(self, now: datetime | None = None) -> str | None:
        now = now or datetime.now(timezone.utc)
        if self.token and self.expires_at and self.expires_at > now:
            return self.token
        return None

    def store(self, token: str, expires_at: datetime | None) -> None:
        self.token = token
        self.expires_at = expires_at

    def clear(self) -> None:
        self.token = None
        self.expires_at = None


class ConnectorTokenSource:
    """Fetches OAuth access tokens for one connector."""

    def __init__(
        self,
        connector_name: str,
        cache: TokenCache,
        hostname: str | None = None,
        identity_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.connector_name = connector_name
        self.cache = cache
        self.hostname = hostname if hostname is not None else settings.connectors_hostname
        self.identity_token = (
            identity_token if identity_token is not None else settings.connectors_identity_token
        )
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.hostname and self.identity_token)

    async def _connection(self, include_secrets: bool) -> dict[str, Any] | None:
        if not self.configured:
            raise ConnectorError("Connector hostname or identity token not configured")

        async with httpx.AsyncClient(transport=self.transport, timeout=15.0) as client:
            response = await client.get(
                f"https://{self.hostname}/api/v2/connection",
                params={
                    "include_secrets": "true" if include_secrets else "false",
                    "connector_names": self.connector_name,
                },
                headers={"Accept": "application/json", "X_REPLIT_TOKEN": self.identity_token},
            )
            response.raise_for_status()
            items = response.json().get("items") or []
        return items[0] if items else None

    async def is_connected(self) -> bool:
        connection = await self._connection(include_secrets=False)
        return bool(connection and (connection.get("settings") or {}).get("access_token"))

    async def access_token(self) -> str:
        cached = self.cache.get()
        if cached:
            return cached

        connection = await self._connection(include_secrets=True)
        settings = (connection or {}).get("settings") or {}
        token = settings.get("access_token") or (
            ((settings.get("oauth") or {}).get("credentials") or {}).get("access_token")
        )
        if not token:
            raise ConnectorError(f"{self.connector_name} not connected")

        expires_at = settings.get("expires_at")
        self.cache.store(token, parse_timestamp(expires_at) if expires_at else None)
        return token


# =============================================================================
# Calendar
# =============================================================================

def compute_free_windows(
    busy: list[TimeWindow],
    range_start: str,
    range_end: str,
) -> list[TimeWindow]:
    """Gaps between busy windows inside [range_start, range_end]."""
    if not busy:
        return [TimeWindow(start=range_start, end=range_end)]

    ordered = sorted(busy, key=lambda w: parse_timestamp(w.start))
    free: list[TimeWindow] = []
    cursor = parse_timestamp(range_start)

    for block in ordered:
        block_start = parse_timestamp(block.start)
        if block_start > cursor:
            free.append(TimeWindow(start=format_timestamp(cursor), end=format_timestamp(block_start)))
        block_end = parse_timestamp(block.end)
        if block_end > cursor:
            cursor = block_end

    end = parse_timestamp(range_end)
    if cursor < end:
        free.append(TimeWindow(start=format_timestamp(cursor), end=format_timestamp(end)))
    return free


def _today_range() -> tuple[str, str]:
    today = datetime.now(timezone.utc).date()
    start = datetime.combine(today, dtime.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1) - timedelta(milliseconds=1)
    return format_timestamp(start), format_timestamp(end)


class CalendarClient:
    """Reads events from the user's primary Google calendar."""

    def __init__(self, tokens: ConnectorTokenSource, transport: httpx.AsyncBaseTransport | None = None):
        self.tokens = tokens
        self.base_url = get_settings().google_calendar_base_url
        self.transport = transport

    async def get_events(self, time_min: str | None = None, time_max: str | None = None) -> CalendarBlock:
        default_min, default_max = _today_range()
        range_min = time_min or default_min
        range_max = time_max or default_max

        token = await self.tokens.access_token()
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=self.transport,
            timeout=15.0,
        ) as client:
            response = await client.get(
                "/calendars/primary/events",
                params={
                    "timeMin": range_min,
                    "timeMax": range_max,
                    "singleEvents": "true",
                    "orderBy": "startTime",
                    "maxResults": 50,
                },
            )
            response.raise_for_status()
            raw_events = response.json().get("items") or []

        events = []
        for e in raw_events:
            start = e.get("start") or {}
            end = e.get("end") or {}
            events.append(CalendarEvent(
                id=e.get("id") or "",
                title=e.get("summary") or "Untitled",
                start=start.get("dateTime") or start.get("date") or "",
                end=end.get("dateTime") or end.get("date") or "",
                all_day=not start.get("dateTime"),
                location=e.get("location"),
                status=e.get("status") or "confirmed",
            ))

        busy = [
            TimeWindow(start=e.start, end=e.end)
            for e in events
            if not e.all_day and e.status == "confirmed"
        ]
        return CalendarBlock(
            events=events,
            busy_windows=busy,
            free_windows=compute_free_windows(busy, range_min, range_max),
            source="google",
        )


# =============================================================================
# Gmail
# =============================================================================

_CATEGORY_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("delivery", ("shipped", "delivered", "tracking", "out for delivery", "package", "order confirmed")),
    ("event_invite", ("invitation", "invite", "rsvp", "you're invited", "calendar")),
    ("reservation", ("reservation", "booking", "check-in", "check in", "hotel", "flight")),
]


def classify_email(sender: str, subject: str, snippet: str, labels: list[str]) -> str:
    """Bucket an email into a signal category by keyword."""
    lower = f"{subject} {snippet} {sender}".lower()

    for category, keywords in _CATEGORY_RULES:
        if any(k in lower for k in keywords):
            return category

    if "IMPORTANT" in labels or any(
        k in lower for k in ("urgent", "asap", "action required", "immediately")
    ):
        return "urgent"

    if any(k in lower for k in ("unsubscribe", "newsletter", "weekly digest")):
        return "newsletter"

    return "general"


_SENDER_RE = re.compile(r'^"?([^"<]+)"?\s*<?')


def extract_sender_name(sender: str) -> str:
    """'Jane Doe <jane@x.com>' -> 'Jane Doe'."""
    match = _SENDER_RE.match(sender)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return sender.split("@")[0]


class GmailClient:
    """Reads recent Gmail messages and turns them into signals."""

    def __init__(self, tokens: ConnectorTokenSource, transport: httpx.AsyncBaseTransport | None = None):
        self.tokens = tokens
        self.base_url = get_settings().gmail_base_url
        self.transport = transport

    async def get_signals(self, max_results: int = 15) -> list[EmailSignal]:
        token = await self.tokens.access_token()
        signals: list[EmailSignal] = []

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=self.transport,
            timeout=15.0,
        ) as client:
            listing = await client.get(
                "/users/me/messages",
                params={"maxResults": max_results, "q": "newer_than:2d"},
            )
            listing.raise_for_status()
            message_ids = [m["id"] for m in listing.json().get("messages") or []]

            for message_id in message_ids[:max_results]:
                try:
                    detail = await client.get(
                        f"/users/me/messages/{message_id}",
                        params=[
                            ("format", "metadata"),
                            ("metadataHeaders", "From"),
                            ("metadataHeaders", "Subject"),
                            ("metadataHeaders", "Date"),
                        ],
                    )
                    detail.raise_for_status()
                except httpx.HTTPError as e:
                    logger.error(f"[gmail] Failed to fetch message {message_id}: {e}")
                    continue

                data = detail.json()
                headers = {
                    h.get("name"): h.get("value", "")
                    for h in (data.get("payload") or {}).get("headers") or []
                }
                sender = headers.get("From", "")
                subject = headers.get("Subject") or "(no subject)"
                snippet = data.get("snippet") or ""
                labels = data.get("labelIds") or []
                category = classify_email(sender, subject, snippet, labels)

                signals.append(EmailSignal(
                    id=message_id,
                    sender=extract_sender_name(sender),
                    subject=subject,
                    date=headers.get("Date", ""),
                    snippet=snippet,
                    category=category,
                    labels=labels,
                    actionable=category in ACTIONABLE_CATEGORIES,
                ))

        return signals
