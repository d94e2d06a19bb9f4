"""Calendar and email signal routes.

Endpoints:
- GET /integrations/status - Which Google connectors are linked
- GET /calendar/events     - Events with busy/free windows (fallback on failure)
- GET /email/signals       - Classified recent emails (fallback on failure)
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request

from relay_console.integrations.fallback import fallback_calendar, fallback_email_signals
from relay_console.integrations.google import (
    CALENDAR_CONNECTOR,
    GMAIL_CONNECTOR,
    CalendarClient,
    ConnectorTokenSource,
    GmailClient,
)
from relay_console.schemas import CalendarBlock, EmailSignal, IntegrationStatus


logger = logging.getLogger(__name__)
router = APIRouter()


def get_calendar_client(request: Request) -> CalendarClient:
    cache = request.app.state.token_caches[CALENDAR_CONNECTOR]
    return CalendarClient(ConnectorTokenSource(CALENDAR_CONNECTOR, cache))


def get_gmail_client(request: Request) -> GmailClient:
    cache = request.app.state.token_caches[GMAIL_CONNECTOR]
    return GmailClient(ConnectorTokenSource(GMAIL_CONNECTOR, cache))


@router.get("/integrations/status", response_model=IntegrationStatus)
async def integrations_status(
    calendar: CalendarClient = Depends(get_calendar_client),
    gmail: GmailClient = Depends(get_gmail_client),
):
    """Report whether the calendar and Gmail connectors hold a token."""
    if not (calendar.tokens.configured and gmail.tokens.configured):
        return IntegrationStatus()

    cal_ok, gmail_ok = await asyncio.gather(
        calendar.tokens.is_connected(),
        gmail.tokens.is_connected(),
        return_exceptions=True,
    )
    for name, outcome in (("calendar", cal_ok), ("gmail", gmail_ok)):
        if isinstance(outcome, Exception):
            logger.error(f"[integrations] Error checking {name} status: {outcome}")

    return IntegrationStatus(
        calendar=cal_ok is True,
        gmail=gmail_ok is True,
    )


@router.get("/calendar/events", response_model=CalendarBlock)
async def calendar_events(
    time_min: str | None = Query(default=None, alias="timeMin"),
    time_max: str | None = Query(default=None, alias="timeMax"),
    calendar: CalendarClient = Depends(get_calendar_client),
):
    try:
        return await calendar.get_events(time_min, time_max)
    except Exception as e:
        logger.error(f"[calendar] Live API failed, using fallback data: {e}")
        return fallback_calendar()


@router.get("/email/signals", response_model=list[EmailSignal])
async def email_signals(
    max_results: int = Query(default=15, alias="maxResults", ge=1, le=100),
    gmail: GmailClient = Depends(get_gmail_client),
):
    try:
        return await gmail.get_signals(max_results)
    except Exception as e:
        logger.error(f"[gmail] Live API failed, using fallback data: {e}")
        return fallback_email_signals()
