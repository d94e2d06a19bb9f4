"""Sample calendar and email signals served when the live APIs are unavailable."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from relay_console.schemas import CalendarBlock, CalendarEvent, EmailSignal, TimeWindow


def fallback_calendar() -> CalendarBlock:
    now = datetime.now(timezone.utc)
    today = now.date().isoformat()
    tomorrow = (now + timedelta(days=1)).date().isoformat()

    def event(event_id: str, title: str, day: str, start: str, end: str, kind: str, stress: str) -> CalendarEvent:
        return CalendarEvent(
            id=event_id,
            title=title,
            start=f"{day}T{start}:00",
            end=f"{day}T{end}:00",
            type=kind,
            stress_level=stress,
        )

    return CalendarBlock(
        events=[
            event("cal_001", "Standup Meeting", today, "09:30", "10:00", "work", "low"),
            event("cal_002", "Product Strategy Review", today, "10:30", "11:30", "work", "high"),
            event("cal_003", "Lunch Block", today, "12:30", "13:30", "personal", "none"),
            event("cal_004", "Investor Sync", today, "14:00", "15:00", "work", "high"),
            event("cal_005", "Deep Work Block", today, "15:30", "17:30", "focus", "medium"),
            event("cal_006", "Gym", today, "18:00", "18:45", "health", "positive"),
            event("cal_007", "Free Evening Window", today, "19:00", "22:00", "free", "none"),
            event("cal_008", "Morning Planning", tomorrow, "08:30", "09:00", "work", "low"),
            event("cal_009", "Design Review", tomorrow, "11:00", "12:00", "work", "medium"),
            event("cal_010", "Friends Dinner", tomorrow, "19:30", "21:30", "social", "positive"),
        ],
        free_windows=[
            TimeWindow(start=f"{today}T07:00:00", end=f"{today}T09:30:00", duration="2h 30m"),
            TimeWindow(start=f"{today}T10:00:00", end=f"{today}T10:30:00", duration="30m"),
            TimeWindow(start=f"{today}T11:30:00", end=f"{today}T12:30:00", duration="1h"),
            TimeWindow(start=f"{today}T13:30:00", end=f"{today}T14:00:00", duration="30m"),
            TimeWindow(start=f"{today}T19:00:00", end=f"{today}T22:00:00", duration="3h"),
        ],
        source="fallback",
    )


_FALLBACK_EMAILS = [
    ("mail_001", "OpenTable", "Dinner Reservation Confirmation",
     "Your reservation for tonight at 7:30 PM is confirmed.", "reservation", True),
    ("mail_002", "Team Lead", "Deck needed before Monday",
     "Please finalize the presentation deck before end of day Monday.", "urgent", True),
    ("mail_003", "Amazon", "Package arriving today",
     "Your package is out for delivery and will arrive by 5 PM.", "delivery", True),
    ("mail_004", "Local Deals", "Valentine Offers Nearby",
     "Check out Valentine's Day specials near you.", "newsletter", False),
    ("mail_005", "Google Flights", "Flight Price Drop Alert",
     "Prices dropped for your saved flight to NYC.", "general", False),
    ("mail_006", "Substack", "Weekly AI Newsletter",
     "This week in AI: latest breakthroughs and industry news.", "newsletter", False),
    ("mail_007", "Chase Bank", "Credit Card Statement Ready",
     "Your February statement is ready to view.", "general", True),
    ("mail_008", "Google Calendar", "Added: Demo Rehearsal",
     "You've been invited to Demo Rehearsal on Feb 16.", "event_invite", True),
    ("mail_009", "Wellness App", "Don't forget hydration",
     "Stay hydrated! You're behind on your daily water goal.", "general", False),
    ("mail_010", "DevOps Bot", "Runloop execution logs attached",
     "Execution logs for run #47 are attached.", "general", False),
]


def fallback_email_signals() -> list[EmailSignal]:
    date = datetime.now(timezone.utc).isoformat()
    return [
        EmailSignal(
            id=mail_id,
            sender=sender,
            subject=subject,
            date=date,
            snippet=snippet,
            category=category,
            actionable=actionable,
        )
        for mail_id, sender, subject, snippet, category, actionable in _FALLBACK_EMAILS
    ]
