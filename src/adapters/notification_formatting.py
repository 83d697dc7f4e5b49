"""Notification formatting for project alerts.

Keeping formatting here prevents drift between delivery adapters and keeps
messages consistent regardless of channel. Output is Telegram HTML.
"""

from __future__ import annotations

import html
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import pycountry

from core.config import MAX_MESSAGE_LENGTH, SITE_URL
from core.models import Actor, Candidate

DIVIDER = "-" * 50

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _describe_span(seconds: float) -> str:
    # Thresholds mirror the usual "relative time" ladder: each unit is used
    # until the next one rounds to a sensible value.
    if seconds < 45:
        return "a few seconds"
    if seconds < 90:
        return "a minute"
    if seconds < 45 * _MINUTE:
        return f"{_round_half_up(seconds / _MINUTE)} minutes"
    if seconds < 90 * _MINUTE:
        return "an hour"
    if seconds < 22 * _HOUR:
        return f"{_round_half_up(seconds / _HOUR)} hours"
    if seconds < 36 * _HOUR:
        return "a day"
    if seconds < 26 * _DAY:
        return f"{_round_half_up(seconds / _DAY)} days"
    if seconds < 46 * _DAY:
        return "a month"
    if seconds < 320 * _DAY:
        return f"{_round_half_up(seconds / (30.44 * _DAY))} months"
    if seconds < 548 * _DAY:
        return "a year"
    return f"{_round_half_up(seconds / (365.25 * _DAY))} years"


def relative_age(timestamp: int, now: Optional[datetime] = None) -> str:
    """Return e.g. "5 minutes ago" for a unix timestamp relative to ``now``."""

    now = now or datetime.now(timezone.utc)
    elapsed = now.timestamp() - timestamp
    if elapsed < 0:
        return f"in {_describe_span(-elapsed)}"
    return f"{_describe_span(elapsed)} ago"


@lru_cache(maxsize=512)
def country_flag(country_name: Optional[str]) -> str:
    """Return the flag emoji for a country name, or "" if it is unknown."""

    if not country_name:
        return ""
    try:
        country = pycountry.countries.lookup(country_name)
    except LookupError:
        try:
            country = pycountry.countries.search_fuzzy(country_name)[0]
        except LookupError:
            return ""
    return "".join(chr(0x1F1E6 + ord(letter) - ord("A")) for letter in country.alpha_2.upper())


def _format_amount(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


def truncate_utf16(text: str, max_units: int) -> str:
    """Cut text to at most ``max_units`` UTF-16 code units, the way Telegram counts length."""

    encoded = text.encode("utf-16-le")
    if len(encoded) <= max_units * 2:
        return text
    clipped = encoded[: max_units * 2]
    # A trailing high surrogate is half of an astral character (emoji etc.).
    if 0xD800 <= int.from_bytes(clipped[-2:], "little") <= 0xDBFF:
        clipped = clipped[:-2]
    return clipped.decode("utf-16-le")


def _format_budget(candidate: Candidate) -> str:
    sign = html.escape(candidate.currency_sign)
    low = f"{sign}{_format_amount(candidate.budget_min)}"
    if candidate.budget_max is None:
        budget = f"{low}+"
    else:
        budget = f"{low}-{sign}{_format_amount(candidate.budget_max)}"
    return f"{budget} ({html.escape(candidate.currency_code)})"


def render_notification(
    candidate: Candidate,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
    max_length: int = MAX_MESSAGE_LENGTH,
    site_url: str = SITE_URL,
) -> str:
    """Render the HTML alert for one project and its owner.

    The assembled text is cut to ``max_length`` UTF-16 code units as a whole,
    so a very long description is simply clipped at the end.
    """

    now = now or datetime.now(timezone.utc)
    sign = html.escape(candidate.currency_sign)
    project_url = html.escape(f"{site_url}/projects/{candidate.seo_url}")
    user_url = html.escape(f"{site_url}/u/{actor.username}")
    username = html.escape(actor.username)
    flag = country_flag(actor.country)
    employer = f'<a href="{user_url}">{username}</a>'
    if flag:
        employer = f"{employer} {flag}"

    parts = [
        f'<b>Title</b>: <a href="{project_url}">{html.escape(candidate.title)}</a> '
        f"({relative_age(candidate.submitted_at, now)})",
        f"<b>Budget</b>: {_format_budget(candidate)}",
        f"<b>Bids</b>: {candidate.bid_count} (Average: {sign}{candidate.bid_avg:.2f})",
        f"<b>Skills</b>: {html.escape(', '.join(candidate.skills))}",
        f"<b>Employer</b>: {employer} "
        f"(Rating: {actor.reputation:.2f}, Created: {relative_age(actor.registered_at, now)})",
        f"{DIVIDER}\n\n{html.escape(candidate.description)}",
    ]
    return truncate_utf16("\n\n".join(parts), max_length)
