"""Freelancer listing feed adapter.

Builds the active-projects query, performs the HTTP call, and turns the wire
response into typed Candidate/Actor records. Records missing required
fields are dropped here with a warning instead of leaking partial data into
the core.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import FeedConfig
from core.errors import MalformedResponseError, TransientFetchError
from core.models import Actor, Candidate

LOGGER = logging.getLogger(__name__)


def build_query_params(config: FeedConfig) -> List[Tuple[str, str]]:
    """Return the ordered query parameters for the active-projects endpoint."""

    params: List[Tuple[str, str]] = [
        ("compact", "true"),
        ("forceShowLocationDetails", "false"),
        ("full_description", "true"),
        ("job_details", "true"),
    ]
    params.extend(("jobs[]", str(skill_id)) for skill_id in config.skill_ids)
    params.append(("keywords", ""))
    params.extend(("languages[]", language) for language in config.languages)
    params.extend(
        [
            ("limit", str(config.limit)),
            ("min_avg_price", str(config.min_avg_price)),
            ("offset", "0"),
            ("project_types[]", "fixed"),
            ("query", ""),
            ("sort_field", "submitdate"),
            ("upgrade_details", "true"),
            ("user_details", "true"),
            ("user_employer_reputation", "true"),
            ("user_status", "true"),
        ]
    )
    return params


def _optional_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None:
        return default
    return float(value)


def parse_candidate(raw: Dict[str, Any]) -> Candidate:
    """Build a Candidate from one project dict, raising on missing fields."""

    try:
        currency = raw["currency"]
        budget = raw["budget"]
        bid_stats = raw["bid_stats"]
        return Candidate(
            id=int(raw["id"]),
            owner_id=int(raw["owner_id"]),
            submitted_at=int(raw["submitdate"]),
            title=str(raw["title"]),
            description=str(raw.get("description") or ""),
            currency_code=str(currency["code"]),
            currency_sign=str(currency["sign"]),
            budget_min=float(budget["minimum"]),
            budget_max=_optional_float(budget.get("maximum"), None),
            bid_count=int(bid_stats["bid_count"]),
            bid_avg=_optional_float(bid_stats.get("bid_avg"), 0.0),
            skills=tuple(str(job["name"]) for job in raw["jobs"]),
            seo_url=str(raw["seo_url"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        project_id = raw.get("id") if isinstance(raw, dict) else None
        raise MalformedResponseError(f"project {project_id!r}: missing or invalid {exc}") from exc


def parse_actor(user_id: Any, raw: Dict[str, Any]) -> Actor:
    """Build an Actor from one users-table entry, raising on missing fields."""

    try:
        status = raw["status"]
        location = raw.get("location") or {}
        country = (location.get("country") or {}).get("name")
        history = (raw.get("employer_reputation") or {}).get("entire_history") or {}
        return Actor(
            id=int(user_id),
            username=str(raw["username"]),
            registered_at=int(raw["registration_date"]),
            country=str(country) if country else None,
            reputation=_optional_float(history.get("overall"), 0.0),
            deposit_made=bool(status.get("deposit_made")),
            payment_verified=bool(status.get("payment_verified")),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise MalformedResponseError(f"user {user_id!r}: missing or invalid {exc}") from exc


def parse_feed(payload: Any) -> Tuple[List[Candidate], Dict[int, Actor]]:
    """Validate the result envelope and parse every project and user in it."""

    result = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(result, dict):
        raise MalformedResponseError("response has no 'result' object")
    projects = result.get("projects")
    users = result.get("users")
    if not isinstance(projects, list) or not isinstance(users, dict):
        raise MalformedResponseError("response 'result' lacks 'projects' list or 'users' map")

    candidates: List[Candidate] = []
    for raw in projects:
        try:
            candidates.append(parse_candidate(raw))
        except MalformedResponseError as exc:
            LOGGER.warning("Dropping project: %s", exc)

    actors: Dict[int, Actor] = {}
    for user_id, raw in users.items():
        try:
            actor = parse_actor(user_id, raw)
        except MalformedResponseError as exc:
            LOGGER.warning("Dropping user: %s", exc)
            continue
        actors[actor.id] = actor
    return candidates, actors


class FreelancerFeedClient:
    """FeedPort implementation backed by the public Freelancer projects API."""

    def __init__(self, config: FeedConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._params = build_query_params(config)
        self._transport = transport

    async def _get(self) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._config.timeout_seconds, transport=self._transport) as client:
            response = await client.get(self._config.url, params=self._params)
            response.raise_for_status()
            return response

    async def fetch(self) -> Tuple[List[Candidate], Dict[int, Actor]]:
        # httpx timeouts apply per phase; wait_for bounds the whole request.
        try:
            response = await asyncio.wait_for(self._get(), self._config.timeout_seconds)
        except httpx.HTTPError as exc:
            raise TransientFetchError(f"feed request failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise TransientFetchError(
                f"feed request exceeded {self._config.timeout_seconds}s"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError("feed response is not JSON") from exc

        candidates, actors = parse_feed(payload)
        LOGGER.debug("Feed returned %s projects and %s users", len(candidates), len(actors))
        return candidates, actors
