"""Qualification rules applied to fetched candidates (core domain)."""

from __future__ import annotations

from typing import List

from core.config import FilterConfig
from core.models import Actor, Candidate


def qualification_failures(candidate: Candidate, actor: Actor, rules: FilterConfig) -> List[str]:
    """Return a human-readable reason for every rule the candidate fails.

    Rules:
    - The owner must have made a deposit or verified a payment method.
    - The listing currency must not be the excluded currency.
    - The listing must not require more than ``max_skills`` skills.
    """

    failures: List[str] = []
    if not actor.is_verified:
        failures.append("owner not verified")
    if candidate.currency_code == rules.excluded_currency:
        failures.append(f"currency {candidate.currency_code} excluded")
    if len(candidate.skills) > rules.max_skills:
        failures.append(f"{len(candidate.skills)} skills > {rules.max_skills}")
    return failures


def is_qualified(candidate: Candidate, actor: Actor, rules: FilterConfig) -> bool:
    return not qualification_failures(candidate, actor, rules)
