"""Relationship status gating.

Statuses above ``acquaintances`` are earned: each requires at least one
milestone from its gate set to have happened for the pair, and a pair climbs
at most one rung per turn.  Falling out (``strained``, ``hostile``,
``complicated``) and voluntary downgrades are never gated.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable

from scenetracker.models.common import RelationshipStatus

log = logging.getLogger(__name__)

STATUS_RANK: Dict[str, int] = {
    "hostile": -2,
    "strained": -1,
    "strangers": 0,
    "complicated": 0,
    "acquaintances": 1,
    "friendly": 2,
    "close": 3,
    "intimate": 4,
}

FRIENDLY_GATE: FrozenSet[str] = frozenset({
    "laugh", "gift", "shared_meal", "shared_activity", "compliment", "tease",
    "helped", "common_interest", "outing",
})

CLOSE_GATE: FrozenSet[str] = frozenset({
    "emotionally_intimate", "secret_shared", "confession", "sleepover",
    "forgiveness", "supportive", "comfort", "defended", "crisis_together",
    "vulnerability", "shared_vulnerability", "entrusted",
})

INTIMATE_GATE: FrozenSet[str] = frozenset({
    "intimate_kiss", "date", "i_love_you", "intimate_touch", "intimate_embrace",
    "intimate_heated", "intimate_foreplay", "intimate_oral", "intimate_manual",
    "intimate_penetrative", "intimate_climax", "exclusivity", "marriage",
})

STATUS_GATES: Dict[str, FrozenSet[str]] = {
    "friendly": FRIENDLY_GATE,
    "close": CLOSE_GATE,
    "intimate": INTIMATE_GATE,
}

# Escalation ladder, lowest first.
LADDER = ("strangers", "acquaintances", "friendly", "close", "intimate")


def gate_met(status: str, milestones: Iterable[str]) -> bool:
    gate = STATUS_GATES.get(status)
    if gate is None:
        return True
    return not gate.isdisjoint(milestones)


def _ladder_position(status: str) -> int:
    """Position on the escalation ladder; falling-out statuses count as the bottom."""
    return max(STATUS_RANK[status], 0)


def apply_status_gating(
    proposed: RelationshipStatus,
    current: RelationshipStatus,
    milestone_subjects: Iterable[str],
) -> RelationshipStatus:
    """Clamp a proposed status change to what the pair's milestones justify.

    The result climbs at most one rung above ``current`` and never past the
    highest gated status the milestones earn.  Missing milestones never push
    the result below ``current``; only an explicit downgrade does that.
    """
    milestones = frozenset(milestone_subjects)
    if proposed in ("strained", "hostile", "complicated"):
        return proposed
    if STATUS_RANK[proposed] <= STATUS_RANK[current]:
        return proposed

    if proposed not in STATUS_GATES:
        return proposed

    earned = [STATUS_RANK[s] for s in STATUS_GATES if gate_met(s, milestones)]
    if not earned:
        result: RelationshipStatus = current
    else:
        reachable = min(STATUS_RANK[proposed], max(earned), _ladder_position(current) + 1)
        candidate = LADDER[reachable]
        result = candidate if STATUS_RANK[candidate] > STATUS_RANK[current] else current  # type: ignore[assignment]
    if result != proposed:
        log.info("Status gated: proposed=%s current=%s -> %s (milestones=%s)",
                 proposed, current, result, sorted(milestones))
    return result
