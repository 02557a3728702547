"""Relationship subject vocabulary, subject groups and the milestone allow-list.

A *subject* names what kind of interaction happened between two characters
at a message.  Most subjects are milestone-worthy: the first time one occurs
for a pair on the canonical path it is a milestone ("First Kiss").  A few are
too routine to ever count as milestones.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List

SUBJECT_GROUPS: Dict[str, List[str]] = {
    "conversation": ["conversation", "confession", "argument", "negotiation"],
    "discovery": ["discovery", "secret_shared", "secret_revealed"],
    "emotional": [
        "emotional", "emotionally_intimate", "supportive", "rejection",
        "comfort", "apology", "forgiveness",
    ],
    "bonding": [
        "laugh", "gift", "compliment", "tease", "flirt", "date",
        "i_love_you", "sleepover", "shared_meal", "shared_activity",
    ],
    "intimacy_romantic": [
        "intimate_touch", "intimate_kiss", "intimate_embrace", "intimate_heated",
    ],
    "intimacy_sexual": [
        "intimate_foreplay", "intimate_oral", "intimate_manual",
        "intimate_penetrative", "intimate_climax",
    ],
    "action": ["action", "combat", "danger"],
    "commitment": ["decision", "promise", "betrayal", "lied"],
    "life_events": ["exclusivity", "marriage", "pregnancy", "childbirth"],
    "social": ["social", "achievement"],
    "support": [
        "helped", "common_interest", "outing", "defended", "crisis_together",
        "vulnerability", "shared_vulnerability", "entrusted",
    ],
}

SUBJECTS: tuple[str, ...] = tuple(s for group in SUBJECT_GROUPS.values() for s in group)

MILESTONE_DISPLAY_NAMES: Dict[str, str] = {
    "confession": "Confession",
    "argument": "First Argument",
    "secret_shared": "Secret Shared",
    "secret_revealed": "Secret Revealed",
    "emotionally_intimate": "Emotional Intimacy",
    "supportive": "First Support",
    "rejection": "Rejection",
    "comfort": "First Comfort",
    "apology": "Apology",
    "forgiveness": "Reconciliation",
    "laugh": "First Laugh",
    "gift": "First Gift",
    "compliment": "First Compliment",
    "tease": "First Tease",
    "flirt": "First Flirt",
    "date": "First Date",
    "i_love_you": 'First "I Love You"',
    "sleepover": "First Sleepover",
    "shared_meal": "First Shared Meal",
    "shared_activity": "First Shared Activity",
    "intimate_touch": "First Touch",
    "intimate_kiss": "First Kiss",
    "intimate_embrace": "First Embrace",
    "intimate_heated": "First Heated Moment",
    "intimate_foreplay": "First Foreplay",
    "intimate_oral": "First Oral",
    "intimate_manual": "First Manual",
    "intimate_penetrative": "First Time",
    "intimate_climax": "First Climax",
    "promise": "Promise Made",
    "betrayal": "Betrayal",
    "lied": "Lied",
    "exclusivity": "Promised Exclusivity",
    "marriage": "Marriage",
    "pregnancy": "Pregnancy",
    "childbirth": "Had Child",
    "helped": "First Help",
    "common_interest": "Common Interest",
    "outing": "First Outing",
    "defended": "Defended",
    "crisis_together": "Crisis Together",
    "vulnerability": "Vulnerability",
    "shared_vulnerability": "Shared Vulnerability",
    "entrusted": "Entrusted",
}

# Routine interactions: tracked as subjects, never milestones.
NON_MILESTONE_SUBJECTS: FrozenSet[str] = frozenset({
    "conversation", "negotiation", "discovery", "emotional", "action",
    "combat", "danger", "decision", "social", "achievement",
})

MILESTONE_WORTHY_SUBJECTS: FrozenSet[str] = frozenset(
    s for s in SUBJECTS if s not in NON_MILESTONE_SUBJECTS
)


def is_valid_subject(subject: str) -> bool:
    return subject in SUBJECTS


def is_milestone_worthy(subject: str) -> bool:
    return subject in MILESTONE_WORTHY_SUBJECTS


def milestone_display_name(subject: str) -> str:
    return MILESTONE_DISPLAY_NAMES.get(subject) or subject.replace("_", " ").title()


def subject_group(subject: str) -> str | None:
    for group, members in SUBJECT_GROUPS.items():
        if subject in members:
            return group
    return None
