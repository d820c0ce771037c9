"""Select and order the policies that apply to an event."""

from __future__ import annotations

from typing import Iterable, List

from app.core.conditions import evaluate
from app.infra.logging_config import get_logger
from app.schemas.event import Event
from app.schemas.policy import Policy, PolicyAction

logger = get_logger("policy_matcher")

WILDCARD = "*"


def matches_event_type(event_type: str, pattern: str) -> bool:
    """Exact match, ``*`` for anything, or ``prefix*`` for a prefix match."""
    if pattern == WILDCARD:
        return True
    if pattern.endswith(WILDCARD):
        return event_type.startswith(pattern[:-1])
    return event_type == pattern


class PolicyMatcher:
    """Turns an event and a tenant's ordered policy list into a flat action list."""

    def policy_applies(self, event: Event, policy: Policy) -> bool:
        if not matches_event_type(event.type, policy.event_type):
            return False
        if policy.condition is None:
            return True
        return evaluate(policy.condition, event)

    def match(self, event: Event, policies: Iterable[Policy]) -> List[PolicyAction]:
        """
        Return the actions of every applicable policy.

        Policies are ordered by priority, highest first. ``sorted`` is stable,
        so policies with equal priority keep their configured order. Each
        policy's own action order is preserved.
        """
        matched = [p for p in policies if self.policy_applies(event, p)]
        ordered = sorted(matched, key=lambda p: p.priority, reverse=True)

        actions: List[PolicyAction] = []
        for policy in ordered:
            actions.extend(policy.actions)

        logger.info(
            "Policy matching completed: event_type=%s matched_policies=%s actions=%s",
            event.type,
            len(matched),
            len(actions),
        )
        return actions
