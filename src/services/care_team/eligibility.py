"""
Eligibility Evaluator - verdict for a proposed (client, staff) pairing.

Restrictions are always consulted first. The pair's state is reduced to a
single CareTeamSignal and the verdict is a pure function of that signal:

    hard_block  -> BLOCKED
    soft_block  -> REQUIRES_OVERRIDE
    warning     -> ALLOWED_WITH_WARNING
    preference  -> PREFERRED (best level)
    nothing     -> NEUTRAL
"""

from datetime import datetime
from typing import Iterable, List, Sequence
from uuid import UUID

from domain.aggregates import Preference, Restriction
from domain.value_objects import (
    SEVERITY_VERDICT,
    CareTeamSignal,
    EligibilityResult,
    NoSignal,
    PreferenceSignal,
    RestrictionSignal,
    Verdict,
)

from .preferences import PreferenceRegistry
from .restrictions import RestrictionRegistry


def signal_for(
    preferences: Iterable[Preference],
    restrictions: Iterable[Restriction],
    now: datetime,
) -> CareTeamSignal:
    """
    Reduce a pair's preferences and restrictions to one signal.

    The most severe restriction in effect wins; among equally severe ones
    the newest supplies the reason. Without restrictions the best active
    preference level wins.
    """
    in_effect = [r for r in restrictions if r.is_in_effect(now)]
    if in_effect:
        dominant = max(in_effect, key=lambda r: (r.severity.weight, r.created_at or r.effective_from))
        return RestrictionSignal(
            severity=dominant.severity,
            reason=dominant.reason,
            restriction_id=dominant.id,
        )

    active = [p for p in preferences if p.is_active]
    if active:
        best = min(active, key=lambda p: p.level.rank)
        return PreferenceSignal(level=best.level, preference_id=best.id)

    return NoSignal()


def verdict_for(client_id: UUID, staff_id: UUID, signal: CareTeamSignal) -> EligibilityResult:
    """Map a signal to its eligibility result."""
    if isinstance(signal, RestrictionSignal):
        return EligibilityResult(
            client_id=client_id,
            staff_id=staff_id,
            verdict=SEVERITY_VERDICT[signal.severity],
            severity=signal.severity,
            reason=signal.reason,
            restriction_id=signal.restriction_id,
        )
    if isinstance(signal, PreferenceSignal):
        return EligibilityResult(
            client_id=client_id,
            staff_id=staff_id,
            verdict=Verdict.PREFERRED,
            level=signal.level,
            preference_id=signal.preference_id,
        )
    return EligibilityResult(client_id=client_id, staff_id=staff_id, verdict=Verdict.NEUTRAL)


def rank_results(results: Sequence[EligibilityResult]) -> List[EligibilityResult]:
    """Best candidates first; ties keep their input order."""
    return sorted(results, key=lambda result: result.sort_key())


class EligibilityEvaluator:
    """Reads a pair's state through the registries and evaluates it."""

    def __init__(self, preferences: PreferenceRegistry, restrictions: RestrictionRegistry, clock):
        self._preferences = preferences
        self._restrictions = restrictions
        self._clock = clock

    async def evaluate(self, client_id: UUID, staff_id: UUID) -> EligibilityResult:
        now = self._clock()
        restrictions = await self._restrictions.list_in_effect(client_id, staff_id, now)
        preferences = await self._preferences.list_active_for_pair(client_id, staff_id)
        return verdict_for(client_id, staff_id, signal_for(preferences, restrictions, now))

    async def rank(self, client_id: UUID, staff_ids: Sequence[UUID]) -> List[EligibilityResult]:
        """
        Evaluate several candidates for one client and order them.

        Duplicate ids are evaluated once, at their first position.
        """
        seen = set()
        results = []
        for staff_id in staff_ids:
            if staff_id in seen:
                continue
            seen.add(staff_id)
            results.append(await self.evaluate(client_id, staff_id))
        return rank_results(results)
