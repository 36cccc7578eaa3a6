"""Tests for eligibility signals, verdicts and candidate ranking."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from domain.aggregates import Preference, Restriction
from domain.exceptions import ValidationError
from domain.value_objects import (
    AssignmentType,
    ClientStatus,
    EligibilityResult,
    NoSignal,
    PreferenceLevel,
    PreferenceSignal,
    RestrictionSeverity,
    RestrictionSignal,
    Verdict,
    parse_enum,
)
from services.care_team.eligibility import rank_results, signal_for, verdict_for


NOW = datetime(2026, 3, 2, 12, 0, 0)
CLIENT = uuid4()
STAFF = uuid4()


def make_preference(level, is_active=True):
    return Preference(
        id=uuid4(),
        client_id=CLIENT,
        staff_id=STAFF,
        level=level,
        is_active=is_active,
        created_at=NOW - timedelta(days=1),
    )


def make_restriction(severity, reason="Client request", created_at=None, is_active=True,
                     effective_from=None, effective_to=None):
    return Restriction(
        id=uuid4(),
        client_id=CLIENT,
        staff_id=STAFF,
        reason=reason,
        severity=severity,
        is_active=is_active,
        effective_from=effective_from or NOW - timedelta(days=2),
        effective_to=effective_to,
        created_at=created_at or NOW - timedelta(days=2),
    )


class TestParseEnum:
    """Tests for enum coercion."""

    def test_accepts_values(self):
        assert parse_enum(PreferenceLevel, "primary", "level") is PreferenceLevel.PRIMARY
        assert parse_enum(ClientStatus, "Hospital", "status") is ClientStatus.HOSPITAL

    def test_passes_members_through(self):
        assert parse_enum(AssignmentType, AssignmentType.CARE_MANAGER, "type") is AssignmentType.CARE_MANAGER

    def test_rejects_unknown_value(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_enum(RestrictionSeverity, "catastrophic", "severity")
        assert exc_info.value.field == "severity"
        assert "hard_block" in exc_info.value.message

    def test_status_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            parse_enum(ClientStatus, "active", "status")


class TestSignalFor:
    """Reducing a pair's rows to one signal."""

    def test_nothing_recorded(self):
        assert signal_for([], [], NOW) == NoSignal()

    def test_best_preference_level_wins(self):
        backup = make_preference(PreferenceLevel.BACKUP)
        primary = make_preference(PreferenceLevel.PRIMARY)
        signal = signal_for([backup, primary], [], NOW)
        assert isinstance(signal, PreferenceSignal)
        assert signal.level is PreferenceLevel.PRIMARY
        assert signal.preference_id == primary.id

    def test_inactive_preference_is_ignored(self):
        signal = signal_for([make_preference(PreferenceLevel.PRIMARY, is_active=False)], [], NOW)
        assert signal == NoSignal()

    def test_restriction_beats_preference(self):
        signal = signal_for(
            [make_preference(PreferenceLevel.PRIMARY)],
            [make_restriction(RestrictionSeverity.WARNING)],
            NOW,
        )
        assert isinstance(signal, RestrictionSignal)
        assert signal.severity is RestrictionSeverity.WARNING

    def test_hard_block_dominates_newer_warning(self):
        hard = make_restriction(RestrictionSeverity.HARD_BLOCK, reason="Safeguarding", created_at=NOW - timedelta(days=5))
        warning = make_restriction(RestrictionSeverity.WARNING, reason="Late twice", created_at=NOW - timedelta(hours=1))
        signal = signal_for([], [warning, hard], NOW)
        assert signal.severity is RestrictionSeverity.HARD_BLOCK
        assert signal.reason == "Safeguarding"

    def test_newest_reason_among_equal_severity(self):
        old = make_restriction(RestrictionSeverity.SOFT_BLOCK, reason="Old", created_at=NOW - timedelta(days=3))
        new = make_restriction(RestrictionSeverity.SOFT_BLOCK, reason="New", created_at=NOW - timedelta(days=1))
        assert signal_for([], [old, new], NOW).reason == "New"

    def test_expired_and_future_restrictions_do_not_count(self):
        expired = make_restriction(
            RestrictionSeverity.HARD_BLOCK,
            effective_from=NOW - timedelta(days=10),
            effective_to=NOW - timedelta(days=1),
        )
        future = make_restriction(RestrictionSeverity.HARD_BLOCK, effective_from=NOW + timedelta(days=1))
        assert signal_for([], [expired, future], NOW) == NoSignal()

    def test_restriction_counts_through_its_last_instant(self):
        ending = make_restriction(RestrictionSeverity.HARD_BLOCK, effective_to=NOW)
        assert signal_for([], [ending], NOW).severity is RestrictionSeverity.HARD_BLOCK
        assert signal_for([], [ending], NOW + timedelta(seconds=1)) == NoSignal()

    def test_deactivated_restriction_does_not_count(self):
        inactive = make_restriction(RestrictionSeverity.HARD_BLOCK, is_active=False)
        assert signal_for([], [inactive], NOW) == NoSignal()


class TestVerdictFor:
    """Mapping signals to verdicts."""

    @pytest.mark.parametrize("severity,verdict", [
        (RestrictionSeverity.HARD_BLOCK, Verdict.BLOCKED),
        (RestrictionSeverity.SOFT_BLOCK, Verdict.REQUIRES_OVERRIDE),
        (RestrictionSeverity.WARNING, Verdict.ALLOWED_WITH_WARNING),
    ])
    def test_restriction_verdicts(self, severity, verdict):
        result = verdict_for(CLIENT, STAFF, RestrictionSignal(severity=severity, reason="Because"))
        assert result.verdict is verdict
        assert result.severity is severity
        assert result.reason == "Because"
        assert result.level is None

    def test_preferred_carries_level(self):
        result = verdict_for(CLIENT, STAFF, PreferenceSignal(level=PreferenceLevel.SECONDARY))
        assert result.verdict is Verdict.PREFERRED
        assert result.level is PreferenceLevel.SECONDARY
        assert result.severity is None

    def test_neutral(self):
        result = verdict_for(CLIENT, STAFF, NoSignal())
        assert result.verdict is Verdict.NEUTRAL
        assert not result.requires_override
        assert not result.is_blocked

    def test_soft_block_requires_override(self):
        result = verdict_for(CLIENT, STAFF, RestrictionSignal(severity=RestrictionSeverity.SOFT_BLOCK, reason="x"))
        assert result.requires_override

    def test_serializes_camel_case(self):
        result = verdict_for(CLIENT, STAFF, RestrictionSignal(severity=RestrictionSeverity.HARD_BLOCK, reason="x"))
        payload = result.model_dump(by_alias=True, mode="json", exclude_none=True)
        assert payload["clientId"] == str(CLIENT)
        assert payload["verdict"] == "BLOCKED"
        assert payload["severity"] == "hard_block"
        assert "level" not in payload


class TestRankResults:
    """Candidate ordering."""

    def _result(self, verdict, level=None):
        return EligibilityResult(client_id=CLIENT, staff_id=uuid4(), verdict=verdict, level=level)

    def test_orders_by_verdict_then_level(self):
        blocked = self._result(Verdict.BLOCKED)
        neutral = self._result(Verdict.NEUTRAL)
        backup = self._result(Verdict.PREFERRED, PreferenceLevel.BACKUP)
        primary = self._result(Verdict.PREFERRED, PreferenceLevel.PRIMARY)
        warned = self._result(Verdict.ALLOWED_WITH_WARNING)
        override = self._result(Verdict.REQUIRES_OVERRIDE)

        ranked = rank_results([blocked, neutral, backup, override, primary, warned])
        assert ranked == [primary, backup, neutral, warned, override, blocked]

    def test_ties_keep_input_order(self):
        first = self._result(Verdict.NEUTRAL)
        second = self._result(Verdict.NEUTRAL)
        assert rank_results([first, second]) == [first, second]
        assert rank_results([second, first]) == [second, first]
