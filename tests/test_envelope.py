"""
Tests for the capacity envelope.

Run with: python -m pytest tests/test_envelope.py -v
"""

from datetime import date

import numpy as np
import pytest

from core.envelope import (
    CapacityEnvelope,
    assess_week,
    classify_envelope_state,
    compute_envelope_score,
    derive_capacity_envelope,
)


WEEK_START = date(2026, 1, 5)


@pytest.fixture
def envelope():
    """Envelope at CTL 50 with no history."""
    return derive_capacity_envelope(0, WEEK_START, 50.0)


class TestDeriveEnvelope:
    """Tests for envelope derivation."""

    def test_band_from_ctl(self, envelope):
        """Center is CTL × 7; band is 0.75-1.25 of it."""
        assert envelope.safe_high == pytest.approx(437.5)
        assert envelope.safe_low == pytest.approx(262.5)
        assert envelope.midpoint == pytest.approx(350.0)
        assert envelope.ramp_limit_pct == pytest.approx(10.0)

    def test_minimum_safe_high(self):
        """A detrained athlete still gets a usable band."""
        env = derive_capacity_envelope(0, WEEK_START, 0.0)
        assert env.safe_high == 150.0
        assert env.safe_low == 0.0

    def test_history_raises_center(self):
        """Recent realized weeks above CTL × 7 lift the band."""
        env = derive_capacity_envelope(0, WEEK_START, 50.0, history_weekly=[100.0, 400.0, 420.0, 500.0, 280.0])
        assert env.safe_high == pytest.approx(400.0 * 1.25)

    def test_history_never_lowers_center(self):
        """Light history does not shrink the CTL-derived band."""
        env = derive_capacity_envelope(0, WEEK_START, 50.0, history_weekly=[100.0, 120.0])
        assert env.safe_high == pytest.approx(437.5)

    def test_structural_factor_scales_low(self):
        """Planned light weeks lower only safe_low."""
        env = derive_capacity_envelope(0, WEEK_START, 50.0, structural_factor=0.5)
        assert env.safe_low == pytest.approx(131.25)
        assert env.safe_high == pytest.approx(437.5)

    def test_ramp_limit_grows_with_coverage(self):
        """Better evidence allows a larger ramp, up to +5 points."""
        half = derive_capacity_envelope(0, WEEK_START, 50.0, evidence_coverage=0.5)
        over = derive_capacity_envelope(0, WEEK_START, 50.0, evidence_coverage=3.0)
        assert half.ramp_limit_pct == pytest.approx(12.5)
        assert over.ramp_limit_pct == pytest.approx(15.0)

    def test_negative_ctl_raises(self):
        """Negative CTL is a contract violation."""
        with pytest.raises(ValueError):
            derive_capacity_envelope(0, WEEK_START, -1.0)

    def test_low_above_high_raises(self):
        """safe_low may never exceed safe_high."""
        with pytest.raises(ValueError, match="exceeds safe_high"):
            CapacityEnvelope(0, WEEK_START, 200.0, 100.0, 10.0)


class TestAssessWeek:
    """Tests for week penalties and envelope states."""

    def test_inside(self, envelope):
        """A week within the band has no penalty."""
        result = assess_week(350.0, envelope, ramp_pct=5.0)
        assert result.penalty == 0.0
        assert result.state == 'inside'
        assert result.limiting_factors == ()

    def test_over_high(self, envelope):
        """Going over safe_high is penalized relative to safe_high."""
        result = assess_week(500.0, envelope)
        assert result.penalty == pytest.approx(62.5 / 437.5)
        assert result.state == 'edge'
        assert result.limiting_factors == ('over_safe_high',)

    def test_far_over_high_is_outside(self, envelope):
        """Large excess is outside the envelope."""
        assert assess_week(600.0, envelope).state == 'outside'

    def test_under_low(self, envelope):
        """Under-loading counts at half weight."""
        result = assess_week(200.0, envelope)
        assert result.penalty == pytest.approx(0.5 * 62.5 / 262.5)
        assert result.limiting_factors == ('under_safe_low',)

    def test_over_ramp(self, envelope):
        """Ramp beyond the limit adds its own penalty."""
        result = assess_week(350.0, envelope, ramp_pct=20.0)
        assert result.penalty == pytest.approx(0.75)
        assert result.limiting_factors == ('over_ramp_limit',)
        assert result.state == 'outside'

    def test_state_thresholds(self):
        """inside <= 0.005 < edge <= 0.15 < outside."""
        assert classify_envelope_state(0.0) == 'inside'
        assert classify_envelope_state(0.005) == 'inside'
        assert classify_envelope_state(0.1) == 'edge'
        assert classify_envelope_state(0.15) == 'edge'
        assert classify_envelope_state(0.2) == 'outside'


class TestEnvelopeScore:
    """Tests for the envelope sub-score."""

    def test_strictly_decreases_above_safe_high(self, envelope):
        """Moving a week further above safe_high always lowers the score."""
        loads = np.arange(440.0, 861.0, 20.0)
        scores = [compute_envelope_score([assess_week(p, envelope).penalty]) for p in loads]
        assert all(a > b for a, b in zip(scores, scores[1:]))

    def test_score_clamped(self):
        """Score stays within [0, 100]."""
        assert compute_envelope_score([2.0]) == 0.0
        assert compute_envelope_score([0.0, 0.0]) == 100.0
        assert compute_envelope_score([]) == 100.0

    def test_mean_of_window(self):
        """Score averages the penalties it is given."""
        assert compute_envelope_score([0.1, 0.3]) == pytest.approx(80.0)
