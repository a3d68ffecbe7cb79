"""
Tests for the readiness composite and its sub-scores.

Run with: python -m pytest tests/test_readiness.py -v
"""

import math
from datetime import date, timedelta

import pytest

from core.calibration import DEFAULT_CALIBRATION
from core.load_state import AthleteHistory
from core.readiness import (
    assess_evidence,
    clamp_score,
    compose_readiness,
    compute_attainment,
    compute_durability,
    compute_readiness_confidence,
    compute_readiness_raw,
    finalize_score,
)


AS_OF = date(2026, 1, 5)


class TestComposite:
    """Tests for the weighted blend and the headline score."""

    def test_weights_sum_to_one(self):
        """0.45 + 0.30 + 0.15 + 0.10."""
        cal = DEFAULT_CALIBRATION
        assert cal.weight_attainment + cal.weight_envelope + cal.weight_durability + cal.weight_evidence == \
            pytest.approx(1.0)

    def test_weighted_blend(self):
        """Raw readiness is the weighted sum of sub-scores."""
        assert compute_readiness_raw(80.0, 60.0, 40.0, 20.0) == pytest.approx(62.0)
        assert compute_readiness_raw(100.0, 100.0, 100.0, 100.0) == pytest.approx(100.0)

    def test_clamp_and_nan(self):
        """Sub-scores are clamped and NaN maps to 0."""
        assert clamp_score(math.nan) == 0.0
        assert clamp_score(-3.0) == 0.0
        assert clamp_score(140.0) == 100.0

    def test_finalize_rounds_half_up(self):
        """Headline is an integer in [0, 100]."""
        assert finalize_score(62.5) == 63
        assert finalize_score(62.49) == 62
        assert finalize_score(120.0) == 100
        assert finalize_score(-4.0) == 0

    def test_headline_from_blend(self):
        """Without an adjusted value the blend is the headline."""
        composite = compose_readiness(80.0, 60.0, 40.0, 20.0, 0.5)
        assert composite.readiness_score == 62
        assert composite.readiness_confidence == 0.5

    def test_headline_from_adjusted(self):
        """The adjusted value becomes the only headline."""
        composite = compose_readiness(80.0, 60.0, 40.0, 20.0, 0.5, adjusted_readiness=31.4)
        assert composite.readiness_score == 31
        assert composite.target_attainment_score == 80.0

    def test_nan_sub_score_never_propagates(self):
        """A NaN sub-score scores as 0."""
        composite = compose_readiness(math.nan, 100.0, 100.0, 100.0, 0.5)
        assert composite.target_attainment_score == 0.0
        assert composite.readiness_score == 55


class TestAttainment:
    """Tests for target attainment."""

    def test_fully_prepared(self):
        """Demand met at the optimal TSB scores 100."""
        assert compute_attainment(70.0, 65.0, 70.0, 3.5) == pytest.approx(100.0)

    def test_half_fitness(self):
        """Half the demand with a slightly flat form."""
        assert compute_attainment(35.0, 35.0, 70.0, 3.5) == pytest.approx(59.5)

    def test_zero_ctl(self):
        """Zero fitness still scores form and freshness without NaN."""
        assert compute_attainment(0.0, 0.0, 70.0, 3.5) == pytest.approx(22.0)
        assert compute_attainment(0.0, 10.0, 70.0, 3.5) == pytest.approx(6.0)

    def test_fatigue_lowers_attainment(self):
        """ATL well above CTL costs form and freshness."""
        fresh = compute_attainment(60.0, 55.0, 70.0, 3.5)
        tired = compute_attainment(60.0, 90.0, 70.0, 3.5)
        assert tired < fresh

    def test_bounded(self):
        """Attainment stays in [0, 100] for extreme states."""
        for ctl, atl in [(0.0, 500.0), (500.0, 0.0), (1e-9, 1e-9)]:
            assert 0.0 <= compute_attainment(ctl, atl, 70.0, 3.5) <= 100.0


class TestDurability:
    """Tests for monotony, strain and deload debt."""

    def test_varied_week_is_durable(self):
        """A normal varied week has no penalty."""
        result = compute_durability([60.0, 80.0, 0.0, 70.0, 0.0, 120.0, 40.0], 55.0)
        assert result.score == 100.0
        assert result.rationale_codes == ()

    def test_flat_week_is_most_monotonous(self):
        """Identical days take the full monotony penalty."""
        flat = compute_durability([60.0] * 7, 60.0)
        nearly_flat = compute_durability([60.0, 65.0, 55.0, 60.0, 62.0, 58.0, 60.0], 60.0)
        assert flat.monotony == 4.0
        assert 'high_monotony' in flat.rationale_codes
        assert flat.score <= nearly_flat.score
        assert flat.score < 100.0

    def test_high_monotony(self):
        """Near-identical days are penalized."""
        result = compute_durability([50.0, 52.0, 50.0, 52.0, 50.0, 52.0, 50.0], 50.0)
        assert result.monotony > 2.0
        assert 'high_monotony' in result.rationale_codes
        assert result.score <= 60.0

    def test_short_trailing_window(self):
        """Fewer than three days skips monotony and strain."""
        result = compute_durability([50.0, 52.0], 50.0)
        assert result.monotony == 0.0
        assert result.score == 100.0

    def test_deload_debt(self):
        """Missed deloads cost 10 points per week, up to 30."""
        assert compute_durability([], 50.0, deload_debt_weeks=2).score == 80.0
        capped = compute_durability([], 50.0, deload_debt_weeks=6)
        assert capped.score == 70.0
        assert capped.rationale_codes == ('deload_debt',)


class TestEvidence:
    """Tests for evidence tiers and confidence."""

    def test_none(self):
        """No history scores at the none floor."""
        result = assess_evidence(None, AS_OF)
        assert result.state == 'none'
        assert result.score == pytest.approx(35.0)

    def test_empty_recorded_days(self):
        """History with nothing recorded is none."""
        history = AthleteHistory(end_date=AS_OF - timedelta(days=1), daily_tss=(None, 0.0, None))
        assert assess_evidence(history, AS_OF).state == 'none'

    def test_rich(self):
        """Six fully recorded weeks are rich."""
        history = AthleteHistory(end_date=AS_OF - timedelta(days=1), daily_tss=(50.0,) * 42)
        result = assess_evidence(history, AS_OF)
        assert result.state == 'rich'
        assert result.coverage == 1.0
        assert result.score == pytest.approx(86.0)

    def test_sparse(self):
        """Short recent history is sparse."""
        history = AthleteHistory(end_date=AS_OF - timedelta(days=1), daily_tss=(50.0,) * 10)
        result = assess_evidence(history, AS_OF)
        assert result.state == 'sparse'
        assert result.score == pytest.approx(61.5)

    def test_stale(self):
        """Last activity more than two weeks back is stale."""
        history = AthleteHistory(end_date=AS_OF - timedelta(days=20), daily_tss=(50.0,) * 42)
        result = assess_evidence(history, AS_OF)
        assert result.state == 'stale'
        assert result.score < assess_evidence(
            AthleteHistory(end_date=AS_OF - timedelta(days=1), daily_tss=(50.0,) * 42), AS_OF).score

    def test_confidence_decays_with_horizon(self):
        """Confidence falls with days ahead, floored at half."""
        assert compute_readiness_confidence(80.0, 0) == pytest.approx(0.8)
        assert compute_readiness_confidence(80.0, 73) == pytest.approx(0.64)
        assert compute_readiness_confidence(80.0, 730) == pytest.approx(0.4)

    def test_confidence_past_days(self):
        """Days before the projection date do not decay."""
        assert compute_readiness_confidence(80.0, -10) == pytest.approx(0.8)
