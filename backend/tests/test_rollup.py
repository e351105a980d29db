"""
Tests for rollup.py

ROI calibration and capping, weighted payback, EBITDA share and section
confidence labels.
"""
import pytest

from intel_brief.schemas.brief import Competitor, DraftBrief, UseCase
from intel_brief.services.extractor import normalize_draft
from intel_brief.services.rollup import (
    ROI_CAP,
    calibrate_roi,
    clamp_roi,
    compute_rollup,
    confidence_label,
    section_confidence,
)
from tests.fixtures.brief_fixtures import draft_payload, use_case


def _use_cases(*overrides):
    return [UseCase.model_validate(use_case(i + 1, **o)) for i, o in enumerate(overrides)]


def _zero(**extra):
    base = dict(est_annual_benefit=0, est_one_time_cost=0, est_ongoing_cost=0, payback_months=0)
    base.update(extra)
    return base


class TestRoi:
    """Tests for clamp_roi and calibrate_roi."""

    @pytest.mark.parametrize("value", [-50.0, 0.0, 120.0, 212.0, 250.0, 251.0, 1e9])
    def test_clamp_is_idempotent(self, value):
        """Clamping twice equals clamping once."""
        assert clamp_roi(clamp_roi(value)) == clamp_roi(value)
        assert clamp_roi(value) <= ROI_CAP

    def test_calibration_below_soft_start(self):
        """Values up to 200 pass through."""
        assert calibrate_roi(150.0) == 150.0
        assert calibrate_roi(200.0) == 200.0

    def test_calibration_compresses_soft_band(self):
        """Values in (200, 250] are compressed toward 200."""
        assert calibrate_roi(240.0) == pytest.approx(212.0)
        assert calibrate_roi(250.0) == pytest.approx(215.0)

    def test_calibration_caps_above_250(self):
        """Anything above 250 is reported as 250."""
        assert calibrate_roi(251.0) == ROI_CAP
        assert calibrate_roi(9_999_900.0) == ROI_CAP


class TestComputeRollup:
    """Tests for compute_rollup."""

    def test_extreme_roi_is_capped(self):
        """A benefit of 100000 on an investment of 1 reports ROI 250."""
        ucs = _use_cases(
            _zero(est_annual_benefit=100000, est_one_time_cost=1, payback_months=100000),
            _zero(),
            _zero(),
            _zero(),
            _zero(),
        )
        rollup = compute_rollup(ucs)
        assert rollup.total_investment == 1
        assert rollup.overall_roi_pct == 250
        assert rollup.weighted_payback_months == 100000

    def test_totals_and_plain_roi(self):
        """Benefit 300, investment 200 is a 50% ROI."""
        ucs = _use_cases(
            _zero(est_annual_benefit=100, est_one_time_cost=50, est_ongoing_cost=50),
            _zero(est_annual_benefit=200, est_one_time_cost=100),
        )
        rollup = compute_rollup(ucs)
        assert rollup.total_benefit == 300
        assert rollup.total_investment == 200
        assert rollup.overall_roi_pct == pytest.approx(50.0)

    def test_zero_investment(self):
        """No investment means ROI 0, not a division error."""
        rollup = compute_rollup(_use_cases(_zero(est_annual_benefit=1000)))
        assert rollup.overall_roi_pct == 0

    def test_weighted_payback(self):
        """Payback is benefit-weighted, ignoring cases without benefit or payback."""
        ucs = _use_cases(
            _zero(est_annual_benefit=100, payback_months=6),
            _zero(est_annual_benefit=300, payback_months=12),
            _zero(est_annual_benefit=0, payback_months=99),
            _zero(est_annual_benefit=500, payback_months=0),
        )
        assert compute_rollup(ucs).weighted_payback_months == pytest.approx(10.5)

    def test_no_payback_data(self):
        """All-zero use cases give payback 0."""
        assert compute_rollup(_use_cases(_zero(), _zero())).weighted_payback_months == 0

    def test_ebitda_estimate(self):
        """EBITDA is a quarter of total benefit, rounded."""
        ucs = _use_cases(_zero(est_annual_benefit=1001))
        assert compute_rollup(ucs).ebitda_estimate == 250


class TestConfidence:
    """Tests for confidence_label and section_confidence."""

    def test_labels_by_distinct_hosts(self):
        """5+ hosts High, 2+ Medium, fewer Low."""
        assert confidence_label([f"https://h{i}.example/x" for i in range(5)]) == "High"
        assert confidence_label(["https://a.example/1", "https://b.example/2"]) == "Medium"
        assert confidence_label(["https://a.example/1", "https://www.a.example/2"]) == "Low"
        assert confidence_label([]) == "Low"

    def test_sections_use_their_own_citations(self):
        """Each section is labelled from its own citations."""
        draft = DraftBrief.model_validate(normalize_draft(draft_payload()))
        competitor = Competitor(
            name="Alphacoat",
            website="https://alphacoat.ch",
            positioning="PVD coating services",
            ai_maturity="Some digital transformation initiatives",
            innovation_focus="Process efficiency",
            employee_band="80 employees",
            geo_fit="Same city (Winterthur)",
            evidence_pages=["https://alphacoat.ch/", "https://alphacoat.ch/about"],
            citations=["https://www.moneyhouse.ch/alphacoat"],
        )
        global_citations = [f"https://h{i}.example/" for i in range(6)]
        conf = section_confidence(draft, [competitor], global_citations)
        assert conf.company == "High"
        assert conf.industry == "Medium"
        assert conf.strategic_moves == "Low"
        assert conf.competitors == "Medium"
        assert conf.use_cases == "Low"
