# tests/test_risk_assessment.py
from attendance_core.schemas.policy import PolicyConstants
from attendance_core.schemas.risk import RiskBand, RiskWeights
from attendance_core.services.risk_assessment import (
    calculate_risk_score,
    categorize_risk,
    summarize_risk,
)


def test_risk_score_combines_absences_and_tardiness():
    # 3/18 absences => 16.67, 2 tardy => 10
    assert calculate_risk_score(18, 3, 2) == 27


def test_risk_score_is_zero_without_sessions():
    assert calculate_risk_score(0, 5, 5) == 0


def test_tardiness_contribution_is_capped():
    assert calculate_risk_score(18, 0, 10) == 30


def test_risk_score_is_clamped_to_100():
    assert calculate_risk_score(10, 20, 6) == 100


def test_custom_weights():
    weights = RiskWeights(absence_weight=0.5, tardy_weight=2, max_tardy_contribution=10)
    assert calculate_risk_score(10, 5, 3, weights) == 31


def test_categorize_risk_bands():
    assert categorize_risk(0) == RiskBand.LOW
    assert categorize_risk(39) == RiskBand.LOW
    assert categorize_risk(40) == RiskBand.MEDIUM
    assert categorize_risk(69) == RiskBand.MEDIUM
    assert categorize_risk(70) == RiskBand.HIGH


def test_summarize_risk_explanation():
    summary = summarize_risk(18, 3, 4)

    assert summary.score == 37
    assert summary.band == RiskBand.LOW
    assert summary.explanation == (
        "3 absences (17%) across 18 sessions | 4 tardy instances (~1 absence equiv.) | Risk: LOW (37/100)"
    )


def test_summarize_risk_singular_wording():
    summary = summarize_risk(1, 1, 1)

    assert summary.explanation.startswith("1 absence (100%) across 1 session | 1 tardy")
    assert summary.band == RiskBand.HIGH


def test_absence_equivalence_follows_policy_constants():
    summary = summarize_risk(18, 0, 4, constants=PolicyConstants(tardiness_to_absence_ratio=2))

    assert "4 tardy instances (~2 absence equiv.)" in summary.explanation
