# attendance_core/services/risk_assessment.py
from __future__ import annotations

import math

from attendance_core.schemas.policy import PolicyConstants
from attendance_core.schemas.risk import RiskBand, RiskSummary, RiskWeights
from attendance_core.services.time_utils import round_half_up

DEFAULT_WEIGHTS = RiskWeights()


def _clamp_score(value: float) -> int:
    if math.isnan(value):
        return 0
    return int(max(0, min(100, round_half_up(value))))


def calculate_risk_score(
    total_sessions: int,
    absent_count: int,
    tardiness_count: int,
    weights: RiskWeights = DEFAULT_WEIGHTS,
) -> int:
    """
    Weighted 0-100 attendance risk score.

    score = min(1, absent / sessions) x 100 x absence_weight
            + min(tardy x tardy_weight, max_tardy_contribution)

    Returns 0 when there are no sessions.
    """
    total_sessions = max(total_sessions or 0, 0)
    if total_sessions == 0:
        return 0

    absent = max(absent_count or 0, 0)
    tardy = max(tardiness_count or 0, 0)

    absence_component = min(1.0, absent / total_sessions) * 100 * weights.absence_weight
    tardy_component = min(tardy * weights.tardy_weight, weights.max_tardy_contribution)
    return _clamp_score(absence_component + tardy_component)


def categorize_risk(score: int, weights: RiskWeights = DEFAULT_WEIGHTS) -> RiskBand:
    if score >= weights.high_threshold:
        return RiskBand.HIGH
    if score >= weights.medium_threshold:
        return RiskBand.MEDIUM
    return RiskBand.LOW


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def build_risk_explanation(
    total_sessions: int,
    absent_count: int,
    tardiness_count: int,
    score: int,
    band: RiskBand,
    *,
    tardiness_to_absence_ratio: int | None = None,
) -> str:
    percent = int(round_half_up(absent_count / total_sessions * 100)) if total_sessions > 0 else 0
    fragments = [
        f"{absent_count} {_plural(absent_count, 'absence', 'absences')} ({percent}%) "
        f"across {total_sessions} {_plural(total_sessions, 'session', 'sessions')}"
    ]

    if tardiness_count > 0:
        ratio = tardiness_to_absence_ratio or PolicyConstants().tardiness_to_absence_ratio
        equivalent = tardiness_count // ratio
        fragment = f"{tardiness_count} {_plural(tardiness_count, 'tardy', 'tardy instances')}"
        if equivalent > 0:
            fragment += f" (~{equivalent} absence equiv.)"
        fragments.append(fragment)

    fragments.append(f"Risk: {band.value.upper()} ({score}/100)")
    return " | ".join(fragments)


def summarize_risk(
    total_sessions: int,
    absent_count: int,
    tardiness_count: int,
    weights: RiskWeights = DEFAULT_WEIGHTS,
    *,
    constants: PolicyConstants | None = None,
) -> RiskSummary:
    score = calculate_risk_score(total_sessions, absent_count, tardiness_count, weights)
    band = categorize_risk(score, weights)
    return RiskSummary(
        score=score,
        band=band,
        explanation=build_risk_explanation(
            total_sessions,
            max(absent_count or 0, 0),
            max(tardiness_count or 0, 0),
            score,
            band,
            tardiness_to_absence_ratio=(constants or PolicyConstants()).tardiness_to_absence_ratio,
        ),
    )
