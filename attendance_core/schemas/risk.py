# attendance_core/schemas/risk.py
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RiskWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    absence_weight: float = Field(1.0, ge=0)
    tardy_weight: float = Field(5.0, ge=0, description="Points added per tardiness instance.")
    max_tardy_contribution: float = Field(30.0, ge=0)
    medium_threshold: int = Field(40, ge=0, le=100)
    high_threshold: int = Field(70, ge=0, le=100)


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskSummary(BaseModel):
    score: int = Field(..., ge=0, le=100)
    band: RiskBand
    explanation: str
