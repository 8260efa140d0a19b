# models.py
# Purpose: Typed result models for rating parsing, peer volatility statistics and per-bond signal metrics

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Dict, Optional


@dataclass(frozen=True)
class RatingResult:
    raw: str
    tier: Optional[str]

    @property
    def recognized(self) -> bool:
        return self.tier is not None


@dataclass(frozen=True)
class PeerVolStats:
    """Mean and population standard deviation of vol spread over the eligible peers of one batch."""
    mean_spread: Optional[float]
    std_dev_spread: Optional[float]
    eligible_count: int


@dataclass(frozen=True)
class EnhancedMetrics:
    vol_spread: Optional[float]
    relative_situation: str
    downside_risk: Optional[float]
    spread_to_average: Optional[float]
    z_score: Optional[float]
    observation: str
    standardized_rating: str
    credit_risk: str
    residual_maturity: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)
