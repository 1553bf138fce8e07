"""Fund holdings and estimate models."""

from dataclasses import dataclass
from typing import Literal

EstimateSource = Literal["holdings", "direct", "neutral"]


@dataclass(frozen=True)
class Holding:
    identifier: str
    weight_fraction: float


@dataclass(frozen=True)
class HoldingDetail:
    identifier: str
    name: str
    price: float
    change: float  # percent
    weight: float  # fraction


@dataclass(frozen=True)
class Estimate:
    estimated_nav: float
    growth_rate_percent: float
    holdings_detail: tuple[HoldingDetail, ...] = ()
    source: EstimateSource = "holdings"
    known_weight: float = 0.0

    @classmethod
    def neutral(cls, previous_nav: float) -> "Estimate":
        """Last NAV carried forward with zero growth."""
        return cls(estimated_nav=previous_nav, growth_rate_percent=0.0, source="neutral")


@dataclass(frozen=True)
class DirectPayload:
    """Parsed payload of the pre-computed estimate source."""

    fund_code: str
    name: str
    estimated_nav: float
    growth_rate_percent: float
    last_nav: float | None = None
    nav_date: str | None = None
    estimate_time: str | None = None

    def to_estimate(self) -> Estimate:
        return Estimate(
            estimated_nav=self.estimated_nav,
            growth_rate_percent=self.growth_rate_percent,
            source="direct",
        )
