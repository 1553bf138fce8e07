"""Pydantic schemas for API request/response."""

from typing import Literal

from pydantic import BaseModel, Field


class IdentifierResponse(BaseModel):
    code: str
    kind: Literal["single", "candidates"]
    identifiers: list[str]


class QuoteResponse(BaseModel):
    identifier: str
    short_code: str
    name: str
    price: float
    previous_close: float
    growth_rate_percent: float
    as_of: str


class HoldingDetailResponse(BaseModel):
    identifier: str
    name: str
    price: float
    change: float
    weight: float


class FundEstimateResponse(BaseModel):
    fund_code: str
    previous_nav: float
    estimated_nav: float
    growth_rate_percent: float
    source: Literal["holdings", "direct", "neutral"]
    known_weight: float
    holdings_detail: list[HoldingDetailResponse]


class WatchlistRefreshRequest(BaseModel):
    codes: list[str] = Field(min_length=1)
    # Code or qualified identifier -> shares held
    shares: dict[str, float] = Field(default_factory=dict)


class WatchlistEntryResponse(BaseModel):
    requested: str
    identifier: str
    quote: QuoteResponse
    estimate: FundEstimateResponse | None = None
    shares: float = 0.0
    daily_pnl: float = 0.0
    holding_value: float = 0.0


class WatchlistRefreshResponse(BaseModel):
    entries: list[WatchlistEntryResponse]
    total_daily_pnl: float
    total_holding_value: float
