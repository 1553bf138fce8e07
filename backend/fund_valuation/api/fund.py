"""Fund estimate and watch-list API routes."""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from fund_valuation.api.deps import (
    get_direct_client,
    get_estimator,
    get_quote_client,
    get_watchlist_service,
)
from fund_valuation.api.schemas import (
    FundEstimateResponse,
    QuoteResponse,
    WatchlistEntryResponse,
    WatchlistRefreshRequest,
    WatchlistRefreshResponse,
)
from fund_valuation.models.fund import Estimate
from fund_valuation.models.market import OPEN_FUND
from fund_valuation.services.direct_estimate import DirectEstimateClient
from fund_valuation.services.estimator import FundEstimator
from fund_valuation.services.identifiers import strip_namespace
from fund_valuation.services.quotes import QuoteClient, QuoteFetchError
from fund_valuation.services.watchlist import WatchlistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["fund"])


def _estimate_response(fund_code: str, previous_nav: float, est: Estimate) -> FundEstimateResponse:
    return FundEstimateResponse(
        fund_code=fund_code,
        previous_nav=previous_nav,
        estimated_nav=round(est.estimated_nav, 4),
        growth_rate_percent=round(est.growth_rate_percent, 4),
        source=est.source,
        known_weight=round(est.known_weight, 4),
        holdings_detail=[asdict(d) for d in est.holdings_detail],
    )


async def _resolve_previous_nav(
    bare: str, quote_client: QuoteClient, direct_client: DirectEstimateClient
) -> tuple[float | None, Estimate | None]:
    """Last official NAV: fund quote first, then the direct-estimate payload.

    When the payload had to be fetched, its estimate is returned alongside so
    the estimator does not request it again.
    """
    try:
        quote = await quote_client.fetch_quote(f"{OPEN_FUND}{bare}")
    except QuoteFetchError as e:
        logger.warning(f"NAV quote unavailable for {bare}: {e}")
        quote = None
    if quote is not None and quote.price > 0:
        return quote.price, None

    payload = await direct_client.fetch_payload(bare)
    if payload is not None and payload.last_nav:
        return payload.last_nav, payload.to_estimate()
    return None, None


@router.get("/fund/{fund_code}/estimate", response_model=FundEstimateResponse)
async def get_estimate(
    fund_code: str,
    previous_nav: float | None = Query(None, gt=0),
    estimator: FundEstimator = Depends(get_estimator),
    quote_client: QuoteClient = Depends(get_quote_client),
    direct_client: DirectEstimateClient = Depends(get_direct_client),
):
    bare = strip_namespace(fund_code)
    direct = None
    if previous_nav is None:
        previous_nav, direct = await _resolve_previous_nav(bare, quote_client, direct_client)
        if previous_nav is None:
            raise HTTPException(status_code=404, detail="Fund NAV not available")

    est = await estimator.estimate(bare, previous_nav, direct=direct)
    return _estimate_response(bare, previous_nav, est)


@router.post("/watchlist/refresh", response_model=WatchlistRefreshResponse)
async def refresh_watchlist(
    body: WatchlistRefreshRequest,
    watchlist: WatchlistService = Depends(get_watchlist_service),
):
    try:
        snapshot = await watchlist.refresh(body.codes, shares=body.shares)
    except QuoteFetchError:
        raise HTTPException(status_code=503, detail="Quote data source unavailable")

    entries = [
        WatchlistEntryResponse(
            requested=e.requested,
            identifier=e.identifier,
            quote=QuoteResponse(**asdict(e.quote)),
            estimate=(
                _estimate_response(e.quote.short_code, e.quote.price, e.estimate)
                if e.estimate
                else None
            ),
            shares=e.shares,
            daily_pnl=round(e.daily_pnl, 2),
            holding_value=round(e.holding_value, 2),
        )
        for e in snapshot.entries
    ]
    return WatchlistRefreshResponse(
        entries=entries,
        total_daily_pnl=round(snapshot.total_daily_pnl, 2),
        total_holding_value=round(snapshot.total_holding_value, 2),
    )
