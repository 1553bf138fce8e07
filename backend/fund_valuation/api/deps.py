"""FastAPI dependencies handing out the process-wide services."""

from fastapi import Request

from fund_valuation.services.direct_estimate import DirectEstimateClient
from fund_valuation.services.estimator import FundEstimator
from fund_valuation.services.quotes import QuoteClient
from fund_valuation.services.watchlist import WatchlistService


def get_quote_client(request: Request) -> QuoteClient:
    return request.app.state.quote_client


def get_direct_client(request: Request) -> DirectEstimateClient:
    return request.app.state.direct_client


def get_estimator(request: Request) -> FundEstimator:
    return request.app.state.estimator


def get_watchlist_service(request: Request) -> WatchlistService:
    return request.app.state.watchlist
