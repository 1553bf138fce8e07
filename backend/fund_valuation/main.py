"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fund_valuation.api.fund import router as fund_router
from fund_valuation.api.market import router as market_router
from fund_valuation.config import LOG_LEVEL
from fund_valuation.services.direct_estimate import DirectEstimateClient
from fund_valuation.services.estimator import FundEstimator
from fund_valuation.services.holdings import HoldingsResolver
from fund_valuation.services.http import create_http_client
from fund_valuation.services.quotes import QuoteClient
from fund_valuation.services.watchlist import WatchlistService
from fund_valuation.tasks.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def init_services(app: FastAPI, client: httpx.AsyncClient) -> None:
    """Wire the services once per process around one shared HTTP client."""
    holdings = HoldingsResolver(client)
    quotes = QuoteClient(client)
    direct = DirectEstimateClient(client)
    estimator = FundEstimator(holdings, quotes, direct)

    app.state.http_client = client
    app.state.holdings_resolver = holdings
    app.state.quote_client = quotes
    app.state.direct_client = direct
    app.state.estimator = estimator
    app.state.watchlist = WatchlistService(quotes, estimator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with create_http_client() as client:
        init_services(app, client)
        scheduler = start_scheduler(app.state.holdings_resolver)
        try:
            yield
        finally:
            stop_scheduler(scheduler)


app = FastAPI(title="Fund Valuation", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(fund_router)
app.include_router(market_router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
