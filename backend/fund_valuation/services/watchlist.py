"""Batch refresh for a list of watched codes."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from fund_valuation.models.fund import Estimate
from fund_valuation.models.market import OPEN_FUND, Quote
from fund_valuation.services.estimator import FundEstimator
from fund_valuation.services.identifiers import namespace_of, normalize
from fund_valuation.services.quotes import QuoteClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchlistEntry:
    requested: str
    identifier: str
    quote: Quote
    estimate: Estimate | None = None
    shares: float = 0.0
    daily_pnl: float = 0.0
    holding_value: float = 0.0

    @property
    def current_price(self) -> float:
        """Estimated NAV for funds, last trade price otherwise."""
        if self.estimate is not None and self.estimate.estimated_nav:
            return self.estimate.estimated_nav
        return self.quote.price


@dataclass(frozen=True)
class WatchlistSnapshot:
    entries: list[WatchlistEntry]
    total_daily_pnl: float = 0.0
    total_holding_value: float = 0.0


def value_position(entry: WatchlistEntry, shares: float) -> WatchlistEntry:
    """Attach shares, today's P&L and market value to an entry.

    Positions with no shares are left at zero.
    """
    if shares <= 0:
        return entry
    price = entry.current_price
    daily_pnl = 0.0
    if entry.quote.previous_close > 0:
        daily_pnl = (price - entry.quote.previous_close) * shares
    return WatchlistEntry(
        requested=entry.requested,
        identifier=entry.identifier,
        quote=entry.quote,
        estimate=entry.estimate,
        shares=shares,
        daily_pnl=daily_pnl,
        holding_value=price * shares,
    )


class WatchlistService:
    """Quotes every watched code in one batch, estimates the open-ended funds
    and values the positions held in them."""

    def __init__(self, quotes: QuoteClient, estimator: FundEstimator):
        self._quotes = quotes
        self._estimator = estimator

    async def refresh(
        self, codes: Iterable[str], shares: Mapping[str, float] | None = None
    ) -> WatchlistSnapshot:
        """Raises QuoteFetchError when the batch quote request fails.

        ``shares`` is keyed by qualified identifier, or by the requested code
        when that code resolved to a single instrument.
        """
        shares = shares or {}
        codes = [c.strip() for c in codes if c and c.strip()]
        quotes = await self._quotes.fetch_quotes(codes)

        # A bare code resolves to every candidate the upstream recognized,
        # e.g. 000001 -> sz000001 (stock) and/or jj000001 (fund).
        pairs = []
        for code in codes:
            for identifier in normalize(code).flatten():
                if identifier in quotes:
                    pairs.append((code, identifier))

        fund_ids = list(
            dict.fromkeys(i for _, i in pairs if namespace_of(i) == OPEN_FUND)
        )
        estimates = await asyncio.gather(
            *(self._estimator.estimate(i, quotes[i].price) for i in fund_ids)
        )
        by_fund = dict(zip(fund_ids, estimates))
        resolved_count = {}
        for code, _ in pairs:
            resolved_count[code] = resolved_count.get(code, 0) + 1

        entries = []
        for code, identifier in pairs:
            held = shares.get(identifier)
            if held is None and resolved_count[code] == 1:
                held = shares.get(code)
            entry = WatchlistEntry(
                requested=code,
                identifier=identifier,
                quote=quotes[identifier],
                estimate=by_fund.get(identifier),
            )
            entries.append(value_position(entry, held or 0.0))

        logger.info(f"Refreshed {len(entries)} watchlist entries, {len(fund_ids)} estimated")
        return WatchlistSnapshot(
            entries=entries,
            total_daily_pnl=sum(e.daily_pnl for e in entries),
            total_holding_value=sum(e.holding_value for e in entries),
        )
