"""Fund NAV estimation engine.

Calculates real-time fund NAV estimates based on holdings and stock quotes.

Algorithm:
    known_weight = Σ weight_i                        (holdings with a quote)
    est_growth   = Σ (weight_i * change_pct_i / 100) / known_weight
    est_nav      = previous_nav * (1 + est_growth)

Renormalizing by the known weight keeps unresolved holdings from dragging
the estimate toward zero. When too little weight is known, the upstream's
own estimate is preferred.
"""

import asyncio
import logging

from fund_valuation.config import MIN_KNOWN_WEIGHT
from fund_valuation.models.fund import Estimate, Holding, HoldingDetail
from fund_valuation.models.market import Quote
from fund_valuation.services.direct_estimate import DirectEstimateClient
from fund_valuation.services.holdings import HoldingsResolver
from fund_valuation.services.quotes import QuoteClient, QuoteFetchError

logger = logging.getLogger(__name__)


def calculate_estimate(
    holdings: list[Holding],
    quotes: dict[str, Quote],
    previous_nav: float,
    direct: Estimate | None = None,
    min_known_weight: float = MIN_KNOWN_WEIGHT,
) -> Estimate:
    """Combine holding weights with quote changes.

    Args:
        holdings: Fund holdings with weight fractions.
        quotes: Qualified identifier -> Quote.
        previous_nav: The fund's last published NAV.
        direct: Upstream estimate used when holdings are not usable.

    Returns:
        Holdings-based Estimate, or the direct/neutral fallback.
    """
    fallback = direct or Estimate.neutral(previous_nav)

    total_weighted_change = 0.0
    total_known_weight = 0.0
    details = []

    for holding in holdings:
        quote = quotes.get(holding.identifier)
        if quote is None or not quote.name or quote.price <= 0:
            continue

        change = quote.growth_rate_percent
        total_weighted_change += change / 100 * holding.weight_fraction
        total_known_weight += holding.weight_fraction

        details.append(
            HoldingDetail(
                identifier=holding.identifier,
                name=quote.name,
                price=quote.price,
                change=change,
                weight=holding.weight_fraction,
            )
        )

    if not details:
        return fallback

    known_weight = total_known_weight
    if total_known_weight < min_known_weight:
        if direct is not None:
            return direct
        # Too thin to renormalize; treat the known part as the whole fund
        total_known_weight = 1.0

    growth = total_weighted_change / total_known_weight
    return Estimate(
        estimated_nav=previous_nav * (1 + growth),
        growth_rate_percent=growth * 100,
        holdings_detail=tuple(details),
        source="holdings",
        known_weight=known_weight,
    )


class FundEstimator:
    """Estimates a fund's live NAV from its holdings, falling back to the
    upstream's pre-computed estimate."""

    def __init__(
        self,
        holdings: HoldingsResolver,
        quotes: QuoteClient,
        direct: DirectEstimateClient,
        min_known_weight: float = MIN_KNOWN_WEIGHT,
    ):
        self._holdings = holdings
        self._quotes = quotes
        self._direct = direct
        self._min_known_weight = min_known_weight

    async def estimate(
        self, fund_code: str, previous_nav: float, direct: Estimate | None = None
    ) -> Estimate:
        """Never raises; worst case is previous_nav with zero growth.

        A caller that already holds the upstream estimate passes it as
        ``direct`` and only the holdings are fetched.
        """
        pending = [self._holdings.get_holdings(fund_code)]
        if direct is None:
            pending.append(self._direct.fetch(fund_code))
        results = await asyncio.gather(*pending, return_exceptions=True)
        holdings = results[0]
        if len(results) > 1:
            direct = results[1]

        if isinstance(holdings, BaseException):
            logger.error(f"Holdings lookup raised for {fund_code}: {holdings}")
            holdings = []
        if isinstance(direct, BaseException):
            logger.error(f"Direct estimate raised for {fund_code}: {direct}")
            direct = None

        fallback = direct or Estimate.neutral(previous_nav)
        if not any(h.weight_fraction > 0 for h in holdings):
            logger.info(f"No usable holdings for {fund_code}, using {fallback.source} estimate")
            return fallback

        try:
            quotes = await self._quotes.fetch_quotes([h.identifier for h in holdings])
        except QuoteFetchError as e:
            logger.warning(f"Holding quotes unavailable for {fund_code}: {e}")
            quotes = {}

        return calculate_estimate(
            holdings, quotes, previous_nav, direct, self._min_known_weight
        )
