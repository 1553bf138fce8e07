"""Real-time quote client for the batched ``v_<id>="a~b~c";`` feed."""

import logging
import re
from datetime import datetime
from typing import Iterable

import httpx

from fund_valuation.config import QUOTE_API_BASE
from fund_valuation.models.market import OPEN_FUND, Quote
from fund_valuation.services.identifiers import flatten, normalize

logger = logging.getLogger(__name__)

_RECORD_RE = re.compile(r'v_([a-zA-Z0-9]+)="(.*)"', re.S)
_NO_MATCH_MARKER = "v_pv_none_match"


class QuoteFetchError(RuntimeError):
    """The quote upstream could not be reached or answered with an error."""


def parse_quote_response(text: str) -> dict[str, Quote]:
    """Parse a batch response into identifier -> Quote.

    Malformed and upstream-errored records are skipped.
    """
    result: dict[str, Quote] = {}
    for record in text.split(";"):
        record = record.strip()
        if not record or _NO_MATCH_MARKER in record:
            continue
        match = _RECORD_RE.search(record)
        if not match:
            continue
        identifier, payload = match.group(1), match.group(2)
        quote = _parse_record(identifier, payload.split("~"))
        if quote is not None:
            result[identifier] = quote
    return result


def _parse_record(identifier: str, fields: list[str]) -> Quote | None:
    try:
        if identifier.startswith(OPEN_FUND):
            # code~name~?~?~?~nav~acc_nav~?~date~...
            # Only end-of-day NAV is published here, so there is no intraday change.
            nav = float(fields[5])
            return Quote.build(
                identifier=identifier,
                short_code=fields[0],
                name=fields[1],
                price=nav,
                previous_close=nav,
                as_of=(fields[8] if len(fields) > 8 else "") or "EOD",
            )

        # seq~name~code~price~prev_close~...
        if len(fields) < 5:
            return None
        return Quote.build(
            identifier=identifier,
            short_code=fields[2],
            name=fields[1],
            price=float(fields[3]),
            previous_close=float(fields[4]),
            as_of=datetime.now().strftime("%H:%M:%S"),
        )
    except (ValueError, IndexError):
        return None


class QuoteClient:
    """Fetches batched real-time quotes from a single upstream."""

    def __init__(self, client: httpx.AsyncClient, base_url: str = QUOTE_API_BASE):
        self._client = client
        self._base_url = base_url

    async def fetch_quotes(self, codes: str | Iterable[str]) -> dict[str, Quote]:
        """Get quotes for bare or qualified codes in one request.

        Ambiguous bare codes are queried under every candidate identifier.
        Returns dict mapping qualified identifier -> Quote.
        Raises QuoteFetchError on transport failure or a non-2xx answer.
        """
        if isinstance(codes, str):
            codes = [codes]
        identifiers = flatten(codes)
        if not identifiers:
            return {}

        url = f"{self._base_url}{','.join(identifiers)}"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise QuoteFetchError(f"Quote request failed for {identifiers}: {e}") from e

        quotes = parse_quote_response(resp.content.decode("gbk", errors="ignore"))
        logger.debug(f"Fetched {len(quotes)}/{len(identifiers)} quotes")
        return quotes

    async def fetch_quote(self, code: str) -> Quote | None:
        """Quote for a single code; the first candidate that resolved wins."""
        quotes = await self.fetch_quotes([code])
        for identifier in normalize(code).flatten():
            if identifier in quotes:
                return quotes[identifier]
        return None
