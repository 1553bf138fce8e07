"""Fund top-holdings resolution.

Primary source is the mobile JSON API; when it fails (network error or no
``Data`` envelope, which usually means throttling) the F10 HTML fragment is
scraped instead. Resolved holdings are cached per bare fund code.
"""

import asyncio
import logging
import re
from html import unescape
from typing import Any

import httpx

from fund_valuation.config import (
    HOLDINGS_CACHE_MAX_SIZE,
    HOLDINGS_CACHE_TTL,
    HOLDINGS_FALLBACK_URL,
    HOLDINGS_PRIMARY_URL,
)
from fund_valuation.models.fund import Holding
from fund_valuation.models.market import OPEN_FUND
from fund_valuation.services.cache import CacheService
from fund_valuation.services.identifiers import (
    namespace_of,
    normalize,
    prefer_exchange,
    strip_namespace,
)

logger = logging.getLogger(__name__)

# Field names differ between the equity and feeder-fund lists
_CODE_KEYS = ("GPDM", "BZDM", "CODE", "DM")
_WEIGHT_KEYS = ("JZBL", "ZJZBL", "WEIGHT")

_CONTENT_RE = re.compile(r'content:"(.*)",\s*arryear', re.S)
_TBODY_RE = re.compile(r"<tbody[^>]*>(.*?)</tbody>", re.S | re.I)
_ROW_RE = re.compile(r"<tr[^>]*>(.*?)</tr>", re.S | re.I)
_CELL_RE = re.compile(r"<td[^>]*>(.*?)</td>", re.S | re.I)
_TAG_RE = re.compile(r"<[^>]+>")


class HoldingsSourceError(RuntimeError):
    """A single holdings source was unreachable or returned unusable data."""


def _first_present(item: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _weight_fraction(raw: Any) -> float:
    """Percentage (``"8.95"``, ``"8.95%"`` or a number) -> fraction in [0, 1]."""
    try:
        pct = float(str(raw).replace("%", "").strip())
    except (TypeError, ValueError):
        return 0.0
    if pct != pct:  # NaN
        return 0.0
    return min(max(pct / 100, 0.0), 1.0)


def to_holding(raw_code: Any, raw_weight: Any) -> Holding | None:
    """Build a Holding from a raw upstream code and weight percentage."""
    if raw_code in (None, ""):
        return None
    identifier = prefer_exchange(normalize(str(raw_code)))
    if namespace_of(identifier) == OPEN_FUND:
        logger.debug(f"Skipping holding {raw_code}: resolves to a fund, not a security")
        return None
    return Holding(identifier=identifier, weight_fraction=_weight_fraction(raw_weight))


def parse_primary_holdings(payload: Any) -> list[Holding]:
    """Parse the JSON API payload.

    A non-empty feeder-fund list (``Data.FundHolding``) is used exclusively;
    such funds sit almost entirely in one ETF. Raises HoldingsSourceError
    when the ``Data`` envelope is missing.
    """
    data = payload.get("Data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise HoldingsSourceError("Primary API returned no Data (possible busy/limit)")

    fund_holdings = data.get("FundHolding") or []
    items = fund_holdings if fund_holdings else data.get("Holding") or []
    if not isinstance(items, list):
        raise HoldingsSourceError("Primary API returned a malformed holdings list")

    holdings = []
    for item in items:
        if not isinstance(item, dict):
            continue
        holding = to_holding(
            _first_present(item, _CODE_KEYS), _first_present(item, _WEIGHT_KEYS)
        )
        if holding is not None:
            holdings.append(holding)
    return holdings


def _clean_html_text(s: str) -> str:
    s = _TAG_RE.sub("", s)
    return unescape(s).strip()


def parse_fallback_holdings(text: str) -> list[Holding]:
    """Scrape holdings rows out of the F10 HTML fragment.

    Code is the second cell; weight is the first cell carrying a ``%``.
    Short or unparsable rows are skipped. Only the first table that yields
    rows is used, as later tables are older quarters.
    """
    m = _CONTENT_RE.search(text)
    html = m.group(1) if m else text
    html = html.replace('\\"', '"').replace("\\/", "/")

    for body in _TBODY_RE.findall(html):
        holdings = []
        for row in _ROW_RE.findall(body):
            cells = [_clean_html_text(c) for c in _CELL_RE.findall(row)]
            if len(cells) < 3:
                continue
            code = cells[1]
            weight_text = next((c for c in cells if "%" in c), "")
            if not code or not weight_text:
                continue
            try:
                float(weight_text.replace("%", ""))
            except ValueError:
                continue
            holding = to_holding(code, weight_text)
            if holding is not None:
                holdings.append(holding)
        if holdings:
            return holdings
    return []


class HoldingsResolver:
    """Resolves and caches a fund's top holdings.

    Owns its cache; concurrent misses for the same fund share one fetch.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: CacheService | None = None,
        primary_url: str = HOLDINGS_PRIMARY_URL,
        fallback_url: str = HOLDINGS_FALLBACK_URL,
    ):
        self._client = client
        self._cache = cache or CacheService(
            default_ttl=HOLDINGS_CACHE_TTL, max_size=HOLDINGS_CACHE_MAX_SIZE
        )
        self._primary_url = primary_url
        self._fallback_url = fallback_url
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def cache(self) -> CacheService:
        return self._cache

    async def get_holdings(self, fund_code: str) -> list[Holding]:
        """Return the fund's holdings, or [] when no source could supply them."""
        bare = strip_namespace(fund_code)
        cached = self._cache.get(bare)
        if cached is not None:
            logger.debug(f"Holdings cache hit for {bare}")
            return list(cached)

        task = self._in_flight.get(bare)
        if task is None:
            task = asyncio.create_task(self._resolve(bare))
            self._in_flight[bare] = task
            task.add_done_callback(lambda t, key=bare: self._forget(key, t))
        # One waiter being cancelled must not cancel the shared fetch
        return list(await asyncio.shield(task))

    def invalidate(self, fund_code: str) -> None:
        self._cache.delete(strip_namespace(fund_code))

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _resolve(self, bare: str) -> list[Holding]:
        try:
            holdings = await self._fetch_primary(bare)
        except HoldingsSourceError as e:
            logger.warning(f"Primary holdings source failed for {bare}, trying fallback: {e}")
            try:
                holdings = await self._fetch_fallback(bare)
            except HoldingsSourceError as e2:
                logger.error(f"All holdings sources failed for {bare}: {e2}")
                return []

        if holdings:
            self._cache.set(bare, tuple(holdings))
        return holdings

    async def _fetch_primary(self, bare: str) -> list[Holding]:
        try:
            resp = await self._client.get(self._primary_url, params={"FCODE": bare})
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise HoldingsSourceError(f"primary request failed: {e}") from e
        return parse_primary_holdings(payload)

    async def _fetch_fallback(self, bare: str) -> list[Holding]:
        params = {"type": "jjcc", "topline": "10", "code": bare}
        try:
            resp = await self._client.get(self._fallback_url, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise HoldingsSourceError(f"fallback request failed: {e}") from e
        return parse_fallback_holdings(resp.text)
