"""Pre-computed fund estimate from the ``jsonpgz(...)`` source.

API returns JSONP:
    jsonpgz({"fundcode":"000216","name":"...","jzrq":"2023-11-03","dwjz":"2.5480",
             "gsz":"2.5512","gszzl":"0.13","gztime":"2023-11-06 15:00"});
"""

import json
import logging
import re

import httpx

from fund_valuation.config import DIRECT_ESTIMATE_URL
from fund_valuation.models.fund import DirectPayload, Estimate
from fund_valuation.services.identifiers import strip_namespace

logger = logging.getLogger(__name__)

_JSONP_RE = re.compile(r"jsonpgz\((.*)\)", re.S)


def _optional_float(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_direct_payload(text: str) -> DirectPayload | None:
    match = _JSONP_RE.search(text)
    if not match or not match.group(1).strip():
        return None
    try:
        data = json.loads(match.group(1))
        return DirectPayload(
            fund_code=str(data.get("fundcode", "")),
            name=str(data.get("name", "")),
            estimated_nav=float(data["gsz"]),
            growth_rate_percent=float(data["gszzl"]),
            last_nav=_optional_float(data.get("dwjz")),
            nav_date=data.get("jzrq") or None,
            estimate_time=data.get("gztime") or None,
        )
    except (ValueError, KeyError, TypeError, AttributeError):
        return None


class DirectEstimateClient:
    """Fetches the upstream's own estimate for a fund. Never raises."""

    def __init__(self, client: httpx.AsyncClient, base_url: str = DIRECT_ESTIMATE_URL):
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def fetch_payload(self, fund_code: str) -> DirectPayload | None:
        bare = strip_namespace(fund_code)
        try:
            resp = await self._client.get(f"{self._base_url}/{bare}.js")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Direct estimate request failed for {bare}: {e}")
            return None

        payload = parse_direct_payload(resp.text)
        if payload is None:
            logger.warning(f"Could not parse direct estimate for {bare}")
        return payload

    async def fetch(self, fund_code: str) -> Estimate | None:
        payload = await self.fetch_payload(fund_code)
        return payload.to_estimate() if payload else None
