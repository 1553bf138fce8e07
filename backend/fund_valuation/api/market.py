"""Identifier and quote API routes."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from fund_valuation.api.deps import get_quote_client
from fund_valuation.api.schemas import IdentifierResponse, QuoteResponse
from fund_valuation.models.market import Single
from fund_valuation.services.identifiers import normalize
from fund_valuation.services.quotes import QuoteClient, QuoteFetchError

router = APIRouter(prefix="/api", tags=["market"])


@router.get("/identifiers/{code}", response_model=IdentifierResponse)
async def resolve_identifier(code: str):
    normalized = normalize(code)
    return IdentifierResponse(
        code=code,
        kind="single" if isinstance(normalized, Single) else "candidates",
        identifiers=list(normalized.flatten()),
    )


@router.get("/quotes", response_model=dict[str, QuoteResponse])
async def get_quotes(
    codes: str = Query(..., description="Comma-separated bare or qualified codes"),
    quote_client: QuoteClient = Depends(get_quote_client),
):
    code_list = [c.strip() for c in codes.split(",") if c.strip()]
    if not code_list:
        raise HTTPException(status_code=400, detail="No codes given")

    try:
        quotes = await quote_client.fetch_quotes(code_list)
    except QuoteFetchError:
        raise HTTPException(status_code=503, detail="Quote data source unavailable")

    return {k: QuoteResponse(**asdict(q)) for k, q in quotes.items()}
