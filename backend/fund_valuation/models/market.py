"""Market identifiers and quotes."""

from dataclasses import dataclass

# Namespace prefixes understood by the quote upstream
SHANGHAI = "sh"
SHENZHEN = "sz"
HONG_KONG = "hk"
OPEN_FUND = "jj"
BEIJING = "bj"

NAMESPACES = (SHANGHAI, SHENZHEN, HONG_KONG, OPEN_FUND, BEIJING)
EXCHANGE_NAMESPACES = (SHANGHAI, SHENZHEN)


@dataclass(frozen=True)
class Single:
    """A code that maps to exactly one upstream instrument."""

    identifier: str

    def flatten(self) -> tuple[str, ...]:
        return (self.identifier,)


@dataclass(frozen=True)
class Candidates:
    """A bare code whose market is ambiguous; every candidate gets queried."""

    identifiers: tuple[str, ...]

    def flatten(self) -> tuple[str, ...]:
        return self.identifiers


Normalized = Single | Candidates


@dataclass(frozen=True)
class Quote:
    identifier: str
    short_code: str
    name: str
    price: float
    previous_close: float
    growth_rate_percent: float
    as_of: str

    @classmethod
    def build(
        cls,
        identifier: str,
        short_code: str,
        name: str,
        price: float,
        previous_close: float,
        as_of: str,
    ) -> "Quote":
        growth = 0.0
        if previous_close > 0:
            growth = (price - previous_close) / previous_close * 100
        return cls(
            identifier=identifier,
            short_code=short_code,
            name=name,
            price=price,
            previous_close=previous_close,
            growth_rate_percent=growth,
            as_of=as_of,
        )
