"""Application configuration."""

import os

# Upstream endpoints
QUOTE_API_BASE = os.getenv("QUOTE_API_BASE", "https://qt.gtimg.cn/q=")
HOLDINGS_PRIMARY_URL = os.getenv(
    "HOLDINGS_PRIMARY_URL",
    "https://fundmobapi.eastmoney.com/FundMApi/FundBasicInit.ashx",
)
HOLDINGS_FALLBACK_URL = os.getenv(
    "HOLDINGS_FALLBACK_URL",
    "https://fundf10.eastmoney.com/FundArchivesDatas.aspx",
)
DIRECT_ESTIMATE_URL = os.getenv("DIRECT_ESTIMATE_URL", "https://fundgz.1234567.com.cn/js")

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)

# Per upstream call, seconds
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "5"))

# Holdings change quarterly, intraday staleness is fine
HOLDINGS_CACHE_TTL = int(os.getenv("HOLDINGS_CACHE_TTL", str(12 * 3600)))  # seconds
HOLDINGS_CACHE_MAX_SIZE = int(os.getenv("HOLDINGS_CACHE_MAX_SIZE", "512"))
CACHE_PURGE_INTERVAL = int(os.getenv("CACHE_PURGE_INTERVAL", "600"))  # seconds

# Below this share of known holding weight the holdings estimate is not trusted
MIN_KNOWN_WEIGHT = float(os.getenv("MIN_KNOWN_WEIGHT", "0.05"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
