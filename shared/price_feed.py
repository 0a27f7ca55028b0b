"""
BTC price feed - CoinGecko with a short TTL cache.

Falls back to the last cached price when CoinGecko is unreachable, and to a
fixed estimate when nothing has ever been fetched, so callers always get a
usable positive number.
"""
import time
import httpx
from shared.config import settings
import structlog

logger = structlog.get_logger()

BTC_COINGECKO_ID = "bitcoin"


class PriceFeed:
    """Owns its cache; one instance per process, passed to whoever needs a rate."""

    def __init__(
        self,
        api_url: str = settings.COINGECKO_API_URL,
        cache_ttl: float = settings.PRICE_CACHE_TTL_SECONDS,
        fallback_price: float = settings.FALLBACK_BTC_PRICE_USD,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url
        self.cache_ttl = cache_ttl
        self.fallback_price = fallback_price
        self._http = http_client
        self._cached_price: float | None = None
        self._cached_at: float = 0.0

    async def get_btc_usd(self) -> float:
        """Get BTC price in USD."""
        now = time.time()
        if self._cached_price and (now - self._cached_at) < self.cache_ttl:
            return self._cached_price

        try:
            price = await self._fetch_coingecko()
            self._cached_price = price
            self._cached_at = now
            return price
        except Exception as e:
            logger.warning("btc_price_fetch_failed", error=str(e))

        if self._cached_price:
            logger.warning(
                "btc_price_stale_cache_used",
                price=self._cached_price,
                age_seconds=round(now - self._cached_at, 1),
            )
            return self._cached_price

        logger.error("btc_price_unavailable_using_estimate", price=self.fallback_price)
        return self.fallback_price

    async def _fetch_coingecko(self) -> float:
        params = {"ids": BTC_COINGECKO_ID, "vs_currencies": "usd"}
        url = f"{self.api_url}/simple/price"
        if self._http is not None:
            resp = await self._http.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(url, params=params)
        resp.raise_for_status()
        data = resp.json()
        price = float(data[BTC_COINGECKO_ID]["usd"])
        if price <= 0:
            raise ValueError(f"Invalid BTC price {price}")
        return price
