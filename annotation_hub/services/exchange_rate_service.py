"""
USD to NGN conversion for Paystack payouts.

Rates are fetched over HTTP and cached in-process. There is no fallback
rate: if no rate can be obtained the caller gets
ExchangeRateUnavailableError, because a guessed rate would produce wrong
payout amounts.
"""
import httpx

from annotation_hub.core.cache import TTLCache, exchange_rate_cache
from annotation_hub.core.config import settings
from annotation_hub.core.exceptions import ExchangeRateUnavailableError, ValidationError
from annotation_hub.log.logging import logger

USD_NGN_KEY = "USD:NGN"


class ExchangeRateService:
    def __init__(self, cache: TTLCache = exchange_rate_cache, api_url: str | None = None,
                 timeout: float | None = None):
        self.cache = cache
        self.api_url = api_url or settings.exchange_rate_api_url
        self.timeout = timeout or settings.exchange_rate_timeout_seconds

    async def _fetch_rate(self) -> float:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.api_url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch exchange rate", event_type="exchange_rate_error", error=str(e))
            raise ExchangeRateUnavailableError(str(e))

        rate = (data.get("rates") or {}).get("NGN")
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate <= 0:
            logger.error("Invalid NGN rate received", event_type="exchange_rate_error", rate=rate)
            raise ExchangeRateUnavailableError("Invalid NGN rate received from API")
        return float(rate)

    async def get_usd_to_ngn_rate(self) -> float:
        rate = self.cache.get(USD_NGN_KEY)
        if rate is not None:
            return rate

        rate = await self._fetch_rate()
        self.cache.set(USD_NGN_KEY, rate)
        logger.info("Fetched USD/NGN rate", event_type="exchange_rate_refreshed", rate=rate)
        return rate

    async def convert_usd_to_ngn(self, usd_amount: float) -> float:
        """
        Convert a USD amount to NGN, rounded to 2 decimal places.

        Raises:
            ValidationError: If the amount is not a non-negative number.
            ExchangeRateUnavailableError: If no rate can be obtained.
        """
        if isinstance(usd_amount, bool) or not isinstance(usd_amount, (int, float)) or usd_amount < 0:
            raise ValidationError("Invalid USD amount provided")
        rate = await self.get_usd_to_ngn_rate()
        return round(usd_amount * rate, 2)

    def cache_info(self) -> dict:
        return {"rate": self.cache.get(USD_NGN_KEY), **self.cache.stats.to_dict()}


exchange_rate_service = ExchangeRateService()
