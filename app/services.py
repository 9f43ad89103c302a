from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

import requests

from config import EXCHANGE_RATE_URL, RATES_CACHE_PATH

logger = logging.getLogger(__name__)


class PriceProvider(Protocol):
    """Market data source; returns None when a ticker has no quote."""

    def get_price(self, ticker: str) -> Optional[float]:
        ...


class ExchangeRateService:
    """USD to INR rate used to value holdings.

    By default a static rate is used, which keeps tests offline. With
    ``use_online=True`` the rate is fetched from ``EXCHANGE_RATE_URL`` and
    cached to a JSON file, and the cache is used when the network is down.
    """

    DEFAULT_RATE = 83.0

    def __init__(
        self,
        rate: Optional[float] = None,
        *,
        use_online: bool = False,
        cache_path: str = RATES_CACHE_PATH,
        url: str = EXCHANGE_RATE_URL,
        target: str = "INR",
    ):
        self._cache_path = Path(cache_path)
        self._url = url
        self._target = target.upper()

        if rate is not None:
            self._rate = float(rate)
            return

        if use_online:
            fetched = self._fetch_and_cache_rate()
            if fetched is not None:
                self._rate = fetched
                return

        cached = self._load_cached()
        self._rate = cached if cached is not None else self.DEFAULT_RATE

    def get_rate(self) -> float:
        return self._rate

    def convert(self, amount: float) -> float:
        return float(amount) * self._rate

    def _fetch_and_cache_rate(self) -> Optional[float]:
        try:
            resp = requests.get(self._url, headers={"User-Agent": "fintrack"}, timeout=10)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            logger.warning("Network error fetching exchange rate: %s", e)
            return self._load_cached()
        except ValueError as e:
            logger.warning("Exchange rate response is not JSON: %s", e)
            return self._load_cached()

        rates = payload.get("rates") if isinstance(payload, dict) else None
        raw = rates.get(self._target) if isinstance(rates, dict) else None
        try:
            rate = float(raw)
        except (TypeError, ValueError):
            logger.warning("No %s rate in exchange rate response", self._target)
            return self._load_cached()

        self._save_cache(rate)
        return rate

    def _load_cached(self) -> Optional[float]:
        if not self._cache_path.exists():
            return None
        try:
            with open(self._cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return float(data[self._target])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to load cached exchange rate: %s", e)
            return None

    def _save_cache(self, rate: float) -> None:
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._cache_path, "w", encoding="utf-8") as f:
                json.dump({self._target: rate}, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.exception("Failed to save exchange rate cache: %s", e)
