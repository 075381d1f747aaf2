"""
Reference Prices
Fetches off-chain USD prices from CoinGecko to sanity-check the oracle
"""

import os
import time
import asyncio
import aiohttp
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional
from loguru import logger


@dataclass
class PriceDeviation:
    """Oracle price against the reference price for one token"""

    symbol: str
    oracle_price: Decimal
    reference_price: Decimal

    @property
    def deviation_pct(self) -> Decimal:
        if self.reference_price == 0:
            return Decimal(0)
        return ((self.oracle_price - self.reference_price) / self.reference_price * 100).quantize(Decimal("0.01"))


class ReferencePriceClient:
    """
    CoinGecko simple/price client
    Implements caching to reduce API calls
    """

    COINGECKO_API = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        token_config: Dict,
        api_key: Optional[str] = None,
        cache_ttl: int = 60,
        timeout: int = 10
    ):
        """
        Initialize Reference Price Client

        Args:
            token_config: Token catalogue (coingecko_id per symbol)
            api_key: CoinGecko demo key (COINGECKO_API_KEY if None)
            cache_ttl: Seconds a cached price stays fresh
            timeout: HTTP timeout in seconds
        """
        self.coin_ids = {
            symbol: token['coingecko_id']
            for symbol, token in token_config.get('tokens', {}).items()
            if token.get('coingecko_id')
        }
        self.api_key = api_key or os.getenv('COINGECKO_API_KEY')
        self.cache_ttl = cache_ttl
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        # Price cache
        self.price_cache: Dict[str, Decimal] = {}
        self.cache_timestamps: Dict[str, float] = {}

    def _headers(self) -> Dict[str, str]:
        headers = {'accept': 'application/json'}
        if self.api_key:
            headers['x-cg-demo-api-key'] = self.api_key
        return headers

    async def fetch_prices(
        self,
        symbols: Optional[List[str]] = None,
        session: Optional[aiohttp.ClientSession] = None
    ) -> Dict[str, Decimal]:
        """
        Fetch USD prices, concurrently, skipping fresh cache entries

        Args:
            symbols: Symbols to fetch (all with a coingecko_id if None)
            session: Existing aiohttp session (one is opened if None)

        Returns:
            Symbol -> USD price for every symbol that could be priced
        """
        symbols = [s for s in (symbols or list(self.coin_ids)) if s in self.coin_ids]
        pending = [s for s in symbols if self.is_price_stale(s)]

        if pending:
            if session is None:
                async with aiohttp.ClientSession(timeout=self.timeout) as own_session:
                    await self._fetch_all(own_session, pending)
            else:
                await self._fetch_all(session, pending)

        return {s: self.price_cache[s] for s in symbols if s in self.price_cache}

    async def _fetch_all(self, session, symbols: List[str]):
        tasks = [self._fetch_token_price(session, symbol) for symbol in symbols]
        await asyncio.gather(*tasks)
        logger.debug(f"Fetched reference prices for {len(symbols)} token(s)")

    async def _fetch_token_price(self, session, symbol: str):
        """
        Fetch price for a single token

        Args:
            session: aiohttp session
            symbol: Token symbol
        """
        coin_id = self.coin_ids[symbol]
        url = f"{self.COINGECKO_API}/simple/price"
        params = {'ids': coin_id, 'vs_currencies': 'usd'}

        try:
            async with session.get(url, params=params, headers=self._headers()) as response:
                if response.status != 200:
                    logger.warning(f"CoinGecko returned HTTP {response.status} for {symbol}")
                    return

                data = await response.json()
                price = data.get(coin_id, {}).get('usd')

                if price is None:
                    logger.warning(f"CoinGecko has no USD price for {coin_id}")
                    return

                self.price_cache[symbol] = Decimal(str(price))
                self.cache_timestamps[symbol] = time.monotonic()

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"CoinGecko fetch failed for {symbol}: {e}")

    def get_price(self, symbol: str) -> Optional[Decimal]:
        """Get cached price"""
        return self.price_cache.get(symbol)

    def is_price_stale(self, symbol: str) -> bool:
        """
        Check if cached price is stale

        Returns:
            True if price is stale or missing
        """
        if symbol not in self.cache_timestamps:
            return True
        return time.monotonic() - self.cache_timestamps[symbol] > self.cache_ttl

    def get_reference_prices(self, symbols: Optional[List[str]] = None) -> Dict[str, Decimal]:
        """Blocking wrapper around fetch_prices()"""
        return asyncio.run(self.fetch_prices(symbols))

    @staticmethod
    def compare(oracle_prices: Dict[str, Decimal], reference_prices: Dict[str, Decimal]) -> List[PriceDeviation]:
        """
        Pair oracle and reference prices

        Args:
            oracle_prices: Symbol -> oracle USD price
            reference_prices: Symbol -> reference USD price

        Returns:
            One entry per symbol present in both
        """
        return [
            PriceDeviation(symbol, oracle_prices[symbol], reference_prices[symbol])
            for symbol in oracle_prices
            if symbol in reference_prices
        ]

    @staticmethod
    def log_comparison(deviations: List[PriceDeviation], warn_pct: Decimal = Decimal("5")):
        """Print oracle vs reference prices"""
        logger.info("")
        logger.info("Oracle vs CoinGecko:")
        for item in deviations:
            line = (
                f"  {item.symbol:<6} oracle ${item.oracle_price:,.2f}  "
                f"coingecko ${item.reference_price:,.2f}  ({item.deviation_pct:+}%)"
            )
            if abs(item.deviation_pct) > warn_pct:
                logger.warning(f"⚠{line}")
            else:
                logger.info(line)
