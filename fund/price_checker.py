"""
Price Checker
Reads token prices through the price oracle and the Chainlink aggregators
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional
from loguru import logger

from deployment.records import DeploymentRecord
from utils.units import to_decimal

ORACLE_NAMES = ("ChainlinkPriceOracle", "SepoliaPriceOracle")
STALE_AFTER_SECONDS = 60 * 60


@dataclass
class TokenPrice:
    """Oracle reading for one token"""

    symbol: str
    address: str
    feed: Optional[str] = None
    feed_decimals: int = 8
    description: Optional[str] = None
    price: Optional[int] = None
    timestamp: Optional[int] = None
    age_seconds: Optional[int] = None
    stale: bool = False
    symbol_price: Optional[int] = None
    error: Optional[str] = None

    @property
    def price_usd(self) -> Optional[Decimal]:
        if self.price is None:
            return None
        return to_decimal(self.price, self.feed_decimals)


@dataclass
class AggregatorReading:
    """Direct latestRoundData() reading from a Chainlink feed"""

    pair: str
    address: str
    answer: Optional[int] = None
    decimals: Optional[int] = None
    updated_at: Optional[int] = None
    description: Optional[str] = None
    error: Optional[str] = None

    @property
    def price_usd(self) -> Optional[Decimal]:
        if self.answer is None or self.decimals is None:
            return None
        return to_decimal(self.answer, self.decimals)


@dataclass
class PriceReport:
    """All readings from one scan"""

    prices: List[TokenPrice] = field(default_factory=list)
    batch: Dict[str, int] = field(default_factory=dict)
    aggregators: List[AggregatorReading] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class PriceChecker:
    """
    Scans every recorded token, one at a time

    A failure for one token (e.g. "price feed not found") is logged
    and the scan moves on to the next token.
    """

    def __init__(
        self,
        contract_manager,
        record: DeploymentRecord,
        network_config: Optional[Dict] = None,
        stale_after: int = STALE_AFTER_SECONDS
    ):
        """
        Initialize Price Checker

        Args:
            contract_manager: ContractManager for contract instances
            record: Deployment record with oracle and token addresses
            network_config: Network config (chainlink_feeds)
            stale_after: Age in seconds after which a price is flagged stale
        """
        self.contract_manager = contract_manager
        self.w3 = contract_manager.w3
        self.record = record
        self.feeds = (network_config or {}).get('chainlink_feeds') or {}
        self.stale_after = stale_after

        oracle_name = next((name for name in ORACLE_NAMES if record.get(name)), ORACLE_NAMES[0])
        self.oracle = contract_manager.attach(oracle_name, record.address_of(oracle_name))

    def _now(self) -> int:
        try:
            return self.w3.eth.get_block('latest')['timestamp']
        except Exception as e:
            logger.debug(f"Could not read latest block time: {e}")
            return int(time.time())

    def check_token(self, symbol: str, address: str, now: Optional[int] = None) -> TokenPrice:
        """
        Read feed info, latest price and price-by-symbol for one token

        Args:
            symbol: Token symbol
            address: Token address
            now: Reference time for staleness (latest block if None)

        Returns:
            TokenPrice (error set if the main read failed)
        """
        reading = TokenPrice(symbol=symbol, address=address)
        fn = self.oracle.functions

        try:
            reading.feed, reading.feed_decimals, reading.description = fn.getPriceFeedInfo(address).call()
            reading.price, reading.timestamp = fn.getLatestPrice(address).call()
        except Exception as e:
            reading.error = str(e)
            logger.warning(f"  ⚠ {symbol}: {e}")
            return reading

        now = now if now is not None else self._now()
        reading.age_seconds = max(0, now - reading.timestamp)
        reading.stale = reading.age_seconds > self.stale_after

        try:
            reading.symbol_price, _ = fn.getLatestPriceBySymbol(symbol).call()
        except Exception as e:
            logger.debug(f"  getLatestPriceBySymbol({symbol}) failed: {e}")

        return reading

    def read_batch(self, tokens: Dict[str, str]) -> Dict[str, int]:
        """
        Read prices for several tokens with getMultiplePrices()

        Args:
            tokens: Symbol -> address

        Returns:
            Symbol -> raw price
        """
        symbols = list(tokens)
        prices, _ = self.oracle.functions.getMultiplePrices([tokens[s] for s in symbols]).call()
        return dict(zip(symbols, prices))

    def read_aggregator(self, pair: str, address: str) -> AggregatorReading:
        """Read one Chainlink aggregator directly"""
        reading = AggregatorReading(pair=pair, address=address)

        try:
            feed = self.contract_manager.attach("AggregatorV3Interface", address)
            reading.decimals = feed.functions.decimals().call()
            _, reading.answer, _, reading.updated_at, _ = feed.functions.latestRoundData().call()
            reading.description = feed.functions.description().call()
        except Exception as e:
            reading.error = str(e)
            logger.warning(f"  ⚠ {pair} aggregator: {e}")

        return reading

    def scan(self) -> PriceReport:
        """
        Read every recorded token's price, the batch call and the configured aggregators

        Returns:
            PriceReport
        """
        report = PriceReport()
        now = self._now()

        for symbol, address in self.record.tokens.items():
            reading = self.check_token(symbol, address, now)
            report.prices.append(reading)
            if reading.error:
                report.errors.append(f"{symbol}: {reading.error}")

        priced = {p.symbol: p.address for p in report.prices if p.error is None}
        if priced:
            try:
                report.batch = self.read_batch(priced)
            except Exception as e:
                logger.warning(f"  ⚠ getMultiplePrices: {e}")
                report.errors.append(f"getMultiplePrices: {e}")

        for pair, address in self.feeds.items():
            reading = self.read_aggregator(pair, address)
            report.aggregators.append(reading)
            if reading.error:
                report.errors.append(f"{pair} aggregator: {reading.error}")

        return report

    def log_report(self, report: PriceReport):
        """Print a PriceReport"""
        logger.info("=" * 70)
        logger.info(f"ORACLE PRICES ({self.oracle.address})")
        logger.info("=" * 70)

        for reading in report.prices:
            if reading.error:
                logger.error(f"❌ {reading.symbol:<6} {reading.error}")
                continue

            marker = "⚠ STALE" if reading.stale else "✓"
            logger.info(
                f"{marker} {reading.symbol:<6} ${reading.price_usd:,.2f}  "
                f"(feed {reading.feed}, {reading.description}, age {reading.age_seconds // 60} min)"
            )
            if reading.symbol_price is not None and reading.symbol_price != reading.price:
                logger.warning(f"  by-symbol price differs: {reading.symbol_price}")
            batch_price = report.batch.get(reading.symbol)
            if batch_price is not None and batch_price != reading.price:
                logger.warning(f"  batch price differs: {batch_price}")

        if report.aggregators:
            logger.info("")
            logger.info("Chainlink aggregators:")
            for reading in report.aggregators:
                if reading.error:
                    logger.error(f"❌ {reading.pair:<9} {reading.error}")
                else:
                    logger.info(f"✓ {reading.pair:<9} ${reading.price_usd:,.2f}  ({reading.address})")

        logger.info("=" * 70)
        if report.errors:
            logger.warning(f"{len(report.errors)} price read(s) failed")
        else:
            logger.success("✅ All price reads succeeded")
