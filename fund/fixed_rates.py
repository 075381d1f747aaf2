"""
Fixed Rate Configurator
Checks and sets the Uniswap shim's fixed token/USDC rates
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from loguru import logger

from .fixed_point import oracle_price_to_fixed_rate
from .inspector import INTEGRATION_NAMES
from deployment.records import DeploymentRecord
from utils.exceptions import OwnershipError
from utils.units import format_units, parse_units


@dataclass
class RateChange:
    """A rate that differs from its target"""

    symbol: str
    address: str
    current: int
    target: int


@dataclass
class FixedRateReport:
    """Result of a check (and optional apply)"""

    integration: str
    owner: Optional[str] = None
    rates: Dict[str, Optional[int]] = field(default_factory=dict)
    changes: List[RateChange] = field(default_factory=list)
    mode_before: Optional[bool] = None
    mode_after: Optional[bool] = None
    applied: bool = False

    @property
    def up_to_date(self) -> bool:
        return not self.changes and bool(self.mode_before)


class FixedRateConfigurator:
    """
    Sets only the rates that differ from their target,
    then enables fixed-rate mode if it is off
    """

    def __init__(
        self,
        contract_manager,
        tx_builder,
        record: DeploymentRecord,
        token_config: Dict,
        integration_name: Optional[str] = None
    ):
        """
        Initialize Fixed Rate Configurator

        Args:
            contract_manager: ContractManager for contract instances
            tx_builder: TransactionBuilder (None for read-only checks)
            record: Deployment record
            token_config: Token catalogue (fixed_rate_usdc per symbol)
            integration_name: Integration contract name (detected if None)
        """
        self.contract_manager = contract_manager
        self.tx_builder = tx_builder
        self.record = record
        self.token_config = token_config

        self.integration_name = integration_name or next(
            (name for name in INTEGRATION_NAMES if record.get(name)), INTEGRATION_NAMES[0]
        )
        self.integration = contract_manager.attach(
            self.integration_name, record.address_of(self.integration_name)
        )

    def _tokens(self) -> Dict[str, str]:
        """Recorded non-stablecoin tokens: symbol -> address"""
        stablecoin = self.token_config.get('stablecoin', 'USDC')
        return {
            symbol: address
            for symbol, address in self.record.tokens.items()
            if symbol != stablecoin and symbol in self.token_config.get('tokens', {})
        }

    def read_rates(self) -> Dict[str, Optional[int]]:
        """Current fixedRates() per token (None where the read fails)"""
        rates = {}
        for symbol, address in self._tokens().items():
            try:
                rates[symbol] = self.integration.functions.fixedRates(address).call()
            except Exception as e:
                logger.warning(f"  ⚠ fixedRates({symbol}): {e}")
                rates[symbol] = None
        return rates

    def configured_rates(self) -> Dict[str, int]:
        """Target rates from config/tokens.json (6-decimal USDC per token)"""
        catalogue = self.token_config.get('tokens', {})
        return {
            symbol: parse_units(catalogue[symbol]['fixed_rate_usdc'], 6)
            for symbol in self._tokens()
            if catalogue[symbol].get('fixed_rate_usdc') is not None
        }

    def rates_from_oracle(self, price_checker) -> Dict[str, int]:
        """
        Target rates derived from oracle prices

        Args:
            price_checker: PriceChecker bound to the same record

        Returns:
            Symbol -> 6-decimal rate, for tokens with a readable price
        """
        targets = {}
        for symbol, address in self._tokens().items():
            reading = price_checker.check_token(symbol, address)
            if reading.error or not reading.price:
                continue
            targets[symbol] = oracle_price_to_fixed_rate(reading.price, reading.feed_decimals)
        return targets

    def check(self, targets: Dict[str, int]) -> FixedRateReport:
        """
        Compare current rates against targets

        Args:
            targets: Symbol -> 6-decimal rate

        Returns:
            FixedRateReport with pending changes
        """
        report = FixedRateReport(integration=self.integration.address)
        report.owner = self.integration.functions.owner().call()
        report.mode_before = self.integration.functions.useFixedRates().call()
        report.mode_after = report.mode_before
        report.rates = self.read_rates()

        tokens = self._tokens()
        for symbol, target in targets.items():
            current = report.rates.get(symbol)
            if current != target:
                report.changes.append(RateChange(symbol, tokens[symbol], current or 0, target))

        return report

    def apply(self, targets: Dict[str, int]) -> FixedRateReport:
        """
        Set differing rates and enable fixed-rate mode

        Raises:
            OwnershipError: If the signer does not own the integration
        """
        report = self.check(targets)
        sender = self.tx_builder.sender

        if report.owner.lower() != sender.lower():
            raise OwnershipError(
                f"{sender} is not the owner of {self.integration_name} (owner: {report.owner})"
            )

        for change in report.changes:
            self.tx_builder.transact(
                self.integration.functions.setFixedRate(change.address, change.target),
                f"setFixedRate {change.symbol} = {format_units(change.target, 6)} USDC"
            )
            logger.success(
                f"✓ {change.symbol}: {format_units(change.current, 6)} -> {format_units(change.target, 6)} USDC"
            )

        if not report.mode_before:
            self.tx_builder.transact(self.integration.functions.setFixedRateMode(True), "Enable fixed-rate mode")
            logger.success("✓ Fixed-rate mode enabled")

        report.mode_after = self.integration.functions.useFixedRates().call()
        report.rates = self.read_rates()
        report.applied = True
        return report

    def log_report(self, report: FixedRateReport):
        """Print a FixedRateReport"""
        logger.info("=" * 70)
        logger.info(f"FIXED RATES: {self.integration_name} @ {report.integration}")
        logger.info("=" * 70)
        logger.info(f"Owner:           {report.owner}")
        logger.info(f"Fixed-rate mode: {report.mode_before} -> {report.mode_after}")

        for symbol, rate in report.rates.items():
            shown = "n/a" if rate is None else f"{format_units(rate, 6)} USDC"
            logger.info(f"  {symbol:<6} {shown}")

        if report.changes:
            verb = "Changed" if report.applied else "Pending"
            logger.info(f"{verb}: {', '.join(c.symbol for c in report.changes)}")
        logger.info("=" * 70)

        if report.up_to_date:
            logger.success("✅ Fixed rates are up to date")
        elif report.applied:
            logger.success(f"✅ Applied {len(report.changes)} rate change(s)")
        else:
            logger.warning("Fixed rates differ from targets (run with --apply)")
