"""
Invest/Redeem Exercise
Invests USDC, redeems part of the shares, and compares against expectations
"""

from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import List, Optional
from loguru import logger

from .faucet import TokenFaucet
from .fixed_point import efficiency_pct, expected_shares, expected_usdc
from .inspector import FUND_NAMES
from deployment.records import DeploymentRecord
from utils.exceptions import TransactionFailedError
from utils.units import format_units


@dataclass
class ExerciseReport:
    """Before/after balances and expected vs actual amounts"""

    invest_amount: int
    usdc_before: int = 0
    mfc_before: int = 0
    usdc_after_invest: Optional[int] = None
    mfc_after_invest: Optional[int] = None
    usdc_after_redeem: Optional[int] = None
    mfc_after_redeem: Optional[int] = None
    mfc_value_at_invest: int = 0
    mfc_value_at_redeem: Optional[int] = None
    expected_shares: int = 0
    actual_shares: Optional[int] = None
    redeem_amount: Optional[int] = None
    expected_usdc: Optional[int] = None
    actual_usdc: Optional[int] = None
    invest_ok: bool = False
    redeem_ok: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def investment_efficiency(self) -> Optional[Decimal]:
        if self.actual_shares is None:
            return None
        return efficiency_pct(self.actual_shares, self.expected_shares)

    @property
    def redemption_efficiency(self) -> Optional[Decimal]:
        if self.actual_usdc is None or self.expected_usdc is None:
            return None
        return efficiency_pct(self.actual_usdc, self.expected_usdc)

    @property
    def net_usdc_change(self) -> Optional[int]:
        if self.usdc_after_redeem is None:
            return None
        return self.usdc_after_redeem - self.usdc_before

    @property
    def passed(self) -> bool:
        return self.invest_ok and self.redeem_ok


class InvestRedeemExercise:
    """
    Manual end-to-end exercise of invest() and redeem()
    """

    def __init__(
        self,
        contract_manager,
        tx_builder,
        record: DeploymentRecord,
        fund_name: Optional[str] = None,
        faucet: Optional[TokenFaucet] = None
    ):
        """
        Initialize Invest/Redeem Exercise

        Args:
            contract_manager: ContractManager for contract instances
            tx_builder: TransactionBuilder for the investing wallet
            record: Deployment record
            fund_name: Fund contract name (detected if None)
            faucet: TokenFaucet for topping up USDC
        """
        self.contract_manager = contract_manager
        self.tx_builder = tx_builder
        self.faucet = faucet or TokenFaucet(contract_manager, tx_builder)

        self.fund_name = fund_name or next((name for name in FUND_NAMES if record.get(name)), FUND_NAMES[0])
        self.fund = contract_manager.attach(self.fund_name, record.address_of(self.fund_name))

        usdc_address = record.get("MockUSDC") or self.fund.functions.getUSDCAddress().call()
        share_address = record.get("FundShareToken") or self.fund.functions.shareToken().call()
        self.usdc = contract_manager.erc20(usdc_address)
        self.share = contract_manager.erc20(share_address)

    @property
    def account(self) -> str:
        return self.tx_builder.sender

    def _balances(self):
        return (
            self.usdc.functions.balanceOf(self.account).call(),
            self.share.functions.balanceOf(self.account).call(),
        )

    def run(self, invest_amount: int, redeem_fraction=Fraction(1, 2)) -> ExerciseReport:
        """
        Invest, then redeem a fraction of the shares received

        Args:
            invest_amount: USDC base units to invest
            redeem_fraction: Share of received MFC to redeem (0 < f <= 1)

        Returns:
            ExerciseReport (passed when both transactions succeed)
        """
        redeem_fraction = Fraction(str(redeem_fraction))
        if not 0 < redeem_fraction <= 1:
            raise ValueError(f"Redeem fraction must be in (0, 1], got {redeem_fraction}")

        logger.info("=" * 70)
        logger.info(f"INVEST / REDEEM EXERCISE: {self.fund_name} @ {self.fund.address}")
        logger.info("=" * 70)

        invest_amount = self.faucet.ensure_balance(self.usdc.address, invest_amount, symbol="USDC", decimals=6)

        report = ExerciseReport(invest_amount=invest_amount)
        report.usdc_before, report.mfc_before = self._balances()
        report.mfc_value_at_invest = self.fund.functions.calculateMFCValue().call()
        report.expected_shares = expected_shares(invest_amount, report.mfc_value_at_invest)

        logger.info(f"USDC balance: {format_units(report.usdc_before, 6)}")
        logger.info(f"MFC balance:  {format_units(report.mfc_before, 18)}")
        logger.info(f"MFC value:    {format_units(report.mfc_value_at_invest, 6)} USDC")
        logger.info(f"Expected MFC for {format_units(invest_amount, 6)} USDC: {format_units(report.expected_shares, 18)}")

        try:
            self._invest(invest_amount)
            report.invest_ok = True
        except TransactionFailedError as e:
            logger.error(f"❌ Investment failed: {e}")
            report.errors.append(f"invest: {e}")
            return report

        report.usdc_after_invest, report.mfc_after_invest = self._balances()
        report.actual_shares = report.mfc_after_invest - report.mfc_before
        logger.success(f"✓ Received {format_units(report.actual_shares, 18)} MFC")

        report.redeem_amount = report.actual_shares * redeem_fraction.numerator // redeem_fraction.denominator
        report.mfc_value_at_redeem = self.fund.functions.calculateMFCValue().call()
        report.expected_usdc = expected_usdc(report.redeem_amount, report.mfc_value_at_redeem)
        logger.info(
            f"Redeeming {format_units(report.redeem_amount, 18)} MFC, "
            f"expecting {format_units(report.expected_usdc, 6)} USDC"
        )

        try:
            self.tx_builder.transact(
                self.fund.functions.redeem(report.redeem_amount),
                f"Redeem {format_units(report.redeem_amount, 18)} MFC"
            )
            report.redeem_ok = True
        except TransactionFailedError as e:
            logger.error(f"❌ Redemption failed: {e}")
            report.errors.append(f"redeem: {e}")
            return report

        report.usdc_after_redeem, report.mfc_after_redeem = self._balances()
        report.actual_usdc = report.usdc_after_redeem - report.usdc_after_invest
        logger.success(f"✓ Received {format_units(report.actual_usdc, 6)} USDC")

        return report

    def _invest(self, amount: int):
        """Approve if needed, then invest"""
        allowance = self.usdc.functions.allowance(self.account, self.fund.address).call()
        if allowance < amount:
            self.tx_builder.transact(
                self.usdc.functions.approve(self.fund.address, amount),
                f"Approve {format_units(amount, 6)} USDC"
            )

        self.tx_builder.transact(
            self.fund.functions.invest(amount),
            f"Invest {format_units(amount, 6)} USDC"
        )

    def log_report(self, report: ExerciseReport):
        """Print an ExerciseReport"""
        logger.info("")
        logger.info("=" * 70)
        logger.info("EXERCISE SUMMARY")
        logger.info("=" * 70)
        logger.info(f"Invested:        {format_units(report.invest_amount, 6)} USDC")
        logger.info(
            f"MFC received:    {_fmt(report.actual_shares, 18)} (expected {format_units(report.expected_shares, 18)})"
        )
        logger.info(f"MFC redeemed:    {_fmt(report.redeem_amount, 18)}")
        logger.info(f"USDC received:   {_fmt(report.actual_usdc, 6)} (expected {_fmt(report.expected_usdc, 6)})")
        logger.info(f"Net USDC change: {_fmt(report.net_usdc_change, 6)}")
        logger.info(f"Investment efficiency: {_pct(report.investment_efficiency)}")
        logger.info(f"Redemption efficiency: {_pct(report.redemption_efficiency)}")
        logger.info("=" * 70)

        if report.passed:
            logger.success("✅ PASS: invest and redeem both succeeded")
        else:
            logger.error(f"❌ FAIL: {'; '.join(report.errors) or 'incomplete'}")


def _fmt(value: Optional[int], decimals: int) -> str:
    return "n/a" if value is None else format_units(value, decimals)


def _pct(value: Optional[Decimal]) -> str:
    return "n/a" if value is None else f"{value}%"
