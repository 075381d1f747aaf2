"""
Fund Inspector
Best-effort read of the fund's on-chain state
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from loguru import logger

from .fixed_point import management_fee
from deployment.records import DeploymentRecord
from utils.exceptions import ContractNotFoundError
from utils.units import format_units

FUND_NAMES = ("FixedRateMockFund", "MockFund")
INTEGRATION_NAMES = ("FixedRateUniswapIntegration", "UniswapIntegration")


@dataclass
class FundStatus:
    """Snapshot of a fund and one account's position in it"""

    fund_name: str
    fund_address: str
    initialized: Optional[bool] = None
    paused: Optional[bool] = None
    total_supply: Optional[int] = None
    initial_supply: Optional[int] = None
    nav: Optional[int] = None
    mfc_value: Optional[int] = None
    theoretical_mfc_value: Optional[int] = None
    composition: List[Dict[str, Any]] = field(default_factory=list)
    composition_usdc: Optional[int] = None
    token_balances: List[Dict[str, Any]] = field(default_factory=list)
    supported_tokens: List[Dict[str, Any]] = field(default_factory=list)
    minimum_investment: Optional[int] = None
    minimum_redemption: Optional[int] = None
    management_fee_bps: Optional[int] = None
    last_fee_collection: Optional[int] = None
    total_fees_collected: Optional[int] = None
    accrued_fee_estimate: Optional[int] = None
    share_token: Dict[str, Any] = field(default_factory=dict)
    account: Optional[str] = None
    account_usdc: Optional[int] = None
    account_mfc: Optional[int] = None
    allowance: Optional[int] = None
    usdc_matches_record: Optional[bool] = None
    integration_owner: Optional[str] = None
    fixed_rate_mode: Optional[bool] = None
    errors: List[str] = field(default_factory=list)


class FundInspector:
    """
    Collects a FundStatus, one RPC read at a time

    A failed read is logged, added to status.errors, and the scan
    moves on to the next item.
    """

    def __init__(
        self,
        contract_manager,
        record: DeploymentRecord,
        token_config: Optional[Dict] = None,
        fund_name: Optional[str] = None
    ):
        """
        Initialize Fund Inspector

        Args:
            contract_manager: ContractManager for contract instances
            record: Deployment record with the fund's addresses
            token_config: Token catalogue (decimals per symbol)
            fund_name: Fund contract name (FixedRateMockFund preferred if None)
        """
        self.contract_manager = contract_manager
        self.w3 = contract_manager.w3
        self.record = record
        self.token_config = (token_config or {}).get('tokens', {})

        self.fund_name = fund_name or _first_recorded(record, FUND_NAMES)
        self.fund = contract_manager.attach(self.fund_name, record.address_of(self.fund_name))

        self.integration_name = _first_recorded(record, INTEGRATION_NAMES, required=False)
        self.symbols = {address: symbol for symbol, address in record.tokens.items()}

    def _read(self, status: FundStatus, label: str, fn: Callable, default=None):
        """Run one read, recording the failure instead of raising"""
        try:
            return fn()
        except Exception as e:
            logger.warning(f"  ⚠ {label}: {e}")
            status.errors.append(f"{label}: {e}")
            return default

    def _symbol(self, address: str) -> str:
        return self.symbols.get(address, address[:10])

    def _decimals(self, symbol: str, default: int = 18) -> int:
        return self.token_config.get(symbol, {}).get('decimals', default)

    def inspect(self, account: Optional[str] = None) -> FundStatus:
        """
        Read fund state, parameters, share token, account position and integration

        Args:
            account: Account whose balances/allowance to read (None to skip)

        Returns:
            FundStatus
        """
        status = FundStatus(fund_name=self.fund_name, fund_address=self.fund.address, account=account)
        fn = self.fund.functions

        status.initialized = self._read(status, "isInitialized", lambda: fn.isInitialized().call())
        status.paused = self._read(status, "paused", lambda: fn.paused().call())

        stats = self._read(status, "getFundStats", lambda: fn.getFundStats().call())
        if stats:
            status.total_supply, status.initial_supply = stats[0], stats[1]

        status.nav = self._read(status, "calculateNAV", lambda: fn.calculateNAV().call())
        status.mfc_value = self._read(status, "calculateMFCValue", lambda: fn.calculateMFCValue().call())
        status.theoretical_mfc_value = self._read(
            status, "calculateTheoreticalMFCValue", lambda: fn.calculateTheoreticalMFCValue().call()
        )

        composition = self._read(status, "getMFCComposition", lambda: fn.getMFCComposition().call())
        if composition:
            tokens, ratios, usdc_amount = composition
            status.composition_usdc = usdc_amount
            status.composition = [
                {'symbol': self._symbol(token), 'address': token, 'ratio': ratio}
                for token, ratio in zip(tokens, ratios)
            ]

        balances = self._read(status, "getFundTokenBalances", lambda: fn.getFundTokenBalances().call())
        if balances:
            for token, balance, decimals in zip(*balances):
                status.token_balances.append({
                    'symbol': self._symbol(token), 'address': token, 'balance': balance, 'decimals': decimals
                })

        supported = self._read(status, "getSupportedTokens", lambda: fn.getSupportedTokens().call(), [])
        for token in supported:
            symbol = self._symbol(token)
            balance = self._read(
                status, f"{symbol} balance",
                lambda: self.contract_manager.erc20(token).functions.balanceOf(self.fund.address).call()
            )
            status.supported_tokens.append({
                'symbol': symbol, 'address': token, 'balance': balance, 'decimals': self._decimals(symbol)
            })

        self._read_parameters(status)
        self._read_share_token(status)
        self._read_usdc(status, account)
        self._read_integration(status)

        return status

    def _read_parameters(self, status: FundStatus):
        fn = self.fund.functions

        status.minimum_investment = self._read(status, "minimumInvestment", lambda: fn.minimumInvestment().call())
        status.minimum_redemption = self._read(status, "minimumRedemption", lambda: fn.minimumRedemption().call())
        status.management_fee_bps = self._read(status, "managementFeeRate", lambda: fn.managementFeeRate().call())
        status.last_fee_collection = self._read(status, "lastFeeCollection", lambda: fn.lastFeeCollection().call())
        status.total_fees_collected = self._read(
            status, "totalManagementFeesCollected", lambda: fn.totalManagementFeesCollected().call()
        )

        if status.last_fee_collection == 0:
            # Fee clock starts at initialization
            status.accrued_fee_estimate = 0
        elif None not in (status.nav, status.management_fee_bps, status.last_fee_collection):
            now = self._read(status, "latest block", lambda: self.w3.eth.get_block('latest')['timestamp'], int(time.time()))
            status.accrued_fee_estimate = management_fee(
                status.nav, status.management_fee_bps, now - status.last_fee_collection
            )

    def _read_share_token(self, status: FundStatus):
        share_address = self.record.get("FundShareToken") or self._read(
            status, "shareToken", lambda: self.fund.functions.shareToken().call()
        )
        if not share_address:
            return

        share = self.contract_manager.erc20(share_address)
        status.share_token = {
            'address': share_address,
            'name': self._read(status, "share name", lambda: share.functions.name().call()),
            'symbol': self._read(status, "share symbol", lambda: share.functions.symbol().call()),
            'decimals': self._read(status, "share decimals", lambda: share.functions.decimals().call()),
            'total_supply': self._read(status, "share totalSupply", lambda: share.functions.totalSupply().call()),
        }

        if status.account:
            status.account_mfc = self._read(
                status, "account MFC", lambda: share.functions.balanceOf(status.account).call()
            )

    def _read_usdc(self, status: FundStatus, account: Optional[str]):
        recorded_usdc = self.record.get("MockUSDC")
        fund_usdc = self._read(status, "getUSDCAddress", lambda: self.fund.functions.getUSDCAddress().call())

        if recorded_usdc and fund_usdc:
            status.usdc_matches_record = fund_usdc.lower() == recorded_usdc.lower()

        usdc_address = fund_usdc or recorded_usdc
        if not account or not usdc_address:
            return

        usdc = self.contract_manager.erc20(usdc_address)
        status.account_usdc = self._read(status, "account USDC", lambda: usdc.functions.balanceOf(account).call())
        status.allowance = self._read(
            status, "USDC allowance", lambda: usdc.functions.allowance(account, self.fund.address).call()
        )

    def _read_integration(self, status: FundStatus):
        if not self.integration_name:
            return

        integration = self.contract_manager.attach(
            self.integration_name, self.record.address_of(self.integration_name)
        )
        status.integration_owner = self._read(status, "integration owner", lambda: integration.functions.owner().call())
        status.fixed_rate_mode = self._read(
            status, "useFixedRates", lambda: integration.functions.useFixedRates().call()
        )

    def log_status(self, status: FundStatus):
        """Print a FundStatus"""
        logger.info("=" * 70)
        logger.info(f"FUND STATUS: {status.fund_name} @ {status.fund_address}")
        logger.info("=" * 70)
        logger.info(f"Initialized:           {status.initialized}")
        logger.info(f"Paused:                {status.paused}")
        logger.info(f"Total supply:          {_mfc(status.total_supply)}")
        logger.info(f"Initial supply:        {_mfc(status.initial_supply)}")
        logger.info(f"NAV:                   {_usdc(status.nav)}")
        logger.info(f"MFC value:             {_usdc(status.mfc_value)}")
        logger.info(f"Theoretical MFC value: {_usdc(status.theoretical_mfc_value)}")

        if status.composition:
            logger.info("")
            logger.info("MFC composition (per MFC, 18-decimal scaled):")
            if status.composition_usdc is not None:
                logger.info(f"  USDC: {format_units(status.composition_usdc, 18)}")
            for item in status.composition:
                logger.info(f"  {item['symbol']}: {format_units(item['ratio'], 18)}")

        if status.token_balances:
            logger.info("")
            logger.info("Fund token balances:")
            for item in status.token_balances:
                logger.info(f"  {item['symbol']}: {format_units(item['balance'], item['decimals'])}")

        if status.supported_tokens:
            logger.info("")
            logger.info(f"Supported tokens ({len(status.supported_tokens)}):")
            for item in status.supported_tokens:
                balance = "n/a" if item['balance'] is None else format_units(item['balance'], item['decimals'])
                logger.info(f"  {item['symbol']:<6} {item['address']}  balance {balance}")

        logger.info("")
        logger.info("Parameters:")
        logger.info(f"  Minimum investment:  {_usdc(status.minimum_investment)}")
        logger.info(f"  Minimum redemption:  {_mfc(status.minimum_redemption)}")
        logger.info(f"  Management fee:      {status.management_fee_bps} bps")
        last_collection = "not collected yet" if status.last_fee_collection == 0 else status.last_fee_collection
        logger.info(f"  Last fee collection: {last_collection}")
        logger.info(f"  Fees collected:      {_usdc(status.total_fees_collected)}")
        logger.info(f"  Accrued fee (est.):  {_usdc(status.accrued_fee_estimate)}")

        if status.share_token:
            share = status.share_token
            logger.info("")
            logger.info(
                f"Share token: {share.get('name')} ({share.get('symbol')}), "
                f"{share.get('decimals')} decimals, supply {_mfc(share.get('total_supply'))}"
            )

        if status.account:
            logger.info("")
            logger.info(f"Account {status.account}:")
            logger.info(f"  USDC balance:   {_usdc(status.account_usdc)}")
            logger.info(f"  MFC balance:    {_mfc(status.account_mfc)}")
            logger.info(f"  Fund allowance: {_usdc(status.allowance)}")

        if status.usdc_matches_record is False:
            logger.warning("⚠ Fund USDC address does not match MockUSDC in the deployment record")
        elif status.usdc_matches_record:
            logger.success("✓ Fund USDC address matches the deployment record")

        if status.integration_owner is not None:
            logger.info("")
            logger.info(f"Integration owner: {status.integration_owner}")
            logger.info(f"Fixed-rate mode:   {status.fixed_rate_mode}")

        logger.info("=" * 70)
        if status.errors:
            logger.warning(f"{len(status.errors)} read(s) failed")
        else:
            logger.success("✅ All reads succeeded")


def _first_recorded(record: DeploymentRecord, names, required: bool = True) -> Optional[str]:
    """First of `names` present in the record"""
    for name in names:
        if record.get(name):
            return name
    if required:
        raise ContractNotFoundError(
            f"No fund contract ({' or '.join(names)}) in the {record.network} deployment record"
        )
    return None


def _usdc(value: Optional[int]) -> str:
    return "n/a" if value is None else f"{format_units(value, 6)} USDC"


def _mfc(value: Optional[int]) -> str:
    return "n/a" if value is None else f"{format_units(value, 18)} MFC"
