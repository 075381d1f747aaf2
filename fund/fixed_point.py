"""
Fixed-Point Math
Off-chain mirror of the fund contract's integer arithmetic
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR, localcontext
from typing import Dict, List, Optional

from utils.units import parse_units

USDC_DECIMALS = 6
SHARE_DECIMALS = 18
ONE = 10**SHARE_DECIMALS

INITIAL_MFC_SUPPLY = 1_000_000 * ONE
BPS_DENOMINATOR = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

DEFAULT_TOTAL_USDC = 1_000_000 * 10**USDC_DECIMALS
DEFAULT_RESERVE_BPS = 5_000
DEFAULT_TOKEN_ALLOCATION_BPS = 1_250

# USDC per whole token, and token decimals
DEFAULT_FIXED_RATES = {
    "WETH": (3_000, 18),
    "WBTC": (118_000, 8),
    "LINK": (15, 18),
    "DAI": (1, 18),
}


def token_amount_for_usdc(usdc_amount: int, fixed_rate: int, token_decimals: int) -> int:
    """
    Tokens bought for a USDC amount at a fixed rate

    Args:
        usdc_amount: USDC in base units (6 decimals)
        fixed_rate: USDC base units per whole token (6 decimals)
        token_decimals: Token decimals

    Returns:
        Token amount in the token's base units (floored)
    """
    if fixed_rate <= 0:
        raise ValueError("Fixed rate must be positive")
    return usdc_amount * 10**token_decimals // fixed_rate


def scale_to_18(amount: int, decimals: int) -> int:
    """Normalize a native amount to 18 decimals"""
    if decimals <= SHARE_DECIMALS:
        return amount * 10**(SHARE_DECIMALS - decimals)
    return amount // 10**(decimals - SHARE_DECIMALS)


def scale_from_18(amount: int, decimals: int) -> int:
    """Convert an 18-decimal amount back to native decimals (floored)"""
    if decimals <= SHARE_DECIMALS:
        return amount // 10**(SHARE_DECIMALS - decimals)
    return amount * 10**(decimals - SHARE_DECIMALS)


def mfc_token_ratio(scaled_token_amount: int, initial_supply: int = INITIAL_MFC_SUPPLY) -> int:
    """18-decimal token amount backing one MFC"""
    return scaled_token_amount * ONE // initial_supply


def tokens_per_mfc(ratio: int, token_decimals: int) -> int:
    """Native token units held per whole MFC"""
    return scale_from_18(ratio, token_decimals)


def fund_balance_from_ratio(ratio: int, token_decimals: int, total_supply: int = INITIAL_MFC_SUPPLY) -> int:
    """
    Fund's token balance implied by a composition ratio

    Args:
        ratio: mfc_token_ratio() value
        token_decimals: Token decimals
        total_supply: MFC supply (18 decimals)

    Returns:
        Native token units
    """
    return scale_from_18(ratio * total_supply // ONE, token_decimals)


@dataclass
class AllocationPlan:
    """How an initial USDC deposit is split"""

    total_usdc: int
    reserve_usdc: int
    per_token_usdc: Dict[str, int]

    @property
    def allocated_usdc(self) -> int:
        return sum(self.per_token_usdc.values())


def initial_allocation(
    total_usdc: int = DEFAULT_TOTAL_USDC,
    allocations_bps: Optional[Dict[str, int]] = None,
    reserve_bps: int = DEFAULT_RESERVE_BPS
) -> AllocationPlan:
    """
    Split the initial deposit into a USDC reserve and per-token purchases

    Args:
        total_usdc: Deposit in USDC base units
        allocations_bps: Symbol -> allocation in basis points of the total
        reserve_bps: Share kept as USDC

    Returns:
        AllocationPlan
    """
    if allocations_bps is None:
        allocations_bps = {symbol: DEFAULT_TOKEN_ALLOCATION_BPS for symbol in DEFAULT_FIXED_RATES}

    if reserve_bps + sum(allocations_bps.values()) > BPS_DENOMINATOR:
        raise ValueError("Reserve plus token allocations exceed 100%")

    return AllocationPlan(
        total_usdc=total_usdc,
        reserve_usdc=total_usdc * reserve_bps // BPS_DENOMINATOR,
        per_token_usdc={
            symbol: total_usdc * bps // BPS_DENOMINATOR
            for symbol, bps in allocations_bps.items()
        },
    )


def expected_shares(usdc_amount: int, mfc_value: int) -> int:
    """
    MFC minted for an investment

    Args:
        usdc_amount: USDC base units invested
        mfc_value: USDC base units per whole MFC

    Returns:
        MFC in 18-decimal units
    """
    if mfc_value <= 0:
        return 0
    return usdc_amount * ONE // mfc_value


def expected_usdc(share_amount: int, mfc_value: int) -> int:
    """USDC base units returned for redeeming MFC (before fees)"""
    return share_amount * mfc_value // ONE


def nav_from_balances(usdc_balance: int, holdings: List[tuple]) -> int:
    """
    NAV in USDC base units

    Args:
        usdc_balance: Fund USDC balance
        holdings: (balance, decimals, fixed_rate) per token

    Returns:
        USDC base units
    """
    nav = usdc_balance
    for balance, decimals, fixed_rate in holdings:
        nav += balance * fixed_rate // 10**decimals
    return nav


def mfc_value(nav: int, total_supply: int) -> int:
    """USDC base units per whole MFC"""
    if total_supply <= 0:
        return 0
    return nav * ONE // total_supply


def management_fee(nav: int, fee_bps: int, elapsed_seconds: int) -> int:
    """Pro-rata management fee accrued over a period"""
    if elapsed_seconds <= 0:
        return 0
    return nav * fee_bps * elapsed_seconds // (BPS_DENOMINATOR * SECONDS_PER_YEAR)


def efficiency_pct(actual: int, expected: int) -> Decimal:
    """Actual as a percentage of expected, truncated to 0.01 (0 when nothing was expected)"""
    if expected == 0:
        return Decimal(0)
    return Decimal(actual * 10_000 // expected).scaleb(-2)


def oracle_price_to_fixed_rate(price: int, price_decimals: int = 8) -> int:
    """
    Convert a Chainlink answer to a fixed rate

    Args:
        price: Oracle answer (usually 8 decimals)
        price_decimals: Answer decimals

    Returns:
        USDC base units per whole token (6 decimals)
    """
    if price <= 0:
        raise ValueError(f"Oracle price must be positive, got {price}")

    if price_decimals >= USDC_DECIMALS:
        return price // 10**(price_decimals - USDC_DECIMALS)
    return price * 10**(USDC_DECIMALS - price_decimals)


@dataclass
class SpotCheckRow:
    """One token of the initial-allocation spot check"""

    symbol: str
    usdc_allocated: int
    fixed_rate: int
    decimals: int
    token_amount: int
    expected_token_amount: int
    scaled_amount: int
    ratio: int
    fund_balance: int

    @property
    def amount_matches(self) -> bool:
        return self.token_amount == self.expected_token_amount

    @property
    def balance_matches(self) -> bool:
        # Composition ratios truncate below 1e-6 of a token (18-decimal units)
        reconstructed = self.ratio * INITIAL_MFC_SUPPLY // ONE
        return 0 <= self.scaled_amount - reconstructed < INITIAL_MFC_SUPPLY // ONE

    @property
    def matches(self) -> bool:
        return self.amount_matches and self.balance_matches


def _decimal_floor(usdc_amount: int, fixed_rate: int, decimals: int) -> int:
    """Expected token amount computed through Decimal arithmetic"""
    with localcontext() as ctx:
        ctx.prec = 100
        whole_tokens = Decimal(usdc_amount) / Decimal(fixed_rate)
        return int((whole_tokens * Decimal(10) ** decimals).to_integral_value(rounding=ROUND_FLOOR))


def spot_check(
    total_usdc: int = DEFAULT_TOTAL_USDC,
    rates: Optional[Dict[str, tuple]] = None,
    allocation_bps: int = DEFAULT_TOKEN_ALLOCATION_BPS
) -> List[SpotCheckRow]:
    """
    Recompute the initial composition and check it against Decimal math

    Args:
        total_usdc: Initial deposit in USDC base units
        rates: Symbol -> (USDC per whole token, decimals)
        allocation_bps: Allocation per token

    Returns:
        One row per token
    """
    rates = rates or DEFAULT_FIXED_RATES
    plan = initial_allocation(total_usdc, {symbol: allocation_bps for symbol in rates})

    rows = []
    for symbol, (rate_usdc, decimals) in rates.items():
        fixed_rate = parse_units(rate_usdc, USDC_DECIMALS)
        usdc_allocated = plan.per_token_usdc[symbol]

        token_amount = token_amount_for_usdc(usdc_allocated, fixed_rate, decimals)
        scaled = scale_to_18(token_amount, decimals)
        ratio = mfc_token_ratio(scaled)

        rows.append(SpotCheckRow(
            symbol=symbol,
            usdc_allocated=usdc_allocated,
            fixed_rate=fixed_rate,
            decimals=decimals,
            token_amount=token_amount,
            expected_token_amount=_decimal_floor(usdc_allocated, fixed_rate, decimals),
            scaled_amount=scaled,
            ratio=ratio,
            fund_balance=fund_balance_from_ratio(ratio, decimals),
        ))

    return rows
