"""
Transaction Simulator
Preflights transactions with eth_call and classifies revert reasons
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union
from eth_abi import decode
from web3 import Web3
from web3.exceptions import ContractCustomError, ContractLogicError
from loguru import logger


ERROR_STRING_SELECTOR = "08c379a0"  # Error(string)
PANIC_SELECTOR = "4e487b71"  # Panic(uint256)

# OpenZeppelin v5 custom errors and the fund's own errors
KNOWN_CUSTOM_ERRORS = [
    "ERC20InsufficientBalance(address,uint256,uint256)",
    "ERC20InsufficientAllowance(address,uint256,uint256)",
    "EnforcedPause()",
    "OwnableUnauthorizedAccount(address)",
    "InvalidInitialization()",
    "InsufficientBalance()",
    "InsufficientAllowance()",
    "BelowMinimumInvestment()",
    "BelowMinimumRedemption()",
    "AlreadyInitialized()",
    "NotInitialized()",
    "UnsupportedToken()",
]

CUSTOM_ERROR_SELECTORS = {
    Web3.keccak(text=signature)[:4].hex().removeprefix("0x"): signature.split("(")[0]
    for signature in KNOWN_CUSTOM_ERRORS
}

# Ordered: first match wins
REVERT_CATEGORIES = [
    ("insufficient_allowance", ("insufficientallowance", "insufficient allowance", "exceeds allowance")),
    ("insufficient_balance", ("insufficientbalance", "insufficient balance", "exceeds balance")),
    ("paused", ("pausable: paused", "enforcedpause", "paused")),
    ("below_minimum", ("belowminimum", "below minimum", "minimum investment", "minimum redemption")),
    ("already_initialized", ("already initialized", "alreadyinitialized", "invalidinitialization")),
    ("not_initialized", ("not initialized", "notinitialized")),
    ("not_owner", ("not the owner", "ownableunauthorizedaccount", "unauthorized", "not authorized")),
    ("unsupported_token", ("unsupportedtoken", "not supported", "unsupported token")),
    ("price_feed", ("price feed", "stale price", "invalid price")),
]

CATEGORY_HINTS = {
    "insufficient_allowance": "USDC allowance to the fund is too low - approve first",
    "insufficient_balance": "Wallet balance is too low - mint test tokens first",
    "paused": "The fund is paused",
    "below_minimum": "Amount is below the fund's minimum investment/redemption",
    "already_initialized": "The fund is already initialized",
    "not_initialized": "The fund has not been initialized yet",
    "not_owner": "The signer is not the contract owner",
    "unsupported_token": "Token is not supported by the fund",
    "price_feed": "Price feed is missing or stale",
}


@dataclass
class SimulationResult:
    """Outcome of an eth_call preflight"""

    ok: bool
    reason: Optional[str] = None
    category: Optional[str] = None

    @property
    def hint(self) -> Optional[str]:
        return CATEGORY_HINTS.get(self.category) if self.category else None


def decode_revert_data(data: Union[str, bytes, None]) -> Optional[str]:
    """
    Decode raw revert data into a readable reason

    Args:
        data: Revert payload (hex string or bytes)

    Returns:
        Reason string, custom error name, or None if unknown
    """
    if not data:
        return None

    if isinstance(data, (bytes, bytearray)):
        hex_data = bytes(data).hex()
    else:
        hex_data = str(data).lower().removeprefix("0x")

    if len(hex_data) < 8:
        return None

    selector, payload = hex_data[:8], hex_data[8:]

    try:
        if selector == ERROR_STRING_SELECTOR:
            return decode(['string'], bytes.fromhex(payload))[0]

        if selector == PANIC_SELECTOR:
            code = decode(['uint256'], bytes.fromhex(payload))[0]
            return f"Panic(0x{code:02x})"
    except Exception as e:
        logger.debug(f"Could not decode revert payload: {e}")
        return None

    return CUSTOM_ERROR_SELECTORS.get(selector)


def classify_revert(reason: Optional[str]) -> Optional[str]:
    """
    Map a revert reason to a category

    Args:
        reason: Revert reason or error message

    Returns:
        Category name or None
    """
    if not reason:
        return None

    text = reason.lower()
    for category, needles in REVERT_CATEGORIES:
        if any(needle in text for needle in needles):
            return category

    return None


def describe_error(error: Exception) -> SimulationResult:
    """
    Extract reason and category from a web3 exception

    Args:
        error: Exception raised by eth_call / send / estimate_gas

    Returns:
        SimulationResult with ok=False
    """
    reason = None

    if isinstance(error, (ContractLogicError, ContractCustomError)):
        reason = decode_revert_data(getattr(error, 'data', None))
        if reason is None:
            reason = getattr(error, 'message', None)

    if reason is None:
        reason = str(error)

    return SimulationResult(ok=False, reason=reason, category=classify_revert(reason))


class TransactionSimulator:
    """
    Simulates transactions to predict success/failure
    Uses eth_call, so nothing is mined and no gas is spent
    """

    def __init__(self, w3: Web3):
        """
        Initialize Transaction Simulator

        Args:
            w3: Web3 instance
        """
        self.w3 = w3

    def simulate_transaction(self, tx: Dict) -> SimulationResult:
        """
        Simulate transaction execution

        Args:
            tx: Transaction dict (needs 'from', 'to', 'data')

        Returns:
            SimulationResult
        """
        call = {key: tx[key] for key in ('from', 'to', 'data', 'value') if key in tx}

        try:
            self.w3.eth.call(call)
            return SimulationResult(ok=True)
        except Exception as e:
            result = describe_error(e)
            logger.warning(f"Simulation reverted: {result.reason}")
            if result.hint:
                logger.info(f"  Hint: {result.hint}")
            return result

    def simulate_function(self, contract_function, sender: str) -> SimulationResult:
        """
        Simulate a bound contract function call

        Args:
            contract_function: e.g. fund.functions.invest(amount)
            sender: Address the call is made from

        Returns:
            SimulationResult
        """
        try:
            contract_function.call({'from': sender})
            return SimulationResult(ok=True)
        except Exception as e:
            result = describe_error(e)
            logger.warning(f"Simulation reverted: {result.reason}")
            if result.hint:
                logger.info(f"  Hint: {result.hint}")
            return result
