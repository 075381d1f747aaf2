"""
Token Faucet
Mints mock tokens and tops up the deployer before funding operations
"""

import math
from typing import Optional
from loguru import logger

from utils.exceptions import InsufficientFundsError, TransactionFailedError
from utils.units import format_units


class TokenFaucet:
    """
    Uses the mock tokens' getLargeAmount() faucet and owner-only mint()
    """

    def __init__(self, contract_manager, tx_builder):
        """
        Initialize Token Faucet

        Args:
            contract_manager: ContractManager for token instances
            tx_builder: TransactionBuilder for the deployer wallet
        """
        self.contract_manager = contract_manager
        self.tx_builder = tx_builder

    @property
    def deployer(self) -> str:
        return self.tx_builder.sender

    def balance_of(self, token_address: str, account: Optional[str] = None) -> int:
        token = self.contract_manager.erc20(token_address)
        return token.functions.balanceOf(account or self.deployer).call()

    def mint(self, token_address: str, recipient: str, amount: int, symbol: str = "tokens", decimals: int = 18):
        """
        Mint tokens to a recipient (deployer must own the mock token)

        Args:
            token_address: Mock token address
            recipient: Receiver
            amount: Base units
            symbol: Label for logs
            decimals: Token decimals for logs

        Returns:
            Transaction receipt
        """
        token = self.contract_manager.erc20(token_address)
        receipt = self.tx_builder.transact(
            token.functions.mint(recipient, amount),
            f"Mint {format_units(amount, decimals)} {symbol}"
        )
        logger.success(f"✓ Minted {format_units(amount, decimals)} {symbol} to {recipient}")
        return receipt

    def request_large_amount(self, token_address: str, times: int) -> int:
        """
        Call getLargeAmount() repeatedly

        Returns:
            Number of successful calls
        """
        token = self.contract_manager.erc20(token_address)

        for i in range(times):
            logger.info(f"  getLargeAmount() {i + 1}/{times}")
            self.tx_builder.transact(token.functions.getLargeAmount(), "getLargeAmount")

        return times

    def ensure_balance(
        self,
        token_address: str,
        required: int,
        chunk: Optional[int] = None,
        symbol: str = "USDC",
        decimals: int = 6
    ) -> int:
        """
        Make sure the deployer holds `required` tokens

        Tries getLargeAmount() ceil(required / chunk) times, then mint() for
        any shortfall. If the balance is still short but non-zero, the
        available balance is returned instead.

        Args:
            token_address: Mock token address
            required: Amount needed in base units
            chunk: Amount one getLargeAmount() call yields (skipped if None)
            symbol: Label for logs
            decimals: Token decimals for logs

        Returns:
            Amount that can be used (required, or the lower available balance)

        Raises:
            InsufficientFundsError: If the balance stays at zero
        """
        balance = self.balance_of(token_address)
        logger.info(f"Deployer {symbol} balance: {format_units(balance, decimals)}")

        if balance >= required:
            return required

        logger.info(f"{symbol} balance too low, requesting test tokens...")

        try:
            if chunk:
                times = math.ceil(required / chunk)
                logger.info(f"Calling getLargeAmount {times} time(s) for {format_units(required, decimals)} {symbol}")
                self.request_large_amount(token_address, times)
                balance = self.balance_of(token_address)

            if balance < required:
                self.mint(token_address, self.deployer, required - balance, symbol, decimals)
        except TransactionFailedError as e:
            logger.warning(f"Could not obtain {symbol}: {e}")

        balance = self.balance_of(token_address)
        logger.info(f"Deployer {symbol} balance now: {format_units(balance, decimals)}")

        if balance >= required:
            return required

        if balance == 0:
            raise InsufficientFundsError(f"No {symbol} balance and the faucet could not provide any")

        logger.warning(
            f"Balance still short, continuing with {format_units(balance, decimals)} {symbol} "
            f"instead of {format_units(required, decimals)}"
        )
        return balance
