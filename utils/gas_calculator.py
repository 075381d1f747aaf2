"""
Gas Calculator
Fee parameters and gas limits for deployment and setup transactions
"""

from decimal import Decimal
from typing import Dict, Optional
from web3 import Web3
from loguru import logger


class GasCalculator:
    """
    Picks EIP-1559 or legacy fee fields depending on the chain,
    capped by the network's configured maximum
    """

    GAS_BUFFER = 1.2

    def __init__(self, w3: Web3, gas_settings: Optional[Dict] = None):
        """
        Initialize Gas Calculator

        Args:
            w3: Web3 instance
            gas_settings: 'gas_settings' block from config/networks.json
        """
        self.w3 = w3
        gas_settings = gas_settings or {}

        self.max_gas_price_gwei = gas_settings.get('max_gas_price_gwei', 100)
        self.priority_fee_gwei = gas_settings.get('priority_fee_gwei', 1)
        self.default_gas_limit = gas_settings.get('default_gas_limit', 6000000)

    def get_fee_params(self) -> Dict[str, int]:
        """
        Get fee fields for a transaction

        Returns:
            {'maxFeePerGas', 'maxPriorityFeePerGas'} on EIP-1559 chains,
            {'gasPrice'} otherwise
        """
        max_allowed_wei = self.w3.to_wei(self.max_gas_price_gwei, 'gwei')
        latest_block = self.w3.eth.get_block('latest')
        base_fee_wei = latest_block.get('baseFeePerGas')

        if base_fee_wei is None:
            gas_price_wei = min(self.w3.eth.gas_price, max_allowed_wei)
            logger.debug(f"Legacy gas price: {self.w3.from_wei(gas_price_wei, 'gwei')} gwei")
            return {'gasPrice': int(gas_price_wei)}

        priority_fee_wei = self.w3.to_wei(self.priority_fee_gwei, 'gwei')

        # Max fee = base fee * 2 + tip, enough headroom for a few full blocks
        max_fee_wei = min((base_fee_wei * 2) + priority_fee_wei, max_allowed_wei)
        priority_fee_wei = min(priority_fee_wei, max_fee_wei)

        return {
            'maxFeePerGas': int(max_fee_wei),
            'maxPriorityFeePerGas': int(priority_fee_wei)
        }

    def estimate_gas(self, estimate_fn, description: str = "transaction") -> int:
        """
        Estimate a gas limit with a 20% buffer

        Args:
            estimate_fn: Zero-arg callable returning the raw estimate
            description: Label for logs

        Returns:
            Buffered gas limit, or the configured default if estimation fails
        """
        try:
            gas_estimate = estimate_fn()
            gas_limit = int(gas_estimate * self.GAS_BUFFER)
            logger.debug(f"Gas estimate for {description}: {gas_estimate} -> {gas_limit}")
            return gas_limit
        except Exception as e:
            logger.warning(f"Gas estimation failed for {description}: {e}, using default")
            return self.default_gas_limit

    def estimate_cost_eth(self, gas_limit: int, fee_params: Dict[str, int]) -> Decimal:
        """
        Worst-case cost of a transaction in ETH

        Args:
            gas_limit: Gas limit
            fee_params: Output of get_fee_params()

        Returns:
            Cost in ETH
        """
        price_wei = fee_params.get('maxFeePerGas', fee_params.get('gasPrice', 0))
        return Decimal(self.w3.from_wei(gas_limit * price_wei, 'ether'))
