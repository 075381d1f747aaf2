"""
Wallet Manager
Handles the deployer identity used to sign and send transactions
"""

import os
from typing import Dict, Optional
from decimal import Decimal
from web3 import Web3
from eth_account import Account
from loguru import logger
from dotenv import load_dotenv

from .abis import ERC20_ABI
from utils.exceptions import ConfigurationError
from utils.units import to_decimal

load_dotenv()


class WalletManager:
    """
    Deployer wallet for one network:
    - Local key: PRIVATE_KEY from .env, transactions signed in-process
    - Node account: first unlocked account of a local Hardhat node
    """

    def __init__(
        self,
        w3: Web3,
        private_key: Optional[str] = None,
        allow_node_accounts: bool = False
    ):
        """
        Initialize wallet manager

        Args:
            w3: Web3 instance
            private_key: Hex private key (read from PRIVATE_KEY if None)
            allow_node_accounts: Use the node's unlocked account when no key is set

        Raises:
            ConfigurationError: If no key is available and node accounts are not allowed
        """
        self.w3 = w3
        private_key = private_key or os.getenv('PRIVATE_KEY')

        if private_key:
            self.account = Account.from_key(private_key)
            self.address = self.account.address
            self.uses_node_account = False
        elif allow_node_accounts:
            accounts = w3.eth.accounts
            if not accounts:
                raise ConfigurationError("Node exposes no unlocked accounts and PRIVATE_KEY is not set")
            self.account = None
            self.address = Web3.to_checksum_address(accounts[0])
            self.uses_node_account = True
        else:
            raise ConfigurationError("PRIVATE_KEY must be set in .env for this network")

        source = "node account" if self.uses_node_account else "local key"
        logger.info(f"Deployer wallet: {self.address} ({source})")

    def sign_transaction(self, transaction: Dict):
        """
        Sign a transaction with the local key

        Args:
            transaction: Transaction dict

        Returns:
            Signed transaction
        """
        if self.account is None:
            raise ConfigurationError("Node accounts sign on the node; no local key to sign with")

        return self.account.sign_transaction(transaction)

    def get_native_balance(self, address: Optional[str] = None) -> Decimal:
        """
        Get native ETH balance

        Args:
            address: Account to query (deployer if None)

        Returns:
            Balance in ETH
        """
        address = Web3.to_checksum_address(address or self.address)
        balance_wei = self.w3.eth.get_balance(address)
        return Decimal(str(self.w3.from_wei(balance_wei, 'ether')))

    def get_token_balance(self, token_address: str, address: Optional[str] = None) -> int:
        """
        Get ERC20 balance in base units

        Args:
            token_address: ERC20 token address
            address: Account to query (deployer if None)

        Returns:
            Raw balance
        """
        token = self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )
        return token.functions.balanceOf(
            Web3.to_checksum_address(address or self.address)
        ).call()

    def get_token_balance_units(
        self,
        token_address: str,
        decimals: int,
        address: Optional[str] = None
    ) -> Decimal:
        """ERC20 balance in whole tokens"""
        return to_decimal(self.get_token_balance(token_address, address), decimals)
