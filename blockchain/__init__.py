"""
Blockchain Interaction Package
Handles contract artifacts, transaction building, nonces and the deployer wallet
"""

from .contract_manager import ContractManager
from .transaction_builder import TransactionBuilder
from .nonce_manager import NonceManager
from .wallet_manager import WalletManager
from .session import NetworkSession

__all__ = ['ContractManager', 'TransactionBuilder', 'NonceManager', 'WalletManager', 'NetworkSession']
