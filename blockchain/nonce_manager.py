"""
Nonce Manager
Handles transaction nonce sequencing for the deployer wallet
"""

from typing import Optional
from web3 import Web3
from loguru import logger


class NonceManager:
    """
    Manages transaction nonces for the deployer wallet
    Ensures sequential nonce allocation across a deployment run
    """

    def __init__(self, w3: Web3, address: str):
        """
        Initialize Nonce Manager

        Args:
            w3: Web3 instance
            address: Wallet address
        """
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)

        self.current_nonce: Optional[int] = None
        self.pending_nonces = set()

        self._sync_nonce()

        logger.debug(f"Nonce Manager initialized with nonce: {self.current_nonce}")

    def _sync_nonce(self):
        """Sync nonce with blockchain (confirmed + pending)"""
        self.current_nonce = self.w3.eth.get_transaction_count(self.address, 'pending')
        logger.debug(f"Nonce synced: {self.current_nonce}")

    def get_nonce(self) -> int:
        """
        Get next available nonce

        Returns:
            Next nonce to use
        """
        if self.current_nonce is None:
            self._sync_nonce()

        nonce = self.current_nonce
        self.current_nonce += 1
        self.pending_nonces.add(nonce)

        logger.debug(f"Allocated nonce: {nonce}")
        return nonce

    def confirm_nonce(self, nonce: int):
        """
        Mark a nonce as mined

        Args:
            nonce: Nonce that was confirmed
        """
        self.pending_nonces.discard(nonce)

    def reset_nonce(self):
        """Reset nonce from blockchain (after a failed send)"""
        self._sync_nonce()
        self.pending_nonces.clear()
        logger.warning(f"Nonce reset to: {self.current_nonce}")

    def get_pending_count(self) -> int:
        """Get count of unconfirmed nonces"""
        return len(self.pending_nonces)

    def get_current_nonce(self) -> int:
        """Get current nonce (without incrementing)"""
        if self.current_nonce is None:
            self._sync_nonce()
        return self.current_nonce
