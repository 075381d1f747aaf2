"""
Network Session
Wires the RPC client, contracts and deployer wallet for one network
"""

from typing import Dict, Optional
from loguru import logger

from .contract_manager import ContractManager
from .transaction_builder import TransactionBuilder
from .wallet_manager import WalletManager
from utils.config_loader import get_network_config
from utils.exceptions import ConfigurationError
from utils.gas_calculator import GasCalculator
from utils.rpc_manager import RPCManager


class NetworkSession:
    """
    Connected view of one network

    The wallet and transaction builder are created on first use, so
    read-only commands work without a private key.
    """

    def __init__(self, network: str, network_config: Optional[Dict] = None, rpc_url: Optional[str] = None):
        """
        Initialize Network Session

        Args:
            network: Network name from config/networks.json
            network_config: Pre-loaded network config (loaded if None)
            rpc_url: Explicit RPC URL (resolved from env if None)
        """
        self.network = network
        self.config = network_config or get_network_config(network)
        self.rpc = RPCManager(network, self.config, rpc_url)
        self.w3 = self.rpc.get_web3()
        self.contracts = ContractManager(self.w3)

        self._wallet: Optional[WalletManager] = None
        self._tx_builder: Optional[TransactionBuilder] = None

    @property
    def chain_id(self) -> Optional[int]:
        return self.config.get('chain_id')

    @property
    def wallet(self) -> WalletManager:
        if self._wallet is None:
            self._wallet = WalletManager(
                self.w3,
                allow_node_accounts=self.config.get('use_node_accounts', False)
            )
        return self._wallet

    @property
    def tx_builder(self) -> TransactionBuilder:
        if self._tx_builder is None:
            self._tx_builder = TransactionBuilder(
                self.w3,
                self.wallet,
                gas_calculator=GasCalculator(self.w3, self.config.get('gas_settings')),
                chain_id=self.chain_id,
                explorer_tx_url=self.rpc.explorer_tx_url
            )
        return self._tx_builder

    def try_wallet(self) -> Optional[WalletManager]:
        """Wallet if one is configured, else None"""
        try:
            return self.wallet
        except ConfigurationError as e:
            logger.debug(f"No wallet available: {e}")
            return None
