"""
RPC Manager
Connects to the JSON-RPC endpoint of a configured network
"""

from typing import Dict, Optional
from web3 import Web3
from loguru import logger

from .config_loader import get_network_config, resolve_rpc_url
from .exceptions import RPCConnectionError


class RPCManager:
    """
    Builds and validates a Web3 client for one named network

    The chain id reported by the node must match config/networks.json,
    so a Sepolia record is never written from a local node by mistake.
    """

    DEFAULT_TIMEOUT = 60

    def __init__(
        self,
        network: str,
        network_config: Optional[Dict] = None,
        rpc_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT
    ):
        """
        Initialize RPC Manager

        Args:
            network: Network name from config/networks.json
            network_config: Pre-loaded network config (loaded if None)
            rpc_url: Explicit RPC URL (resolved from env if None)
            timeout: HTTP request timeout in seconds
        """
        self.network = network
        self.config = network_config or get_network_config(network)
        self.rpc_url = rpc_url or resolve_rpc_url(self.config)
        self.timeout = timeout
        self._w3 = None

    def get_web3(self) -> Web3:
        """
        Get a connected Web3 instance (created on first use)

        Returns:
            Web3 instance

        Raises:
            RPCConnectionError: If the node is unreachable or on the wrong chain
        """
        if self._w3 is None:
            self._w3 = self._connect()
        return self._w3

    def _connect(self) -> Web3:
        """Create the HTTP provider and verify the chain"""
        w3 = Web3(Web3.HTTPProvider(
            self.rpc_url,
            request_kwargs={'timeout': self.timeout}
        ))

        if not w3.is_connected():
            raise RPCConnectionError(
                f"Failed to connect to {self.network} at {self._redacted_url()}"
            )

        chain_id = w3.eth.chain_id
        expected = self.config.get('chain_id')

        if expected is not None and chain_id != expected:
            raise RPCConnectionError(
                f"Chain id mismatch for {self.network}: node reports {chain_id}, "
                f"config expects {expected}"
            )

        logger.success(
            f"Connected to {self.config.get('chain_name', self.network)} "
            f"(chain {chain_id}, block {w3.eth.block_number})"
        )
        return w3

    def _redacted_url(self) -> str:
        """RPC URL with any API key path segment hidden"""
        if '://' not in self.rpc_url:
            return self.rpc_url

        scheme, rest = self.rpc_url.split('://', 1)
        host = rest.split('/', 1)[0]
        suffix = '/***' if '/' in rest.rstrip('/') else ''
        return f"{scheme}://{host}{suffix}"

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        """Block explorer link for a transaction, if the network has one"""
        base = self.config.get('block_explorer_url')
        if not base:
            return None
        return f"{base}/tx/{tx_hash}"

    def explorer_address_url(self, address: str) -> Optional[str]:
        """Block explorer link for an address, if the network has one"""
        base = self.config.get('block_explorer_url')
        if not base:
            return None
        return f"{base}/address/{address}"
