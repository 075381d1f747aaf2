"""
Exceptions
Error hierarchy shared by the deployment runner and fund tools
"""

from typing import Optional


class FundOpsError(Exception):
    """Base exception for all fund-ops errors"""

    pass


class ConfigurationError(FundOpsError, ValueError):
    """Raised when a required environment variable or config file is missing"""

    pass


class NetworkNotFoundError(FundOpsError, ValueError):
    """Raised when a network name is not present in config/networks.json"""

    pass


class RPCConnectionError(FundOpsError, ConnectionError):
    """Raised when the JSON-RPC endpoint cannot be reached or reports the wrong chain"""

    pass


class ArtifactNotFoundError(FundOpsError, FileNotFoundError):
    """Raised when a compiled Hardhat artifact is missing"""

    pass


class ManifestError(FundOpsError, ValueError):
    """Raised when a deployment manifest is malformed"""

    pass


class RecordNotFoundError(FundOpsError, FileNotFoundError):
    """Raised when no deployment record exists for a network"""

    pass


class ContractNotFoundError(FundOpsError, KeyError):
    """Raised when a contract name cannot be resolved in a deployment record"""

    def __str__(self):
        # KeyError quotes its message; keep it readable in logs
        return str(self.args[0]) if self.args else ""


class InsufficientFundsError(FundOpsError, RuntimeError):
    """Raised when a wallet cannot cover an amount even after faucet top-up"""

    pass


class OwnershipError(FundOpsError, PermissionError):
    """Raised when the signer does not own the contract it tries to configure"""

    pass


class TransactionFailedError(FundOpsError, RuntimeError):
    """Raised when a transaction reverts or is mined with status 0"""

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        category: Optional[str] = None
    ):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reason = reason
        self.category = category
