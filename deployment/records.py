"""
Deployment Records
Typed record of deployed addresses per network, and its on-disk store
"""

import os
import re
import json
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from web3 import Web3
from loguru import logger

from utils.config_loader import get_deployments_dir
from utils.exceptions import ContractNotFoundError, RecordNotFoundError

SCHEMA_VERSION = 1

# camelCase keys written by older deployment scripts
LEGACY_TO_CANONICAL = {
    "mockUSDC": "MockUSDC",
    "mockWETH": "MockWETH",
    "mockWBTC": "MockWBTC",
    "mockLINK": "MockLINK",
    "mockDAI": "MockDAI",
    "mockUNI": "MockUNI",
    "mockFund": "MockFund",
    "mockTokensFactory": "MockTokensFactory",
    "fundShareToken": "FundShareToken",
    "shareToken": "FundShareToken",
    "chainlinkPriceOracle": "ChainlinkPriceOracle",
    "priceOracle": "ChainlinkPriceOracle",
    "PriceOracle": "ChainlinkPriceOracle",
    "uniswapIntegration": "UniswapIntegration",
    "fixedRateMockFund": "FixedRateMockFund",
    "fixedRateUniswapIntegration": "FixedRateUniswapIntegration",
}

# Keys that are never contract addresses in legacy layouts
METADATA_KEYS = {
    "schemaVersion", "network", "chainId", "deployer", "timestamp", "deploymentTime",
    "manifest", "description", "notes", "note", "priceOracleType", "contracts", "tokens",
    "feeConfig", "stepsCompleted", "gasUsed",
}

MOCK_TOKEN_PATTERN = re.compile(r"^Mock([A-Z0-9]{2,})$")


def canonical_name(name: str) -> str:
    """Map a legacy contract key to its canonical name"""
    return LEGACY_TO_CANONICAL.get(name, name)


def checksum(name: str, value: Any) -> str:
    """
    Validate and checksum an address field

    Raises:
        ValueError: If the value is not an address
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"Invalid address for {name}: {value!r}")
    return Web3.to_checksum_address(value)


def token_symbol_for(contract_name: str) -> Optional[str]:
    """'MockWETH' -> 'WETH'; None for non-token names"""
    match = MOCK_TOKEN_PATTERN.match(contract_name)
    return match.group(1) if match else None


@dataclass
class DeploymentRecord:
    """Addresses and progress of a deployment on one network"""

    network: str
    chain_id: Optional[int] = None
    deployer: Optional[str] = None
    timestamp: Optional[str] = None
    manifest: Optional[str] = None
    description: Optional[str] = None
    contracts: Dict[str, str] = field(default_factory=dict)
    tokens: Dict[str, str] = field(default_factory=dict)
    fee_config: Dict[str, Any] = field(default_factory=dict)
    steps_completed: List[str] = field(default_factory=list)
    gas_used: Dict[str, int] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        """Address for a contract name, legacy name or token symbol (None if unknown)"""
        if name in self.contracts:
            return self.contracts[name]

        canonical = canonical_name(name)
        if canonical in self.contracts:
            return self.contracts[canonical]

        if name in self.tokens:
            return self.tokens[name]

        return self.tokens.get(name.upper())

    def address_of(self, name: str) -> str:
        """
        Resolve an address

        Args:
            name: Canonical name ('MockUSDC'), legacy name ('mockUSDC') or token symbol ('WETH')

        Returns:
            Checksummed address

        Raises:
            ContractNotFoundError: If the name is not in the record
        """
        address = self.get(name)
        if address is None:
            raise ContractNotFoundError(
                f"'{name}' is not in the {self.network} deployment record "
                f"(known: {', '.join(sorted(self.contracts)) or 'none'})"
            )
        return address

    def set_contract(
        self,
        name: str,
        address: str,
        token_symbol: Optional[str] = None,
        gas_used: Optional[int] = None
    ):
        """Record a contract address (and its token symbol for mock tokens)"""
        name = canonical_name(name)
        address = checksum(name, address)
        self.contracts[name] = address

        token_symbol = token_symbol or token_symbol_for(name)
        if token_symbol:
            self.tokens[token_symbol] = address

        if gas_used is not None:
            self.gas_used[name] = int(gas_used)

    def is_step_completed(self, step_id: str) -> bool:
        return step_id in self.steps_completed

    def mark_step(self, step_id: str):
        if step_id not in self.steps_completed:
            self.steps_completed.append(step_id)

    def unmark_step(self, step_id: str):
        if step_id in self.steps_completed:
            self.steps_completed.remove(step_id)

    def reset(self):
        """Forget contracts and progress (fresh deployment)"""
        self.contracts.clear()
        self.tokens.clear()
        self.steps_completed.clear()
        self.gas_used.clear()

    def all_addresses(self) -> Dict[str, str]:
        """Contracts followed by token symbols not already listed"""
        addresses = dict(self.contracts)
        for symbol, address in self.tokens.items():
            if address not in self.contracts.values():
                addresses[symbol] = address
        return addresses

    def to_dict(self) -> Dict[str, Any]:
        """Canonical on-disk layout"""
        return {
            "schemaVersion": SCHEMA_VERSION,
            "network": {"name": self.network, "chainId": self.chain_id},
            "deployer": self.deployer,
            "timestamp": self.timestamp,
            "manifest": self.manifest,
            "description": self.description,
            "contracts": dict(self.contracts),
            "tokens": dict(self.tokens),
            "feeConfig": dict(self.fee_config),
            "stepsCompleted": list(self.steps_completed),
            "gasUsed": dict(self.gas_used),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], network: Optional[str] = None) -> "DeploymentRecord":
        """
        Parse a record, normalizing legacy layouts

        Accepted layouts:
        - canonical: {schemaVersion, network: {name, chainId}, contracts, tokens, ...}
        - nested tokens: {contracts: {MockUSDC, ..., tokens: {WETH, ...}}}
        - flat: {MockUSDC: "0x...", MockFund: "0x..."}
        - camelCase: {network: "localhost", mockUSDC: "0x...", tokens: {...}}

        Args:
            data: Parsed JSON document
            network: Network name to use if the document has none

        Returns:
            DeploymentRecord

        Raises:
            ValueError: If an address field holds a non-address
        """
        if not isinstance(data, dict):
            raise ValueError("Deployment record must be a JSON object")

        network_field = data.get("network")
        chain_id = data.get("chainId")

        if isinstance(network_field, dict):
            network_name = network_field.get("name")
            chain_id = network_field.get("chainId", chain_id)
        else:
            network_name = network_field

        network_name = network_name or network
        if not network_name:
            raise ValueError("Deployment record does not name its network")

        deployer = data.get("deployer")
        if deployer is not None and not Web3.is_address(deployer):
            logger.warning(f"Ignoring invalid deployer field: {deployer!r}")
            deployer = None

        record = cls(
            network=network_name,
            chain_id=int(chain_id) if chain_id is not None else None,
            deployer=Web3.to_checksum_address(deployer) if deployer else None,
            timestamp=data.get("timestamp") or data.get("deploymentTime"),
            manifest=data.get("manifest"),
            description=data.get("description") or data.get("notes") or data.get("note"),
            fee_config=dict(data.get("feeConfig") or {}),
            steps_completed=list(data.get("stepsCompleted") or []),
        )

        contracts = dict(data.get("contracts") or {})
        nested_tokens = contracts.pop("tokens", None) or {}

        # Flat and camelCase layouts keep addresses at the top level
        for key, value in data.items():
            if key in METADATA_KEYS or not isinstance(value, str):
                continue
            if not Web3.is_address(value):
                logger.warning(f"Ignoring non-address field {key}: {value!r}")
                continue
            contracts.setdefault(key, value)

        for name, address in contracts.items():
            record.set_contract(name, address)

        for source in (nested_tokens, data.get("tokens") or {}):
            for symbol, address in source.items():
                record.tokens[symbol] = checksum(symbol, address)

        for name, gas in (data.get("gasUsed") or {}).items():
            record.gas_used[canonical_name(name)] = int(gas)

        return record


class DeploymentStore:
    """
    Loads and saves records under deployments/<network>.json
    """

    def __init__(self, deployments_dir: Optional[Path] = None):
        """
        Initialize Deployment Store

        Args:
            deployments_dir: Records directory (env/default if None)
        """
        self.deployments_dir = Path(deployments_dir or get_deployments_dir())

    def path_for(self, network: str) -> Path:
        return self.deployments_dir / f"{network}.json"

    def exists(self, network: str) -> bool:
        return self.path_for(network).exists()

    def load(self, network: str) -> DeploymentRecord:
        """
        Load the record for a network

        Raises:
            RecordNotFoundError: If no record file exists
        """
        path = self.path_for(network)
        if not path.exists():
            raise RecordNotFoundError(
                f"No deployment record for {network} at {path} (run 'python main.py deploy' first)"
            )
        return self.load_file(path, network)

    def load_file(self, path: Path, network: Optional[str] = None) -> DeploymentRecord:
        """Parse any record file (canonical or legacy layout)"""
        with open(path, 'r') as f:
            data = json.load(f)
        return DeploymentRecord.from_dict(data, network)

    def load_or_create(self, network: str, chain_id: Optional[int] = None) -> DeploymentRecord:
        """Load the record, or start an empty one"""
        if self.exists(network):
            return self.load(network)

        logger.info(f"No existing record for {network}, starting a new one")
        return DeploymentRecord(network=network, chain_id=chain_id)

    def save(self, record: DeploymentRecord) -> Path:
        """
        Write a record atomically (temp file + rename)

        Returns:
            Path of the record file
        """
        self.deployments_dir.mkdir(parents=True, exist_ok=True)
        record.timestamp = datetime.now(timezone.utc).isoformat()

        path = self.path_for(record.network)
        fd, tmp_path = tempfile.mkstemp(dir=self.deployments_dir, prefix=f".{record.network}.", suffix=".tmp")

        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(record.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug(f"Deployment record saved to {path}")
        return path

    def list_networks(self) -> List[str]:
        """Networks that have a record"""
        if not self.deployments_dir.exists():
            return []
        return sorted(p.stem for p in self.deployments_dir.glob("*.json"))

    def patch(self, network: str, addresses: Dict[str, str], chain_id: Optional[int] = None) -> DeploymentRecord:
        """
        Record manually discovered addresses into a network's record

        Args:
            network: Network name
            addresses: Contract name (or token symbol) -> address

        Returns:
            Updated record
        """
        record = self.load_or_create(network, chain_id)

        for name, address in addresses.items():
            if name.isupper():
                record.tokens[name] = checksum(name, address)
            else:
                record.set_contract(name, address)
            logger.info(f"  {name}: {address}")

        self.save(record)
        logger.success(f"✓ Patched {len(addresses)} address(es) into {self.path_for(network)}")
        return record

    def import_file(self, path: Path, network: Optional[str] = None) -> DeploymentRecord:
        """
        Import a legacy record file and rewrite it in the canonical layout

        Args:
            path: Legacy JSON file
            network: Network name if the file has none

        Returns:
            Imported record (saved under the record's network)
        """
        imported = self.load_file(Path(path), network)

        if self.exists(imported.network):
            record = self.load(imported.network)
            record.contracts.update(imported.contracts)
            record.tokens.update(imported.tokens)
            record.gas_used.update(imported.gas_used)
            for step_id in imported.steps_completed:
                record.mark_step(step_id)
        else:
            record = imported

        self.save(record)
        logger.success(f"✓ Imported {len(imported.contracts)} contract(s) from {path}")
        return record
