"""
Contract Manager
Loads Hardhat artifacts, attaches to and deploys contracts
"""

import json
from pathlib import Path
from typing import Dict, List, Optional
from web3 import Web3
from loguru import logger

from .abis import MINIMAL_ABIS, MOCK_TOKEN_ABI
from utils.config_loader import get_artifacts_dir
from utils.exceptions import ArtifactNotFoundError


class ContractManager:
    """
    Manages contract artifacts and instances
    """

    def __init__(self, w3: Web3, artifacts_dir: Optional[Path] = None):
        """
        Initialize Contract Manager

        Args:
            w3: Web3 instance
            artifacts_dir: Hardhat artifacts directory (env/default if None)
        """
        self.w3 = w3
        self.artifacts_dir = Path(artifacts_dir or get_artifacts_dir())
        self._artifacts: Dict[str, Dict] = {}

        if not self.artifacts_dir.exists():
            logger.warning(f"Artifacts directory {self.artifacts_dir} not found - attach-only mode")

    def find_artifact(self, name: str) -> Optional[Path]:
        """
        Locate artifacts/contracts/**/<name>.json

        Args:
            name: Contract name

        Returns:
            Path or None
        """
        contracts_dir = self.artifacts_dir / "contracts"
        if not contracts_dir.exists():
            return None

        for path in sorted(contracts_dir.rglob(f"{name}.json")):
            if not path.name.endswith(".dbg.json"):
                return path

        return None

    def load_artifact(self, name: str) -> Dict:
        """
        Load a compiled artifact (abi + bytecode)

        Args:
            name: Contract name

        Returns:
            Artifact dict

        Raises:
            ArtifactNotFoundError: If no artifact is compiled for the name
        """
        if name in self._artifacts:
            return self._artifacts[name]

        path = self.find_artifact(name)
        if path is None:
            raise ArtifactNotFoundError(
                f"Artifact for {name} not found under {self.artifacts_dir / 'contracts'} "
                f"(run 'npx hardhat compile')"
            )

        with open(path, 'r') as f:
            artifact = json.load(f)

        self._artifacts[name] = artifact
        logger.debug(f"Loaded artifact {name} from {path}")
        return artifact

    def get_abi(self, name: str) -> List[Dict]:
        """
        Get an ABI, preferring compiled artifacts

        Falls back to the minimal ABIs when artifacts are not available
        """
        try:
            return self.load_artifact(name)['abi']
        except ArtifactNotFoundError:
            if name in MINIMAL_ABIS:
                logger.debug(f"Using minimal ABI for {name}")
                return MINIMAL_ABIS[name]
            raise

    def attach(self, name: str, address: str):
        """
        Get a contract instance at an address

        Args:
            name: Contract/artifact name (selects the ABI)
            address: Deployed address

        Returns:
            Contract instance
        """
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_abi(name)
        )

    def erc20(self, address: str):
        """Mock ERC20 instance (balanceOf, approve, mint, faucet)"""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=MOCK_TOKEN_ABI
        )

    def has_code(self, address: Optional[str]) -> bool:
        """Whether an address holds contract code"""
        if not address:
            return False
        code = self.w3.eth.get_code(Web3.to_checksum_address(address))
        return len(code) > 0

    def deploy(self, name: str, args: List, tx_builder):
        """
        Deploy a contract from its artifact

        Args:
            name: Artifact name
            args: Constructor arguments
            tx_builder: TransactionBuilder used to send

        Returns:
            Tuple of (contract instance, receipt)
        """
        artifact = self.load_artifact(name)
        bytecode = artifact.get('bytecode')

        if not bytecode or bytecode == '0x':
            raise ArtifactNotFoundError(f"Artifact for {name} has no bytecode (abstract or interface?)")

        factory = self.w3.eth.contract(abi=artifact['abi'], bytecode=bytecode)
        receipt = tx_builder.deploy(factory, args, f"Deploy {name}")

        address = Web3.to_checksum_address(receipt['contractAddress'])
        logger.success(f"✓ {name} deployed at {address} (gas used: {receipt['gasUsed']})")

        contract = self.w3.eth.contract(address=address, abi=artifact['abi'])
        return contract, receipt
