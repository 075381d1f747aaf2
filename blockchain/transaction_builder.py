"""
Transaction Builder
Builds, signs and sends deployment and contract-call transactions
"""

from typing import Callable, Dict, Optional
from web3 import Web3
from loguru import logger

from .nonce_manager import NonceManager
from utils.exceptions import TransactionFailedError
from utils.gas_calculator import GasCalculator
from utils.simulation import TransactionSimulator, describe_error


class TransactionBuilder:
    """
    Sends transactions for the deployer wallet, one at a time,
    waiting for each receipt before returning
    """

    RECEIPT_TIMEOUT = 180

    def __init__(
        self,
        w3: Web3,
        wallet_manager,
        gas_calculator: Optional[GasCalculator] = None,
        nonce_manager: Optional[NonceManager] = None,
        chain_id: Optional[int] = None,
        explorer_tx_url: Optional[Callable[[str], Optional[str]]] = None
    ):
        """
        Initialize Transaction Builder

        Args:
            w3: Web3 instance
            wallet_manager: Wallet manager for address and signing
            gas_calculator: Fee/gas helper (default settings if None)
            nonce_manager: Nonce allocator (synced from chain if None)
            chain_id: Chain id (read from node if None)
            explorer_tx_url: tx hash -> block explorer link (None on local chains)
        """
        self.w3 = w3
        self.wallet_manager = wallet_manager
        self.gas_calculator = gas_calculator or GasCalculator(w3)
        self.nonce_manager = nonce_manager or NonceManager(w3, wallet_manager.address)
        self.chain_id = chain_id if chain_id is not None else w3.eth.chain_id
        self.simulator = TransactionSimulator(w3)
        self.explorer_tx_url = explorer_tx_url

    @property
    def sender(self) -> str:
        return self.wallet_manager.address

    def build_tx(self, buildable, description: str = "transaction", value: int = 0) -> Dict:
        """
        Build a transaction dict for a contract function or constructor

        Args:
            buildable: Bound function (contract.functions.f(...)) or
                constructor (factory.constructor(...))
            description: Label for logs
            value: Wei to send

        Returns:
            Transaction dict ready to sign
        """
        base = {'from': self.sender, 'value': value}

        gas_limit = self.gas_calculator.estimate_gas(
            lambda: buildable.estimate_gas(base),
            description
        )

        tx_params = {
            **base,
            'chainId': self.chain_id,
            'gas': gas_limit,
            'nonce': self.nonce_manager.get_nonce(),
            **self.gas_calculator.get_fee_params()
        }

        return buildable.build_transaction(tx_params)

    def send(self, tx: Dict, description: str = "transaction"):
        """
        Sign (or hand to the node), send and wait for the receipt

        Args:
            tx: Built transaction dict
            description: Label for logs

        Returns:
            Transaction receipt

        Raises:
            TransactionFailedError: If sending fails or the transaction reverts
        """
        try:
            if self.wallet_manager.uses_node_account:
                tx_hash = self.w3.eth.send_transaction(tx)
            else:
                signed_tx = self.wallet_manager.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            self.nonce_manager.reset_nonce()
            result = describe_error(e)
            raise TransactionFailedError(
                f"{description} could not be sent: {result.reason}",
                reason=result.reason,
                category=result.category
            ) from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"  ⏳ {description}: {tx_hash_hex}")
        link = self.explorer_tx_url(tx_hash_hex) if self.explorer_tx_url else None
        if link:
            logger.info(f"     {link}")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.RECEIPT_TIMEOUT)
        self.nonce_manager.confirm_nonce(tx.get('nonce'))

        if receipt['status'] != 1:
            raise TransactionFailedError(
                f"{description} reverted in block {receipt['blockNumber']}",
                tx_hash=tx_hash_hex
            )

        logger.debug(f"{description} mined in block {receipt['blockNumber']}, gas used {receipt['gasUsed']}")
        return receipt

    def transact(self, contract_function, description: str = "transaction", preflight: bool = True):
        """
        Execute a state-changing contract function

        Args:
            contract_function: Bound function, e.g. fund.functions.invest(amount)
            description: Label for logs
            preflight: Run an eth_call first and fail fast on revert

        Returns:
            Transaction receipt

        Raises:
            TransactionFailedError: If the preflight or the transaction reverts
        """
        if preflight:
            result = self.simulator.simulate_function(contract_function, self.sender)
            if not result.ok:
                message = f"{description} would revert: {result.reason}"
                if result.hint:
                    message += f" ({result.hint})"
                raise TransactionFailedError(message, reason=result.reason, category=result.category)

        tx = self.build_tx(contract_function, description)
        return self.send(tx, description)

    def deploy(self, factory, args, description: str = "deployment"):
        """
        Deploy a contract

        Args:
            factory: Contract factory (w3.eth.contract(abi=..., bytecode=...))
            args: Constructor arguments
            description: Label for logs

        Returns:
            Transaction receipt (contractAddress set)
        """
        tx = self.build_tx(factory.constructor(*args), description)
        receipt = self.send(tx, description)

        if not receipt.get('contractAddress'):
            raise TransactionFailedError(
                f"{description} produced no contract address",
                tx_hash=Web3.to_hex(receipt['transactionHash'])
            )

        return receipt
