"""
Blockchain Layer Tests
Nonces, wallet selection, gas, transaction building and artifacts
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import Mock
from web3 import Web3

from blockchain.abis import ERC20_ABI, MINIMAL_ABIS
from blockchain.contract_manager import ContractManager
from blockchain.nonce_manager import NonceManager
from blockchain.transaction_builder import TransactionBuilder
from blockchain.wallet_manager import WalletManager
from utils.exceptions import ArtifactNotFoundError, ConfigurationError, TransactionFailedError
from utils.gas_calculator import GasCalculator
from utils.rpc_manager import RPCManager
from tests.conftest import make_address

# Hardhat's well-known first development account
HARDHAT_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
HARDHAT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

DEPLOYER = make_address(0xD0)
TX_HASH = b"\x12" * 32


class TestNonceManager:
    """Sequential nonce allocation"""

    def test_allocation_and_reset(self, w3):
        w3.eth.get_transaction_count.return_value = 5
        manager = NonceManager(w3, DEPLOYER)

        assert manager.get_nonce() == 5
        assert manager.get_nonce() == 6
        assert manager.get_pending_count() == 2

        manager.confirm_nonce(5)
        assert manager.get_pending_count() == 1

        w3.eth.get_transaction_count.return_value = 6
        manager.reset_nonce()

        assert manager.get_current_nonce() == 6
        assert manager.get_pending_count() == 0
        w3.eth.get_transaction_count.assert_called_with(DEPLOYER, 'pending')


class TestWalletManager:
    """Key vs node-account selection"""

    def test_private_key(self, w3):
        wallet = WalletManager(w3, private_key=HARDHAT_KEY)

        assert wallet.address == HARDHAT_ADDRESS
        assert not wallet.uses_node_account

    def test_node_account(self, w3, monkeypatch):
        monkeypatch.delenv('PRIVATE_KEY', raising=False)
        w3.eth.accounts = [HARDHAT_ADDRESS.lower()]

        wallet = WalletManager(w3, allow_node_accounts=True)

        assert wallet.address == HARDHAT_ADDRESS
        assert wallet.uses_node_account
        assert wallet.account is None

    def test_key_required(self, w3, monkeypatch):
        monkeypatch.delenv('PRIVATE_KEY', raising=False)

        with pytest.raises(ConfigurationError, match="PRIVATE_KEY"):
            WalletManager(w3)

    def test_node_without_accounts(self, w3, monkeypatch):
        monkeypatch.delenv('PRIVATE_KEY', raising=False)
        w3.eth.accounts = []

        with pytest.raises(ConfigurationError):
            WalletManager(w3, allow_node_accounts=True)

    def test_token_balance_units(self, w3):
        token = Mock()
        token.functions.balanceOf.return_value.call.return_value = 1_500_000
        w3.eth.contract.return_value = token
        wallet = WalletManager(w3, private_key=HARDHAT_KEY)

        assert wallet.get_token_balance_units(make_address(0xA1), 6) == Decimal("1.5")
        token.functions.balanceOf.assert_called_with(HARDHAT_ADDRESS)


class TestGasCalculator:
    """Fee parameters and estimates"""

    @pytest.fixture
    def calculator(self, w3):
        w3.to_wei.side_effect = Web3.to_wei
        w3.from_wei.side_effect = Web3.from_wei
        return GasCalculator(w3, {'max_gas_price_gwei': 50, 'priority_fee_gwei': 2, 'default_gas_limit': 500_000})

    def test_eip1559_fees(self, w3, calculator):
        w3.eth.get_block.return_value = {'baseFeePerGas': Web3.to_wei(10, 'gwei')}

        fees = calculator.get_fee_params()

        assert fees == {'maxFeePerGas': Web3.to_wei(22, 'gwei'), 'maxPriorityFeePerGas': Web3.to_wei(2, 'gwei')}

    def test_fees_capped(self, w3, calculator):
        w3.eth.get_block.return_value = {'baseFeePerGas': Web3.to_wei(40, 'gwei')}

        assert calculator.get_fee_params()['maxFeePerGas'] == Web3.to_wei(50, 'gwei')

    def test_legacy_gas_price(self, w3, calculator):
        w3.eth.get_block.return_value = {}
        w3.eth.gas_price = Web3.to_wei(80, 'gwei')

        assert calculator.get_fee_params() == {'gasPrice': Web3.to_wei(50, 'gwei')}

    def test_estimate_with_buffer(self, calculator):
        assert calculator.estimate_gas(lambda: 100_000) == 120_000

    def test_estimate_falls_back_to_default(self, calculator):
        def failing():
            raise ValueError("execution reverted")

        assert calculator.estimate_gas(failing) == 500_000

    def test_cost(self, calculator):
        cost = calculator.estimate_cost_eth(1_000_000, {'maxFeePerGas': Web3.to_wei(20, 'gwei')})
        assert cost == Decimal('0.02')


@pytest.fixture
def builder(w3):
    wallet = Mock()
    wallet.address = DEPLOYER
    wallet.uses_node_account = True

    gas_calculator = Mock()
    gas_calculator.estimate_gas.return_value = 120_000
    gas_calculator.get_fee_params.return_value = {'gasPrice': 1_000}

    nonce_manager = Mock()
    nonce_manager.get_nonce.return_value = 3

    w3.eth.send_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {'status': 1, 'blockNumber': 7, 'gasUsed': 50_000}

    return TransactionBuilder(w3, wallet, gas_calculator, nonce_manager, chain_id=31337)


def bound_function(revert=None):
    fn = Mock()
    fn.build_transaction.side_effect = lambda params: {**params, 'to': make_address(0xC0), 'data': '0x'}
    if revert:
        fn.call.side_effect = revert
    return fn


class TestTransactionBuilder:
    """build, preflight, send"""

    def test_build_tx(self, builder):
        fn = bound_function()

        tx = builder.build_tx(fn, "test")

        assert tx['from'] == DEPLOYER
        assert tx['chainId'] == 31337
        assert tx['gas'] == 120_000
        assert tx['nonce'] == 3
        assert tx['gasPrice'] == 1_000
        assert tx['value'] == 0

    def test_transact_with_node_account(self, w3, builder):
        receipt = builder.transact(bound_function(), "setUSDCToken")

        assert receipt['status'] == 1
        w3.eth.send_transaction.assert_called_once()
        builder.nonce_manager.confirm_nonce.assert_called_once_with(3)

    def test_transact_with_local_key(self, w3, builder):
        builder.wallet_manager.uses_node_account = False
        builder.wallet_manager.sign_transaction.return_value.raw_transaction = b"signed"
        w3.eth.send_raw_transaction.return_value = TX_HASH

        builder.transact(bound_function(), "invest")

        w3.eth.send_raw_transaction.assert_called_once_with(b"signed")

    def test_preflight_revert(self, w3, builder):
        fn = bound_function(revert=ValueError("execution reverted: Pausable: paused"))

        with pytest.raises(TransactionFailedError) as excinfo:
            builder.transact(fn, "invest")

        assert excinfo.value.category == "paused"
        assert "The fund is paused" in str(excinfo.value)
        w3.eth.send_transaction.assert_not_called()

    def test_send_failure_resets_nonce(self, w3, builder):
        w3.eth.send_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(TransactionFailedError, match="could not be sent"):
            builder.transact(bound_function(), "mint", preflight=False)

        builder.nonce_manager.reset_nonce.assert_called_once()

    def test_mined_revert(self, w3, builder):
        w3.eth.wait_for_transaction_receipt.return_value = {'status': 0, 'blockNumber': 9, 'gasUsed': 30_000}

        with pytest.raises(TransactionFailedError) as excinfo:
            builder.transact(bound_function(), "redeem")

        assert excinfo.value.tx_hash == Web3.to_hex(TX_HASH)

    def test_logs_explorer_link(self, w3, builder):
        builder.explorer_tx_url = Mock(return_value="https://sepolia.etherscan.io/tx/0x12")

        builder.transact(bound_function(), "setPriceFeed")

        builder.explorer_tx_url.assert_called_once_with(Web3.to_hex(TX_HASH))

    def test_deploy_needs_contract_address(self, w3, builder):
        factory = Mock()
        factory.constructor.return_value = bound_function()
        w3.eth.wait_for_transaction_receipt.return_value = {
            'status': 1, 'blockNumber': 7, 'gasUsed': 1, 'contractAddress': None, 'transactionHash': TX_HASH
        }

        with pytest.raises(TransactionFailedError, match="no contract address"):
            builder.deploy(factory, [DEPLOYER], "Deploy MockUSDC")

        factory.constructor.assert_called_once_with(DEPLOYER)


class TestContractManager:
    """Artifact lookup and minimal ABI fallback"""

    @pytest.fixture
    def artifacts_dir(self, tmp_path):
        folder = tmp_path / "artifacts" / "contracts" / "MockFund.sol"
        folder.mkdir(parents=True)
        (folder / "MockFund.json").write_text(json.dumps({'abi': [{'type': 'constructor', 'inputs': []}], 'bytecode': '0x6080'}))
        (folder / "MockFund.dbg.json").write_text(json.dumps({'buildInfo': '../build-info/x.json'}))
        return tmp_path / "artifacts"

    def test_find_and_cache_artifact(self, w3, artifacts_dir):
        manager = ContractManager(w3, artifacts_dir)

        assert manager.find_artifact('MockFund').name == 'MockFund.json'
        artifact = manager.load_artifact('MockFund')
        assert manager.load_artifact('MockFund') is artifact

    def test_missing_artifact(self, w3, artifacts_dir):
        with pytest.raises(ArtifactNotFoundError, match="hardhat compile"):
            ContractManager(w3, artifacts_dir).load_artifact('Nope')

    def test_minimal_abi_fallback(self, w3, tmp_path):
        manager = ContractManager(w3, tmp_path / "missing")

        assert manager.get_abi('ERC20') == ERC20_ABI
        assert manager.get_abi('FixedRateMockFund') == MINIMAL_ABIS['FixedRateMockFund']
        with pytest.raises(ArtifactNotFoundError):
            manager.get_abi('Unknown')

    def test_attach_checksums(self, w3, artifacts_dir):
        ContractManager(w3, artifacts_dir).attach('MockFund', DEPLOYER.lower())

        w3.eth.contract.assert_called_once_with(address=DEPLOYER, abi=[{'type': 'constructor', 'inputs': []}])

    def test_has_code(self, w3, artifacts_dir):
        manager = ContractManager(w3, artifacts_dir)

        w3.eth.get_code.return_value = b""
        assert not manager.has_code(DEPLOYER)

        w3.eth.get_code.return_value = b"\x60\x80"
        assert manager.has_code(DEPLOYER)

        assert not manager.has_code(None)


class TestExplorerLinks:
    """Block explorer URLs per network"""

    def test_sepolia_links(self):
        rpc = RPCManager('sepolia', {'name': 'sepolia', 'block_explorer_url': 'https://sepolia.etherscan.io'}, rpc_url='http://node')

        assert rpc.explorer_tx_url('0xabc') == 'https://sepolia.etherscan.io/tx/0xabc'
        assert rpc.explorer_address_url(DEPLOYER) == f'https://sepolia.etherscan.io/address/{DEPLOYER}'

    def test_local_chain_has_none(self):
        rpc = RPCManager('localhost', {'name': 'localhost', 'block_explorer_url': None}, rpc_url='http://127.0.0.1:8545')

        assert rpc.explorer_tx_url('0xabc') is None
        assert rpc.explorer_address_url(DEPLOYER) is None


# Run all tests
if __name__ == "__main__":
    pytest.main([__file__, '-v', '--tb=short'])
