"""
Transaction Simulator Tests
Revert decoding and classification
"""

import pytest
from unittest.mock import Mock
from eth_abi import encode
from web3 import Web3

from utils.simulation import (
    TransactionSimulator,
    classify_revert,
    decode_revert_data,
    describe_error,
)


def error_string(reason: str) -> str:
    return "0x08c379a0" + encode(['string'], [reason]).hex()


class TestRevertDecoding:
    """Raw revert payloads"""

    def test_error_string(self):
        assert decode_revert_data(error_string("Pausable: paused")) == "Pausable: paused"

    def test_error_string_bytes(self):
        data = bytes.fromhex(error_string("Fund: not initialized")[2:])
        assert decode_revert_data(data) == "Fund: not initialized"

    def test_panic(self):
        data = "0x4e487b71" + encode(['uint256'], [0x11]).hex()
        assert decode_revert_data(data) == "Panic(0x11)"

    def test_custom_error(self):
        selector = Web3.keccak(text="EnforcedPause()")[:4].hex().removeprefix("0x")
        assert decode_revert_data("0x" + selector) == "EnforcedPause"

    @pytest.mark.parametrize("data", [None, "", "0x", "0x1234", "0xdeadbeef"])
    def test_unknown_payloads(self, data):
        assert decode_revert_data(data) is None


class TestRevertClassification:
    """Reason -> category"""

    @pytest.mark.parametrize("reason, category", [
        ("ERC20: transfer amount exceeds allowance", "insufficient_allowance"),
        ("ERC20InsufficientAllowance", "insufficient_allowance"),
        ("ERC20: transfer amount exceeds balance", "insufficient_balance"),
        ("Pausable: paused", "paused"),
        ("Below minimum investment", "below_minimum"),
        ("Fund already initialized", "already_initialized"),
        ("Ownable: caller is not the owner", "not_owner"),
        ("Token not supported", "unsupported_token"),
    ])
    def test_known_reasons(self, reason, category):
        assert classify_revert(reason) == category

    def test_unknown_reason(self):
        assert classify_revert("something odd") is None
        assert classify_revert(None) is None

    def test_describe_plain_error(self):
        result = describe_error(ValueError("execution reverted: Pausable: paused"))

        assert not result.ok
        assert result.category == "paused"
        assert result.hint == "The fund is paused"


class TestTransactionSimulator:
    """eth_call preflights"""

    def test_successful_call(self, w3):
        w3.eth.call.return_value = b""
        simulator = TransactionSimulator(w3)

        result = simulator.simulate_transaction({'from': '0x1', 'to': '0x2', 'data': '0x', 'gas': 1})

        assert result.ok
        w3.eth.call.assert_called_once_with({'from': '0x1', 'to': '0x2', 'data': '0x'})

    def test_reverted_call(self, w3):
        w3.eth.call.side_effect = ValueError("ERC20: transfer amount exceeds balance")
        simulator = TransactionSimulator(w3)

        result = simulator.simulate_transaction({'from': '0x1', 'to': '0x2', 'data': '0x'})

        assert not result.ok
        assert result.category == "insufficient_balance"

    def test_reverted_function(self, w3):
        fn = Mock()
        fn.call.side_effect = ValueError("Below minimum investment")
        simulator = TransactionSimulator(w3)

        result = simulator.simulate_function(fn, '0xabc')

        assert result.category == "below_minimum"
        fn.call.assert_called_once_with({'from': '0xabc'})


# Run all tests
if __name__ == "__main__":
    pytest.main([__file__, '-v', '--tb=short'])
