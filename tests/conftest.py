"""
Shared test fixtures
"""

import pytest
from unittest.mock import Mock
from web3 import Web3


def make_address(n: int) -> str:
    """Deterministic checksummed address"""
    return Web3.to_checksum_address("0x" + f"{n:040x}")


@pytest.fixture
def w3():
    """Mock Web3 instance"""
    mock = Mock(spec=Web3)
    mock.eth = Mock()
    return mock


@pytest.fixture
def token_config():
    """Mock token catalogue"""
    return {
        'stablecoin': 'USDC',
        'tokens': {
            'USDC': {
                'artifact': 'MockUSDC',
                'decimals': 6,
                'coingecko_id': 'usd-coin',
                'fixed_rate_usdc': '1',
                'faucet_amount': '1000',
                'faucet_chunk': '100000'
            },
            'WETH': {
                'artifact': 'MockWETH',
                'decimals': 18,
                'coingecko_id': 'ethereum',
                'fixed_rate_usdc': '3000',
                'faucet_amount': '10'
            },
            'WBTC': {
                'artifact': 'MockWBTC',
                'decimals': 8,
                'coingecko_id': 'bitcoin',
                'fixed_rate_usdc': '118000',
                'faucet_amount': '1'
            }
        }
    }


@pytest.fixture
def network_config():
    """Local network configuration"""
    return {
        'name': 'localhost',
        'chain_id': 31337,
        'use_node_accounts': True,
        'gas_settings': {'default_gas_limit': 6000000},
        'chainlink_feeds': {}
    }


@pytest.fixture
def deployments_dir(tmp_path):
    """Empty deployments directory"""
    path = tmp_path / "deployments"
    path.mkdir()
    return path
