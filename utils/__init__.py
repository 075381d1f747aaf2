"""
Utilities Package
Configuration, RPC access, gas, revert decoding and unit conversion
"""

from .gas_calculator import GasCalculator
from .simulation import TransactionSimulator
from .rpc_manager import RPCManager
from .units import parse_units, format_units

__all__ = [
    'GasCalculator',
    'TransactionSimulator',
    'RPCManager',
    'parse_units',
    'format_units'
]
