"""
Fund Tools Package
Inspection, prices, fixed rates, faucet and manual invest/redeem exercises
"""

from .faucet import TokenFaucet
from .fixed_rates import FixedRateConfigurator
from .inspector import FundInspector
from .invest_redeem import InvestRedeemExercise
from .price_checker import PriceChecker
from .reference_prices import ReferencePriceClient

__all__ = [
    'TokenFaucet',
    'FixedRateConfigurator',
    'FundInspector',
    'InvestRedeemExercise',
    'PriceChecker',
    'ReferencePriceClient'
]
