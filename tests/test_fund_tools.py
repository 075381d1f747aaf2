"""
Fund Tool Tests
Faucet, inspector, price checker, fixed rates and the invest/redeem exercise
"""

import pytest
from decimal import Decimal
from fractions import Fraction
from functools import partial
from unittest.mock import Mock

from deployment.records import DeploymentRecord
from fund.faucet import TokenFaucet
from fund.fixed_point import ONE, SECONDS_PER_YEAR
from fund.fixed_rates import FixedRateConfigurator
from fund.inspector import FundInspector
from fund.invest_redeem import InvestRedeemExercise
from fund.price_checker import PriceChecker, TokenPrice
from utils.exceptions import (
    ContractNotFoundError,
    InsufficientFundsError,
    OwnershipError,
    TransactionFailedError,
)
from tests.conftest import make_address

USDC_UNIT = 10**6

DEPLOYER = make_address(0xD0)
USDC = make_address(0xA1)
WETH = make_address(0xA2)
WBTC = make_address(0xA3)
FUND = make_address(0xB1)
SHARE = make_address(0xB2)
INTEGRATION = make_address(0xB3)
ORACLE = make_address(0xB4)


def returning(value):
    return Mock(**{'call.return_value': value})


def raising(error):
    return Mock(**{'call.side_effect': error})


def contract(address, **views):
    """Contract mock whose view functions return (or raise) the given values"""
    mock = Mock()
    mock.address = address
    for name, value in views.items():
        fn = getattr(mock.functions, name)
        if isinstance(value, Exception):
            fn.return_value.call.side_effect = value
        else:
            fn.return_value.call.return_value = value
    return mock


def contract_manager_for(w3, *contracts):
    by_address = {c.address: c for c in contracts}
    manager = Mock()
    manager.w3 = w3
    manager.attach.side_effect = lambda name, address: by_address[address]
    manager.erc20.side_effect = lambda address: by_address[address]
    return manager


@pytest.fixture
def record():
    record = DeploymentRecord(network='localhost', chain_id=31337)
    record.set_contract('MockUSDC', USDC)
    record.set_contract('MockWETH', WETH)
    record.set_contract('MockWBTC', WBTC)
    record.set_contract('FixedRateMockFund', FUND)
    record.set_contract('FundShareToken', SHARE)
    record.set_contract('FixedRateUniswapIntegration', INTEGRATION)
    record.set_contract('ChainlinkPriceOracle', ORACLE)
    return record


@pytest.fixture
def tx_builder():
    builder = Mock()
    builder.sender = DEPLOYER
    return builder


# ----------------------------------------------------------------------
# Faucet
# ----------------------------------------------------------------------

class FakeCall:
    def __init__(self, result=None, effect=None, fails=False):
        self.result = result
        self.effect = effect
        self.fails = fails

    def call(self, *args):
        return self.result


class FakeToken:
    """Mock token whose balance moves when transactions run"""

    def __init__(self, balance=0, drip=0, faucet_fails=False, mint_fails=False):
        self.address = USDC
        self.balance = balance
        self.drip = drip
        self.faucet_fails = faucet_fails
        self.mint_fails = mint_fails
        self.faucet_calls = 0
        self.minted = []
        self.functions = self

    def balanceOf(self, account):
        return FakeCall(result=self.balance)

    def getLargeAmount(self):
        return FakeCall(effect=self._drip, fails=self.faucet_fails)

    def mint(self, recipient, amount):
        return FakeCall(effect=partial(self._mint, amount), fails=self.mint_fails)

    def _drip(self):
        self.faucet_calls += 1
        self.balance += self.drip

    def _mint(self, amount):
        self.minted.append(amount)
        self.balance += amount


def send(call, description):
    if call.fails:
        raise TransactionFailedError(f"{description} reverted")
    call.effect()
    return {'status': 1}


def faucet_for(token):
    manager = Mock()
    manager.erc20.return_value = token
    builder = Mock()
    builder.sender = DEPLOYER
    builder.transact.side_effect = send
    return TokenFaucet(manager, builder), builder


class TestTokenFaucet:
    """ensure_balance top-up rules"""

    def test_enough_balance(self):
        token = FakeToken(balance=1_000 * USDC_UNIT)
        faucet, builder = faucet_for(token)

        assert faucet.ensure_balance(USDC, 500 * USDC_UNIT) == 500 * USDC_UNIT
        builder.transact.assert_not_called()

    def test_large_amount_rounds_up(self):
        token = FakeToken(drip=100_000 * USDC_UNIT)
        faucet, _ = faucet_for(token)

        amount = faucet.ensure_balance(USDC, 250_000 * USDC_UNIT, chunk=100_000 * USDC_UNIT)

        assert amount == 250_000 * USDC_UNIT
        assert token.faucet_calls == 3
        assert token.minted == []

    def test_mints_shortfall(self):
        token = FakeToken(balance=10 * USDC_UNIT)
        faucet, _ = faucet_for(token)

        assert faucet.ensure_balance(USDC, 1_000 * USDC_UNIT) == 1_000 * USDC_UNIT
        assert token.minted == [990 * USDC_UNIT]

    def test_partial_balance_is_used(self):
        token = FakeToken(balance=50 * USDC_UNIT, faucet_fails=True, mint_fails=True)
        faucet, _ = faucet_for(token)

        assert faucet.ensure_balance(USDC, 1_000 * USDC_UNIT, chunk=100_000 * USDC_UNIT) == 50 * USDC_UNIT

    def test_zero_balance_raises(self):
        token = FakeToken(faucet_fails=True, mint_fails=True)
        faucet, _ = faucet_for(token)

        with pytest.raises(InsufficientFundsError):
            faucet.ensure_balance(USDC, 1_000 * USDC_UNIT, chunk=100_000 * USDC_UNIT)


# ----------------------------------------------------------------------
# Inspector
# ----------------------------------------------------------------------

@pytest.fixture
def fund_views():
    return {
        'isInitialized': True,
        'paused': False,
        'getFundStats': (2_000_000 * ONE, 1_000_000 * ONE, 2_000_000 * USDC_UNIT),
        'calculateNAV': 2_000_000 * USDC_UNIT,
        'calculateMFCValue': USDC_UNIT,
        'calculateTheoreticalMFCValue': USDC_UNIT,
        'getMFCComposition': ([WETH], [41 * 10**15], 5 * 10**17),
        'getFundTokenBalances': ([WETH], [41 * ONE], [18]),
        'getSupportedTokens': [WETH],
        'minimumInvestment': 10 * USDC_UNIT,
        'minimumRedemption': ONE,
        'managementFeeRate': 100,
        'lastFeeCollection': 1_000,
        'totalManagementFeesCollected': 0,
        'getUSDCAddress': USDC,
        'shareToken': SHARE,
    }


def inspector_for(w3, record, token_config, fund_views):
    w3.eth.get_block.return_value = {'timestamp': 1_000 + SECONDS_PER_YEAR}
    manager = contract_manager_for(
        w3,
        contract(FUND, **fund_views),
        contract(WETH, balanceOf=41 * ONE),
        contract(USDC, balanceOf=5_000 * USDC_UNIT, allowance=0),
        contract(SHARE, name="Mock Fund Coin", symbol="MFC", decimals=18, totalSupply=2_000_000 * ONE, balanceOf=ONE),
        contract(INTEGRATION, owner=DEPLOYER, useFixedRates=True),
    )
    return FundInspector(manager, record, token_config)


class TestFundInspector:
    """Best-effort inspection"""

    def test_full_read(self, w3, record, token_config, fund_views):
        inspector = inspector_for(w3, record, token_config, fund_views)

        status = inspector.inspect(DEPLOYER)

        assert status.errors == []
        assert status.fund_name == 'FixedRateMockFund'
        assert status.total_supply == 2_000_000 * ONE
        assert status.composition == [{'symbol': 'WETH', 'address': WETH, 'ratio': 41 * 10**15}]
        assert status.supported_tokens[0]['balance'] == 41 * ONE
        assert status.accrued_fee_estimate == 20_000 * USDC_UNIT
        assert status.share_token['symbol'] == 'MFC'
        assert status.account_mfc == ONE
        assert status.account_usdc == 5_000 * USDC_UNIT
        assert status.allowance == 0
        assert status.usdc_matches_record is True
        assert status.fixed_rate_mode is True

        inspector.log_status(status)

    def test_fees_never_collected(self, w3, record, token_config, fund_views):
        fund_views['lastFeeCollection'] = 0
        inspector = inspector_for(w3, record, token_config, fund_views)

        status = inspector.inspect()

        assert status.last_fee_collection == 0
        assert status.accrued_fee_estimate == 0

        inspector.log_status(status)

    def test_failed_reads_do_not_stop_the_scan(self, w3, record, token_config, fund_views):
        fund_views['paused'] = ValueError("execution reverted")
        fund_views['calculateNAV'] = ValueError("price feed not found")
        inspector = inspector_for(w3, record, token_config, fund_views)

        status = inspector.inspect()

        assert len(status.errors) == 2
        assert status.paused is None
        assert status.nav is None
        assert status.accrued_fee_estimate is None
        assert status.mfc_value == USDC_UNIT
        assert len(status.supported_tokens) == 1
        assert status.account_usdc is None

        inspector.log_status(status)

    def test_usdc_mismatch(self, w3, record, token_config, fund_views):
        other = make_address(0xEE)
        fund_views['getUSDCAddress'] = other
        inspector = inspector_for(w3, record, token_config, fund_views)
        inspector.contract_manager.erc20.side_effect = lambda address: contract(address, balanceOf=0, allowance=0)

        assert inspector.inspect().usdc_matches_record is False

    def test_no_fund_in_record(self, w3, token_config):
        record = DeploymentRecord(network='localhost')
        record.set_contract('MockUSDC', USDC)

        with pytest.raises(ContractNotFoundError):
            FundInspector(contract_manager_for(w3), record, token_config)


# ----------------------------------------------------------------------
# Price checker
# ----------------------------------------------------------------------

class TestPriceChecker:
    """Per-token oracle reads"""

    NOW = 1_700_000_000

    def checker_for(self, w3, record, prices):
        oracle = contract(ORACLE, getMultiplePrices=([100_000_000, 300_000_000_000], [self.NOW, self.NOW]))
        oracle.functions.getPriceFeedInfo.side_effect = lambda address: returning((make_address(0xF0), 8, "ETH / USD"))
        oracle.functions.getLatestPrice.side_effect = lambda address: prices[address]
        oracle.functions.getLatestPriceBySymbol.side_effect = lambda symbol: returning((300_000_000_000, self.NOW))

        w3.eth.get_block.return_value = {'timestamp': self.NOW}
        return PriceChecker(contract_manager_for(w3, oracle), record)

    def test_scan_continues_after_failure(self, w3, record):
        checker = self.checker_for(w3, record, {
            USDC: returning((100_000_000, self.NOW - 60)),
            WETH: returning((300_000_000_000, self.NOW - 60)),
            WBTC: raising(ValueError("Price feed not found")),
        })

        report = checker.scan()

        readings = {p.symbol: p for p in report.prices}
        assert readings['WETH'].price_usd == Decimal('3000')
        assert not readings['WETH'].stale
        assert readings['WBTC'].error == "Price feed not found"
        assert len(report.errors) == 1
        assert 'WBTC' not in report.batch

        checker.log_report(report)

    def test_stale_price(self, w3, record):
        checker = self.checker_for(w3, record, {WETH: returning((300_000_000_000, self.NOW - 7_200))})

        reading = checker.check_token('WETH', WETH)

        assert reading.stale
        assert reading.age_seconds == 7_200


# ----------------------------------------------------------------------
# Fixed rates
# ----------------------------------------------------------------------

def configurator_for(w3, record, token_config, tx_builder, owner=DEPLOYER, mode=False):
    integration = contract(INTEGRATION, owner=owner, useFixedRates=mode)
    current = {WETH: 3_000 * USDC_UNIT, WBTC: 0}
    integration.functions.fixedRates.side_effect = lambda address: returning(current[address])
    manager = contract_manager_for(w3, integration)
    return FixedRateConfigurator(manager, tx_builder, record, token_config), integration


class TestFixedRateConfigurator:
    """check / apply"""

    def test_configured_rates(self, w3, record, token_config, tx_builder):
        configurator, _ = configurator_for(w3, record, token_config, tx_builder)

        assert configurator.configured_rates() == {'WETH': 3_000 * USDC_UNIT, 'WBTC': 118_000 * USDC_UNIT}

    def test_check_lists_changes(self, w3, record, token_config, tx_builder):
        configurator, _ = configurator_for(w3, record, token_config, tx_builder)

        report = configurator.check(configurator.configured_rates())

        assert [c.symbol for c in report.changes] == ['WBTC']
        assert not report.up_to_date
        tx_builder.transact.assert_not_called()

    def test_apply_sets_only_differing_rates(self, w3, record, token_config, tx_builder):
        configurator, integration = configurator_for(w3, record, token_config, tx_builder)

        report = configurator.apply(configurator.configured_rates())

        assert report.applied
        integration.functions.setFixedRate.assert_called_once_with(WBTC, 118_000 * USDC_UNIT)
        integration.functions.setFixedRateMode.assert_called_once_with(True)
        assert tx_builder.transact.call_count == 2

    def test_apply_requires_owner(self, w3, record, token_config, tx_builder):
        configurator, _ = configurator_for(w3, record, token_config, tx_builder, owner=make_address(0xBAD))

        with pytest.raises(OwnershipError):
            configurator.apply(configurator.configured_rates())
        tx_builder.transact.assert_not_called()

    def test_rates_from_oracle(self, w3, record, token_config, tx_builder):
        configurator, _ = configurator_for(w3, record, token_config, tx_builder)
        price_checker = Mock()
        price_checker.check_token.side_effect = lambda symbol, address: {
            'WETH': TokenPrice(symbol, address, price=301_234_567_890, feed_decimals=8),
            'WBTC': TokenPrice(symbol, address, error="Price feed not found"),
        }[symbol]

        assert configurator.rates_from_oracle(price_checker) == {'WETH': 3_012_345_678}


# ----------------------------------------------------------------------
# Invest / redeem
# ----------------------------------------------------------------------

def exercise_for(w3, record, tx_builder):
    fund = contract(FUND, calculateMFCValue=USDC_UNIT)
    usdc = contract(USDC, allowance=0)
    usdc.functions.balanceOf.return_value.call.side_effect = [
        10_000 * USDC_UNIT, 9_000 * USDC_UNIT, 9_499 * USDC_UNIT
    ]
    share = contract(SHARE)
    share.functions.balanceOf.return_value.call.side_effect = [0, 1_000 * ONE, 500 * ONE]

    faucet = Mock()
    faucet.ensure_balance.side_effect = lambda address, amount, **kwargs: amount

    manager = contract_manager_for(w3, fund, usdc, share)
    return InvestRedeemExercise(manager, tx_builder, record, faucet=faucet), fund, usdc


class TestInvestRedeemExercise:
    """run() against mocked balances"""

    def test_round_trip(self, w3, record, tx_builder):
        exercise, fund, usdc = exercise_for(w3, record, tx_builder)

        report = exercise.run(1_000 * USDC_UNIT, Fraction(1, 2))

        assert report.passed
        assert report.expected_shares == 1_000 * ONE
        assert report.actual_shares == 1_000 * ONE
        assert report.redeem_amount == 500 * ONE
        assert report.expected_usdc == 500 * USDC_UNIT
        assert report.actual_usdc == 499 * USDC_UNIT
        assert report.investment_efficiency == Decimal('100.00')
        assert report.redemption_efficiency == Decimal('99.80')
        assert report.net_usdc_change == -501 * USDC_UNIT

        usdc.functions.approve.assert_called_once_with(FUND, 1_000 * USDC_UNIT)
        fund.functions.invest.assert_called_once_with(1_000 * USDC_UNIT)
        fund.functions.redeem.assert_called_once_with(500 * ONE)

        exercise.log_report(report)

    def test_failed_investment(self, w3, record, tx_builder):
        tx_builder.transact.side_effect = TransactionFailedError("Invest reverted", category="paused")
        exercise, fund, _ = exercise_for(w3, record, tx_builder)

        report = exercise.run(1_000 * USDC_UNIT)

        assert not report.passed
        assert not report.invest_ok
        assert len(report.errors) == 1
        fund.functions.redeem.assert_not_called()

        exercise.log_report(report)

    @pytest.mark.parametrize("fraction", ["0", "3/2", "-1"])
    def test_invalid_fraction(self, w3, record, tx_builder, fraction):
        exercise, _, _ = exercise_for(w3, record, tx_builder)

        with pytest.raises(ValueError):
            exercise.run(1_000 * USDC_UNIT, fraction)


# Run all tests
if __name__ == "__main__":
    pytest.main([__file__, '-v', '--tb=short'])
